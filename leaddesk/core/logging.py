"""Structured logging helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in structured logs."""

    user_id: str | None = None
    role: str | None = None
    job_id: str | None = None
    operation: str | None = None
    trace_id: str | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build a normalized structured log payload.

    The result is meant to be passed as ``extra=`` to a stdlib logger, so keys
    must not collide with ``LogRecord`` attributes.
    """
    payload: dict[str, Any] = {
        "event": event,
        "event_at": datetime.now(timezone.utc).isoformat(),
        "user_id": context.user_id,
        "role": context.role,
        "job_id": context.job_id,
        "operation": context.operation,
        "trace_id": context.trace_id,
    }
    payload.update(fields)
    return payload
