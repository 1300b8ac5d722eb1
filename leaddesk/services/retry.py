"""Bounded retry for transient read failures.

Only read paths use this. Bulk mutations are not idempotent, so they are
never retried here.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def run_read_with_retry(
    operation: Callable[[], T],
    max_retries: int,
    base_backoff_seconds: float,
    operation_name: str = "read",
) -> T:
    for attempt in range(max_retries + 1):
        try:
            return operation()
        except DBAPIError as exc:
            if not _is_transient(exc) or attempt >= max_retries:
                raise
            delay = max(0.0, base_backoff_seconds) * (2**attempt)
            logger.warning(
                "read.retry",
                extra={
                    "event": "read.retry",
                    "operation_name": operation_name,
                    "attempt": attempt + 1,
                    "delay_seconds": delay,
                    "error": str(exc.orig) if exc.orig is not None else str(exc),
                },
            )
            if delay > 0:
                time.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
