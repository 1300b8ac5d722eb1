"""Durable storage for filter store state.

Storage problems never break the store: reads that fail return ``None`` and
writes that fail are logged and dropped.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

FILTER_STATE_KEY = "lead-filters"


class FilterStateStorage(Protocol):
    def load(self, key: str) -> dict[str, Any] | None: ...

    def save(self, key: str, payload: dict[str, Any]) -> None: ...


class InMemoryFilterStorage:
    """Process-local storage, mostly for tests and short-lived sessions."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}

    def load(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        return json.loads(json.dumps(entry)) if entry is not None else None

    def save(self, key: str, payload: dict[str, Any]) -> None:
        self._entries[key] = json.loads(json.dumps(payload))


class JsonFileFilterStorage:
    """Stores every key as one entry of a JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("filter state file must contain a JSON object")
        return data

    def load(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            try:
                entry = self._read_all().get(key)
            except (OSError, ValueError) as exc:
                logger.warning(
                    "filters.storage.read_failed",
                    extra={"event": "filters.storage.read_failed", "path": str(self.path), "error": str(exc)},
                )
                return None
        return entry if isinstance(entry, dict) else None

    def save(self, key: str, payload: dict[str, Any]) -> None:
        with self._lock:
            try:
                try:
                    data = self._read_all()
                except ValueError:
                    data = {}
                data[key] = payload
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
                tmp_path.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
                tmp_path.replace(self.path)
            except OSError as exc:
                logger.warning(
                    "filters.storage.write_failed",
                    extra={"event": "filters.storage.write_failed", "path": str(self.path), "error": str(exc)},
                )
