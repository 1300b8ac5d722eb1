"""Short-lived result caches with in-flight request de-duplication.

Concurrent callers asking for the same key while a computation is running
share that computation's outcome. Finished results stay cached for the TTL;
failures are never cached.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    future: Future
    created_at: float


class ResultCache(Generic[T]):
    def __init__(self, name: str, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_live(self, entry: _Entry[T], now: float) -> bool:
        return not entry.future.done() or (now - entry.created_at) < self.ttl_seconds

    def get_or_compute(self, key: str, compute: Callable[[], T]) -> T:
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None and self._is_live(entry, now):
                owner = False
            else:
                entry = _Entry(future=Future(), created_at=now)
                self._entries[key] = entry
                owner = True

        if not owner:
            logger.debug("cache.hit", extra={"event": "cache.hit", "cache": self.name})
            return entry.future.result()

        try:
            result = compute()
        except BaseException as exc:
            with self._lock:
                if self._entries.get(key) is entry:
                    del self._entries[key]
            entry.future.set_exception(exc)
            raise
        entry.future.set_result(result)
        return result

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class CacheRegistry:
    """Groups every read cache so writers can invalidate them together."""

    def __init__(self) -> None:
        self._caches: list[ResultCache] = []
        self._lock = threading.Lock()
        self.invalidation_count = 0

    def create(self, name: str, ttl_seconds: float) -> ResultCache:
        cache: ResultCache = ResultCache(name=name, ttl_seconds=ttl_seconds)
        self.register(cache)
        return cache

    def register(self, cache: ResultCache) -> None:
        with self._lock:
            self._caches.append(cache)

    def invalidate_all(self) -> None:
        with self._lock:
            caches = list(self._caches)
            self.invalidation_count += 1
        for cache in caches:
            cache.clear()
        logger.info(
            "cache.invalidated",
            extra={"event": "cache.invalidated", "caches": [cache.name for cache in caches]},
        )


read_caches = CacheRegistry()
