"""Debounced filter store.

Two layers are kept apart: a mutable :class:`FilterDraft` that
setters change synchronously, and an immutable committed
:class:`FilterCriteria` that only moves when the store's debounce timer fires
(or on :meth:`DebouncedFilterStore.clear_all_filters` / :meth:`flush`).
Queries read the committed snapshot.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from leaddesk.core.config import Config, get_config
from leaddesk.core.exceptions import ValidationError
from leaddesk.filters.persistence import FILTER_STATE_KEY, FilterStateStorage, JsonFileFilterStorage
from leaddesk.models.enums import FILTERABLE_FIELDS, PaginationMode
from leaddesk.schemas.filters import CustomFilterValue, DateRange, FilterCriteria

logger = logging.getLogger(__name__)

FilterListener = Callable[[FilterCriteria], None]


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer_factory(delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay_seconds, callback)
    timer.daemon = True
    return timer


@dataclass
class FilterDraft:
    """Uncommitted filter state, mutated in place by store setters."""

    school: set[str] = field(default_factory=set)
    district: set[str] = field(default_factory=set)
    gender: set[str] = field(default_factory=set)
    stream: set[str] = field(default_factory=set)
    search_query: str = ""
    date_from: datetime | None = None
    date_to: datetime | None = None
    custom_filters: dict[str, CustomFilterValue] = field(default_factory=dict)

    @classmethod
    def from_criteria(cls, criteria: FilterCriteria) -> "FilterDraft":
        return cls(
            school=set(criteria.school),
            district=set(criteria.district),
            gender=set(criteria.gender),
            stream=set(criteria.stream),
            search_query=criteria.search_query,
            date_from=criteria.date_range.from_,
            date_to=criteria.date_range.to,
            custom_filters=dict(criteria.custom_filters),
        )

    def copy(self) -> "FilterDraft":
        return FilterDraft(
            school=set(self.school),
            district=set(self.district),
            gender=set(self.gender),
            stream=set(self.stream),
            search_query=self.search_query,
            date_from=self.date_from,
            date_to=self.date_to,
            custom_filters=dict(self.custom_filters),
        )

    def values_for(self, field_name: str) -> set[str]:
        if field_name not in FILTERABLE_FIELDS:
            raise ValidationError(f"Unknown filter field: {field_name}")
        return getattr(self, field_name)

    def snapshot(self) -> FilterCriteria:
        try:
            return FilterCriteria(
                school=frozenset(self.school),
                district=frozenset(self.district),
                gender=frozenset(self.gender),
                stream=frozenset(self.stream),
                search_query=self.search_query,
                date_range=DateRange(from_=self.date_from, to=self.date_to),
                custom_filters=dict(self.custom_filters),
            )
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc


class DebouncedFilterStore:
    """Holds draft and committed filters plus pagination preferences."""

    def __init__(
        self,
        debounce_ms: int | None = None,
        page_size: int | None = None,
        storage: FilterStateStorage | None = None,
        storage_key: str = FILTER_STATE_KEY,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        cfg = get_config()
        self._delay_seconds = (cfg.FILTER_DEBOUNCE_MS if debounce_ms is None else debounce_ms) / 1000.0
        self._max_page_size = cfg.MAX_PAGE_SIZE
        self._storage = storage
        self._storage_key = storage_key
        self._timer_factory = timer_factory or thread_timer_factory
        self._lock = threading.RLock()
        self._listeners: list[FilterListener] = []
        self._timer: TimerHandle | None = None
        self._timer_generation = 0

        self._draft = FilterDraft()
        self._current = FilterCriteria.empty()
        self._committed = self._current
        self._page = 0
        self._page_size = page_size or cfg.DEFAULT_PAGE_SIZE
        self._pagination_mode = PaginationMode.STANDARD
        self._restore()

    # -- read side -----------------------------------------------------------

    @property
    def current(self) -> FilterCriteria:
        return self._current

    @property
    def committed(self) -> FilterCriteria:
        return self._committed

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def pagination_mode(self) -> PaginationMode:
        return self._pagination_mode

    @property
    def has_pending_commit(self) -> bool:
        return self._timer is not None

    def subscribe(self, listener: FilterListener) -> Callable[[], None]:
        """Register a listener called with each newly committed snapshot."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # -- filter setters (debounced) -----------------------------------------

    def set_equality_values(self, field_name: str, values: Iterable[str]) -> None:
        cleaned = {str(value) for value in values}
        self._mutate(lambda draft: _replace_set(draft.values_for(field_name), cleaned))

    def toggle_value(self, field_name: str, value: str) -> None:
        def apply(draft: FilterDraft) -> None:
            selected = draft.values_for(field_name)
            if value in selected:
                selected.discard(value)
            else:
                selected.add(value)

        self._mutate(apply)

    def set_search_query(self, query: str) -> None:
        def apply(draft: FilterDraft) -> None:
            draft.search_query = query

        self._mutate(apply)

    def set_date_range(self, date_from: datetime | None, date_to: datetime | None) -> None:
        def apply(draft: FilterDraft) -> None:
            draft.date_from = date_from
            draft.date_to = date_to

        self._mutate(apply)

    def set_custom_filter(self, key: str, value: CustomFilterValue | None) -> None:
        def apply(draft: FilterDraft) -> None:
            if value is None or value == "":
                draft.custom_filters.pop(key, None)
            else:
                draft.custom_filters[key] = value

        self._mutate(apply)

    def remove_custom_filter(self, key: str) -> None:
        self._mutate(lambda draft: draft.custom_filters.pop(key, None))

    def clear_all_filters(self) -> None:
        """Reset every filter and commit immediately, skipping the debounce."""
        with self._lock:
            self._cancel_timer()
            self._draft = FilterDraft()
            self._current = FilterCriteria.empty()
            self._page = 0
            changed = self._commit_locked()
        self._after_commit(changed)

    def flush(self) -> None:
        """Commit a pending draft right away."""
        with self._lock:
            if self._timer is None:
                return
            self._cancel_timer()
            changed = self._commit_locked()
        self._after_commit(changed)

    def close(self) -> None:
        with self._lock:
            self._cancel_timer()

    # -- pagination (immediate) ----------------------------------------------

    def set_page(self, page: int) -> None:
        if page < 0:
            raise ValidationError("page must be >= 0")
        with self._lock:
            self._page = page

    def set_page_size(self, page_size: int) -> None:
        if not 1 <= page_size <= self._max_page_size:
            raise ValidationError(f"page_size must be between 1 and {self._max_page_size}")
        with self._lock:
            self._page_size = page_size
            self._page = 0
            self._persist_locked()

    def set_pagination_mode(self, mode: PaginationMode | str) -> None:
        with self._lock:
            self._pagination_mode = PaginationMode(mode)
            self._page = 0
            self._persist_locked()

    def reset_pagination(self) -> None:
        with self._lock:
            self._page = 0

    # -- internals ------------------------------------------------------------

    def _mutate(self, apply: Callable[[FilterDraft], Any]) -> None:
        with self._lock:
            draft = self._draft.copy()
            apply(draft)
            snapshot = draft.snapshot()
            self._draft = draft
            self._current = snapshot
            self._page = 0
            self._arm_timer()
            self._persist_locked()

    def _arm_timer(self) -> None:
        self._cancel_timer()
        self._timer_generation += 1
        generation = self._timer_generation
        self._timer = self._timer_factory(self._delay_seconds, lambda: self._on_timer(generation))
        self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # A cancelled timer can still fire if it was already running.
            if generation != self._timer_generation or self._timer is None:
                return
            self._timer = None
            changed = self._commit_locked()
        self._after_commit(changed)

    def _commit_locked(self) -> bool:
        changed = not self._committed.same_as(self._current)
        self._committed = self._current
        self._page = 0
        self._persist_locked()
        return changed

    def _after_commit(self, changed: bool) -> None:
        if not changed:
            return
        committed = self._committed
        logger.debug(
            "filters.committed",
            extra={"event": "filters.committed", "has_active_filters": committed.has_active_filters},
        )
        for listener in list(self._listeners):
            listener(committed)

    def _persist_locked(self) -> None:
        if self._storage is None:
            return
        self._storage.save(
            self._storage_key,
            {
                "current": self._current.to_storage(),
                "committed": self._committed.to_storage(),
                "page_size": self._page_size,
                "pagination_mode": self._pagination_mode.value,
            },
        )

    def _restore(self) -> None:
        if self._storage is None:
            return
        payload = self._storage.load(self._storage_key)
        if not payload:
            return
        try:
            current = FilterCriteria.model_validate(payload.get("current") or {})
            page_size = int(payload.get("page_size") or self._page_size)
            mode = PaginationMode(payload.get("pagination_mode") or PaginationMode.STANDARD.value)
        except (PydanticValidationError, ValueError, TypeError) as exc:
            logger.warning(
                "filters.restore_failed",
                extra={"event": "filters.restore_failed", "error": str(exc)},
            )
            return
        self._draft = FilterDraft.from_criteria(current)
        self._current = current
        # The stored committed snapshot may lag a draft whose timer never
        # fired; restoring commits the draft so the two stay consistent.
        self._committed = current
        if 1 <= page_size <= self._max_page_size:
            self._page_size = page_size
        self._pagination_mode = mode


def _replace_set(target: set[str], values: set[str]) -> None:
    target.clear()
    target.update(values)


def open_filter_store(settings: Config | None = None, timer_factory: TimerFactory | None = None) -> DebouncedFilterStore:
    """Build a store whose state survives restarts in ``FILTER_STATE_PATH``."""
    cfg = settings or get_config()
    return DebouncedFilterStore(
        debounce_ms=cfg.FILTER_DEBOUNCE_MS,
        page_size=cfg.DEFAULT_PAGE_SIZE,
        storage=JsonFileFilterStorage(cfg.FILTER_STATE_PATH),
        timer_factory=timer_factory,
    )
