"""Filtered and per-dimension lead counts."""

from __future__ import annotations

import logging

from sqlalchemy.orm import sessionmaker

from leaddesk.auth.scope import CallerIdentity, require_caller
from leaddesk.core.config import Config
from leaddesk.core.exceptions import AuthenticationError, AuthorizationError, QueryTimeoutError
from leaddesk.core.logging import LogContext, build_log_event
from leaddesk.models import FILTERABLE_FIELDS
from leaddesk.schemas.filters import FilterCriteria
from leaddesk.schemas.leads import LeadCounts
from leaddesk.services.base_service import BaseService
from leaddesk.services.cache import CacheRegistry
from leaddesk.services.retry import run_read_with_retry

logger = logging.getLogger(__name__)


class CountService(BaseService):
    """Resolve ``LeadCounts`` for a committed filter snapshot.

    Per-field counts are computed with the full filter set applied, so a
    selected school narrows the district counts and also its own dimension.
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: Config | None = None,
        caches: CacheRegistry | None = None,
    ) -> None:
        super().__init__(session_factory=session_factory, settings=settings, caches=caches)
        self.cache = self.caches.create("counts", self.settings.COUNT_CACHE_TTL_SECONDS)

    @staticmethod
    def cache_key(caller: CallerIdentity, criteria: FilterCriteria) -> str:
        return f"{caller.cache_identity}|{criteria.canonical_json()}"

    def get_counts(
        self,
        caller: CallerIdentity | None,
        criteria: FilterCriteria,
        bust_cache: bool = False,
    ) -> LeadCounts:
        caller = require_caller(caller)
        key = self.cache_key(caller, criteria)
        context = LogContext(user_id=caller.user_id, role=caller.role.value, operation="counts")
        if bust_cache:
            self.cache.invalidate(key)

        try:
            counts = self.cache.get_or_compute(key, lambda: self._compute_with_retry(caller, criteria))
        except (AuthenticationError, AuthorizationError, QueryTimeoutError):
            raise
        except Exception as exc:
            logger.warning("counts.degraded", extra=build_log_event("counts.degraded", context, error=str(exc)))
            return LeadCounts(
                has_active_filters=criteria.has_active_filters,
                degraded=True,
                error=f"Counts are temporarily unavailable: {exc}",
            )

        if counts.is_empty:
            # Nothing to show; let the next request hit the database again.
            self.cache.invalidate(key)
            logger.info("counts.cache.evicted", extra=build_log_event("counts.cache.evicted", context))
        return counts

    def _compute_with_retry(self, caller: CallerIdentity, criteria: FilterCriteria) -> LeadCounts:
        return run_read_with_retry(
            lambda: self._compute(caller, criteria),
            max_retries=self.settings.READ_MAX_RETRIES,
            base_backoff_seconds=self.settings.READ_RETRY_BACKOFF_SECONDS,
            operation_name="counts",
        )

    def _compute(self, caller: CallerIdentity, criteria: FilterCriteria) -> LeadCounts:
        with self.store_scope() as store:
            filtered_count = store.count(caller, criteria)
            total_count = store.count(caller) if criteria.has_active_filters else filtered_count
            per_field_counts = {field: store.count_by_field(caller, criteria, field) for field in FILTERABLE_FIELDS}
            custom_field_counts = {
                key: store.count_by_custom_field(caller, criteria, key) for key in store.custom_field_keys()
            }
        return LeadCounts(
            filtered_count=filtered_count,
            total_count=total_count,
            has_active_filters=criteria.has_active_filters,
            per_field_counts=per_field_counts,
            custom_field_counts=custom_field_counts,
        )
