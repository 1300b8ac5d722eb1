"""Distinct filter option values visible to a caller."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from leaddesk.auth.scope import CallerIdentity, require_caller
from leaddesk.core.config import Config
from leaddesk.core.exceptions import AggregationUnavailableError
from leaddesk.core.logging import LogContext, build_log_event
from leaddesk.models import FILTERABLE_FIELDS
from leaddesk.schemas.leads import UniqueValues
from leaddesk.services.base_service import BaseService
from leaddesk.services.cache import CacheRegistry
from leaddesk.services.retry import run_read_with_retry

logger = logging.getLogger(__name__)


def rank_options(values_with_counts: Mapping[str, int], min_count: int = 0) -> list[str]:
    """Order option values by popularity, most common first.

    Ties break alphabetically. Values seen fewer than ``min_count`` times are
    dropped.
    """
    ranked = sorted(values_with_counts.items(), key=lambda item: (-item[1], item[0]))
    return [value for value, count in ranked if count >= min_count]


class UniqueValuesService(BaseService):
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: Config | None = None,
        caches: CacheRegistry | None = None,
    ) -> None:
        super().__init__(session_factory=session_factory, settings=settings, caches=caches)
        self.cache = self.caches.create("unique_values", self.settings.UNIQUE_VALUES_CACHE_TTL_SECONDS)

    def get_unique_values(self, caller: CallerIdentity | None) -> UniqueValues:
        caller = require_caller(caller)
        return self.cache.get_or_compute(caller.cache_identity, lambda: self._load(caller))

    def _load(self, caller: CallerIdentity) -> UniqueValues:
        try:
            return run_read_with_retry(
                lambda: self._compute(caller),
                max_retries=self.settings.READ_MAX_RETRIES,
                base_backoff_seconds=self.settings.READ_RETRY_BACKOFF_SECONDS,
                operation_name="unique_values",
            )
        except SQLAlchemyError as exc:
            logger.error(
                "unique_values.failed",
                extra=build_log_event(
                    "unique_values.failed",
                    LogContext(user_id=caller.user_id, role=caller.role.value, operation="unique_values"),
                    error=str(exc),
                ),
            )
            raise AggregationUnavailableError(f"Distinct value aggregation failed: {exc}") from exc

    def _compute(self, caller: CallerIdentity) -> UniqueValues:
        with self.store_scope() as store:
            values = {field: store.distinct_values(caller, field) for field in FILTERABLE_FIELDS}
            custom = {key: store.distinct_custom_values(caller, key) for key in store.custom_field_keys()}
        return UniqueValues(**values, custom_fields=custom)
