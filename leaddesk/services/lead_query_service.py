"""Paged lead reads in offset and cursor (infinite scroll) modes.

Both modes order rows by ``created_at DESC, id DESC`` and use the same scope
and filter predicates, so walking either mode to the end yields the same rows.
Each read runs under a database-enforced deadline of ``QUERY_TIMEOUT_SECONDS``
measured from the moment the request starts, retries included.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from leaddesk.auth.scope import CallerIdentity, require_caller
from leaddesk.core.config import Config
from leaddesk.core.exceptions import QueryError, QueryTimeoutError, ValidationError
from leaddesk.core.logging import LogContext, build_log_event
from leaddesk.database.deadline import is_deadline_error, statement_deadline
from leaddesk.repositories.lead_store import KeysetPosition, LeadStore
from leaddesk.schemas.filters import FilterCriteria
from leaddesk.schemas.leads import LeadPage, LeadResponse, LeadScrollPage
from leaddesk.services.base_service import BaseService
from leaddesk.services.cache import CacheRegistry
from leaddesk.services.retry import run_read_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def encode_cursor(created_at: datetime, lead_id: str) -> str:
    payload = json.dumps({"created_at": created_at.isoformat(), "id": lead_id}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> KeysetPosition:
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8"))
        return datetime.fromisoformat(payload["created_at"]), str(payload["id"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise ValidationError("Invalid pagination cursor.") from exc


class LeadQueryService(BaseService):
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: Config | None = None,
        caches: CacheRegistry | None = None,
    ) -> None:
        super().__init__(session_factory=session_factory, settings=settings, caches=caches)
        self.cache = self.caches.create("lead_lists", self.settings.LIST_CACHE_TTL_SECONDS)

    def _check_page_size(self, page_size: int | None) -> int:
        size = page_size or self.settings.DEFAULT_PAGE_SIZE
        if not 1 <= size <= self.settings.MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {self.settings.MAX_PAGE_SIZE}.")
        return size

    def query_page(
        self,
        caller: CallerIdentity | None,
        criteria: FilterCriteria,
        page: int = 0,
        page_size: int | None = None,
    ) -> LeadPage:
        """Return one offset page plus the exact filtered total.

        A failed read comes back as an empty page flagged ``degraded``; only
        timeouts and identity errors are raised.
        """
        caller = require_caller(caller)
        if page < 0:
            raise ValidationError("page must be >= 0.")
        size = self._check_page_size(page_size)
        key = f"page|{caller.cache_identity}|{criteria.canonical_json()}|{page}|{size}"

        def load(store: LeadStore) -> LeadPage:
            rows = store.page(caller, criteria, offset=page * size, limit=size)
            total = store.count(caller, criteria)
            return LeadPage(
                rows=[LeadResponse.model_validate(row) for row in rows],
                page=page,
                page_size=size,
                total_count=total,
            )

        try:
            return self.cache.get_or_compute(key, lambda: self._bounded(caller, "query_page", load))
        except QueryTimeoutError:
            raise
        except QueryError as exc:
            self._log_degraded(caller, "query_page", exc)
            return LeadPage(rows=[], page=page, page_size=size, total_count=0, degraded=True, error=str(exc))

    def query_scroll(
        self,
        caller: CallerIdentity | None,
        criteria: FilterCriteria,
        cursor: str | None = None,
        page_size: int | None = None,
    ) -> LeadScrollPage:
        """Return the rows strictly after ``cursor`` in newest-first order."""
        caller = require_caller(caller)
        size = self._check_page_size(page_size)
        after = decode_cursor(cursor) if cursor else None
        key = f"scroll|{caller.cache_identity}|{criteria.canonical_json()}|{cursor or ''}|{size}"

        def load(store: LeadStore) -> LeadScrollPage:
            rows = store.keyset_page(caller, criteria, after=after, limit=size)
            return LeadScrollPage(
                rows=[LeadResponse.model_validate(row) for row in rows],
                page_size=size,
                next_cursor=encode_cursor(rows[-1].created_at, rows[-1].id) if rows else cursor,
                has_next_page=len(rows) == size,
            )

        try:
            return self.cache.get_or_compute(key, lambda: self._bounded(caller, "query_scroll", load))
        except QueryTimeoutError:
            raise
        except QueryError as exc:
            self._log_degraded(caller, "query_scroll", exc)
            # Keep the cursor so the caller can retry the same position.
            return LeadScrollPage(rows=[], page_size=size, next_cursor=cursor, degraded=True, error=str(exc))

    def _bounded(self, caller: CallerIdentity, operation: str, load: Callable[[LeadStore], T]) -> T:
        timeout = self.settings.QUERY_TIMEOUT_SECONDS
        expires_at = time.monotonic() + timeout

        def attempt() -> T:
            remaining = expires_at - time.monotonic()
            if remaining <= 0:
                raise QueryTimeoutError(timeout)
            with self.store_scope() as store:
                try:
                    with statement_deadline(store.session, remaining):
                        return load(store)
                except DBAPIError as exc:
                    if is_deadline_error(exc):
                        raise QueryTimeoutError(timeout) from exc
                    raise

        context = LogContext(user_id=caller.user_id, role=caller.role.value, operation=operation)
        try:
            return run_read_with_retry(
                attempt,
                max_retries=self.settings.READ_MAX_RETRIES,
                base_backoff_seconds=self.settings.READ_RETRY_BACKOFF_SECONDS,
                operation_name=operation,
            )
        except QueryTimeoutError:
            logger.warning(
                "leads.query.timeout",
                extra=build_log_event("leads.query.timeout", context, timeout_seconds=timeout),
            )
            raise
        except SQLAlchemyError as exc:
            raise QueryError(f"Lead query failed: {exc}") from exc

    @staticmethod
    def _log_degraded(caller: CallerIdentity, operation: str, exc: Exception) -> None:
        logger.warning(
            "leads.query.degraded",
            extra=build_log_event(
                "leads.query.degraded",
                LogContext(user_id=caller.user_id, role=caller.role.value, operation=operation),
                error=str(exc),
            ),
        )


class InfiniteLeadFeed:
    """Accumulates scroll pages for one filter snapshot, skipping repeated ids."""

    def __init__(
        self,
        service: LeadQueryService,
        caller: CallerIdentity,
        criteria: FilterCriteria,
        page_size: int | None = None,
    ) -> None:
        self.service = service
        self.caller = caller
        self.criteria = criteria
        self.page_size = page_size
        self.rows: list[LeadResponse] = []
        self._seen: set[str] = set()
        self._cursor: str | None = None
        self.has_next_page = True
        self.error: str | None = None

    def reset(self, criteria: FilterCriteria | None = None) -> None:
        if criteria is not None:
            self.criteria = criteria
        self.rows = []
        self._seen.clear()
        self._cursor = None
        self.has_next_page = True
        self.error = None

    def load_more(self) -> list[LeadResponse]:
        if not self.has_next_page:
            return []
        page = self.service.query_scroll(self.caller, self.criteria, cursor=self._cursor, page_size=self.page_size)
        if page.degraded:
            # Position is kept; the next call retries the same page.
            self.error = page.error
            return []
        self.error = None
        fresh = [row for row in page.rows if row.id not in self._seen]
        self._seen.update(row.id for row in fresh)
        self.rows.extend(fresh)
        self._cursor = page.next_cursor
        self.has_next_page = page.has_next_page
        return fresh
