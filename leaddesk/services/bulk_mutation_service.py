"""Filter-driven bulk assignment and deletion.

Ids are always resolved fresh when the mutation runs, newest first, bounded
by ``BULK_MAX_IDS``. Two calls against the same filter snapshot may therefore
act on different rows if the data changed in between; callers that need a
fixed set pass explicit ids.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import NoReturn

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from leaddesk.auth.scope import CallerIdentity, require_admin
from leaddesk.core.config import Config
from leaddesk.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    MutationFailedError,
    ValidationError,
)
from leaddesk.core.logging import LogContext, build_log_event
from leaddesk.models import User
from leaddesk.models.base import utcnow
from leaddesk.repositories.lead_store import KeysetPosition, chunked
from leaddesk.schemas.bulk import AssignmentTarget, BulkAssignResult, BulkDeleteResult, TargetAssignment
from leaddesk.schemas.filters import FilterCriteria
from leaddesk.services.base_service import BaseService
from leaddesk.services.cache import CacheRegistry
from leaddesk.services.job_state import BulkJobReport, BulkJobState
from leaddesk.services.retry import run_read_with_retry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BulkJobReport], None]


def distribute_evenly(total: int, user_ids: Sequence[str]) -> list[AssignmentTarget]:
    """Split ``total`` across users; the first ``total % n`` users get one extra."""
    if not user_ids:
        raise ValidationError("At least one assignment target is required.")
    if total < 0:
        raise ValidationError("total must be >= 0.")
    base, remainder = divmod(total, len(user_ids))
    return [
        AssignmentTarget(user_id=user_id, count=base + (1 if index < remainder else 0))
        for index, user_id in enumerate(user_ids)
    ]


def partition_ids(lead_ids: Sequence[str], targets: Sequence[AssignmentTarget]) -> list[tuple[str, list[str]]]:
    """Hand out ids strictly in list order: target 1 takes the first ``count_1``, and so on."""
    partitions: list[tuple[str, list[str]]] = []
    cursor = 0
    for target in targets:
        partitions.append((target.user_id, list(lead_ids[cursor : cursor + target.count])))
        cursor += target.count
    return partitions


class BulkMutationService(BaseService):
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: Config | None = None,
        caches: CacheRegistry | None = None,
    ) -> None:
        super().__init__(session_factory=session_factory, settings=settings, caches=caches)

    # -- id resolution --------------------------------------------------------

    def resolve_lead_ids(
        self,
        caller: CallerIdentity,
        criteria: FilterCriteria,
        limit: int | None = None,
    ) -> list[str]:
        """Return matching ids newest first, fetched in keyset pages."""
        ceiling = self.settings.BULK_MAX_IDS
        wanted = ceiling if limit is None else max(0, min(limit, ceiling))
        fetch_size = self.settings.BULK_ID_FETCH_PAGE_SIZE

        def fetch() -> list[str]:
            ids: list[str] = []
            after: KeysetPosition | None = None
            with self.store_scope() as store:
                while len(ids) < wanted:
                    batch = store.keyset_ids(caller, criteria, after=after, limit=min(fetch_size, wanted - len(ids)))
                    if not batch:
                        break
                    ids.extend(lead_id for lead_id, _ in batch)
                    last_id, last_created_at = batch[-1]
                    after = (last_created_at, last_id)
                    if len(batch) < fetch_size:
                        break
            return ids

        return run_read_with_retry(
            fetch,
            max_retries=self.settings.READ_MAX_RETRIES,
            base_backoff_seconds=self.settings.READ_RETRY_BACKOFF_SECONDS,
            operation_name="bulk.resolve_ids",
        )

    def _check_id_budget(self, lead_ids: Sequence[str]) -> None:
        if len(lead_ids) > self.settings.BULK_MAX_IDS:
            raise ValidationError(f"At most {self.settings.BULK_MAX_IDS} lead ids can be mutated at once.")

    def _resolve_explicit(self, caller: CallerIdentity, lead_ids: Sequence[str]) -> list[str]:
        self._check_id_budget(lead_ids)
        with self.store_scope() as store:
            return store.scoped_existing_ids(caller, lead_ids)

    # -- shared job plumbing --------------------------------------------------

    def _new_job(self, operation: str) -> BulkJobState:
        return BulkJobState(operation=operation, max_errors=self.settings.MAX_REPORTED_ERRORS)

    @staticmethod
    def _emit(job: BulkJobState, on_progress: ProgressCallback | None) -> None:
        if on_progress is not None:
            on_progress(job.report())

    def _authorize(
        self,
        caller: CallerIdentity | None,
        job: BulkJobState,
        on_progress: ProgressCallback | None,
    ) -> CallerIdentity:
        try:
            return require_admin(caller)
        except (AuthenticationError, AuthorizationError) as exc:
            job.fail(str(exc))
            self._emit(job, on_progress)
            logger.warning(
                f"bulk.{job.operation}.denied",
                extra=build_log_event(
                    f"bulk.{job.operation}.denied",
                    LogContext(
                        user_id=caller.user_id if caller else None,
                        role=caller.role.value if caller else None,
                        job_id=job.job_id,
                        operation=job.operation,
                    ),
                ),
            )
            raise

    def _abort(
        self,
        job: BulkJobState,
        message: str,
        context: LogContext,
        on_progress: ProgressCallback | None,
    ) -> NoReturn:
        job.fail(message)
        self._emit(job, on_progress)
        logger.error(
            f"bulk.{job.operation}.failed",
            extra=build_log_event(f"bulk.{job.operation}.failed", context, reason=message),
        )
        raise MutationFailedError(message, job=job)

    def _finish(self, job: BulkJobState, context: LogContext, on_progress: ProgressCallback | None) -> None:
        if job.success_count == 0:
            self._abort(job, "Every mutation was rejected.", context, on_progress)
        job.complete(job.report().outcome_summary)
        self.caches.invalidate_all()
        self._emit(job, on_progress)
        logger.info(
            f"bulk.{job.operation}.finish",
            extra=build_log_event(
                f"bulk.{job.operation}.finish",
                context,
                success_count=job.success_count,
                failed_count=job.failed_count,
                error_summary=job.error_summary,
            ),
        )

    # -- assign ---------------------------------------------------------------

    def _check_targets(self, targets: Sequence[AssignmentTarget]) -> None:
        user_ids = [target.user_id for target in targets]
        if len(set(user_ids)) != len(user_ids):
            raise ValidationError("Assignment targets must be distinct users.")
        with self.session_scope() as session:
            active = set(
                session.execute(select(User.id).where(User.id.in_(user_ids), User.is_active.is_(True))).scalars()
            )
        unknown = [user_id for user_id in user_ids if user_id not in active]
        if unknown:
            raise ValidationError(f"Unknown or inactive assignment targets: {', '.join(unknown)}")

    def bulk_assign(
        self,
        caller: CallerIdentity | None,
        targets: Sequence[AssignmentTarget],
        total: int | None = None,
        lead_ids: Sequence[str] | None = None,
        criteria: FilterCriteria | None = None,
        equal_distribution: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> BulkAssignResult:
        """Assign leads to targets, one transaction per target, in target order."""
        job = self._new_job("assign")
        caller = self._authorize(caller, job, on_progress)
        context = LogContext(user_id=caller.user_id, role=caller.role.value, job_id=job.job_id, operation="assign")

        if not targets:
            raise ValidationError("At least one assignment target is required.")
        requested_ids = list(dict.fromkeys(lead_ids or []))
        self._check_id_budget(requested_ids)
        if equal_distribution:
            requested = total if total is not None else len(requested_ids)
            targets = distribute_evenly(requested, [target.user_id for target in targets])
        requested = sum(target.count for target in targets)
        self._check_targets(targets)

        considered = requested_ids[:requested]
        try:
            if lead_ids is not None:
                ids = self._resolve_explicit(caller, considered)
            else:
                ids = self.resolve_lead_ids(caller, criteria or FilterCriteria.empty(), limit=requested)
        except SQLAlchemyError as exc:
            self._abort(job, f"Could not resolve leads: {exc}", context, on_progress)
        resolved = set(ids)
        missing = [lead_id for lead_id in considered if lead_id not in resolved]

        logger.info(
            "bulk.assign.start",
            extra=build_log_event(
                "bulk.assign.start",
                context,
                requested=requested,
                resolved=len(ids),
                missing=len(missing),
                targets=len(targets),
            ),
        )
        if not ids:
            self._abort(job, "No leads matched the selection.", context, on_progress)

        job.start(total=len(ids) + len(missing))
        if missing:
            job.record_failures(missing, "Lead not found or not visible to caller.")
        self._emit(job, on_progress)

        assignments: list[TargetAssignment] = []
        for target, (user_id, partition) in zip(targets, partition_ids(ids, targets)):
            assigned = 0
            if partition:
                try:
                    with self.store_scope() as store:
                        store.assign(partition, user_id, assigned_at=utcnow())
                    assigned = len(partition)
                    job.record_success(assigned)
                except SQLAlchemyError as exc:
                    job.record_failures(partition, f"Assignment to {user_id} failed: {exc}")
                    logger.error(
                        "bulk.assign.target.failed",
                        extra=build_log_event(
                            "bulk.assign.target.failed", context, target=user_id, rows=len(partition), error=str(exc)
                        ),
                    )
                self._emit(job, on_progress)
            assignments.append(TargetAssignment(user_id=user_id, requested=target.count, assigned=assigned))

        self._finish(job, context, on_progress)
        return BulkAssignResult(job=job.report(), assignments=assignments)

    # -- delete ---------------------------------------------------------------

    def bulk_delete(
        self,
        caller: CallerIdentity | None,
        lead_ids: Sequence[str] | None = None,
        count: int | None = None,
        criteria: FilterCriteria | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BulkDeleteResult:
        """Delete explicit ids, or the newest ``count`` leads matching ``criteria``.

        Work is split into sequential batches of ``BULK_DELETE_BATCH_SIZE``;
        explicit id lists above ``server_side_delete_threshold`` are deleted in
        one set-based transaction instead.
        """
        job = self._new_job("delete")
        caller = self._authorize(caller, job, on_progress)
        context = LogContext(user_id=caller.user_id, role=caller.role.value, job_id=job.job_id, operation="delete")

        if lead_ids is None and count is None:
            raise ValidationError("Provide lead ids or a count with filters.")
        requested_ids = list(dict.fromkeys(lead_ids or []))
        try:
            if lead_ids is not None:
                ids = self._resolve_explicit(caller, requested_ids)
            else:
                ids = self.resolve_lead_ids(caller, criteria or FilterCriteria.empty(), limit=count)
        except SQLAlchemyError as exc:
            self._abort(job, f"Could not resolve leads: {exc}", context, on_progress)
        resolved = set(ids)
        missing = [lead_id for lead_id in requested_ids if lead_id not in resolved]

        server_side = lead_ids is not None and len(requested_ids) > self.settings.server_side_delete_threshold
        logger.info(
            "bulk.delete.start",
            extra=build_log_event(
                "bulk.delete.start", context, resolved=len(ids), missing=len(missing), server_side=server_side
            ),
        )
        if not ids:
            self._abort(job, "No leads matched the selection.", context, on_progress)

        job.start(total=len(ids) + len(missing))
        if missing:
            job.record_failures(missing, "Lead not found or not visible to caller.")
        self._emit(job, on_progress)

        deleted_count = 0
        if server_side:
            deleted_count = self._delete_server_side(job, ids, context)
            self._emit(job, on_progress)
        else:
            for batch in chunked(ids, self.settings.BULK_DELETE_BATCH_SIZE):
                try:
                    with self.store_scope() as store:
                        store.delete(batch)
                    deleted_count += len(batch)
                    job.record_success(len(batch))
                except SQLAlchemyError as exc:
                    job.record_failures(batch, f"Delete batch failed: {exc}")
                    logger.error(
                        "bulk.delete.batch.failed",
                        extra=build_log_event("bulk.delete.batch.failed", context, rows=len(batch), error=str(exc)),
                    )
                self._emit(job, on_progress)

        self._finish(job, context, on_progress)
        return BulkDeleteResult(job=job.report(), deleted_count=deleted_count, server_side=server_side)

    def _delete_server_side(self, job: BulkJobState, ids: list[str], context: LogContext) -> int:
        try:
            with self.store_scope() as store:
                store.delete(ids)
        except SQLAlchemyError as exc:
            job.record_failures(ids, f"Server-side delete failed: {exc}")
            logger.error(
                "bulk.delete.server_side.failed",
                extra=build_log_event("bulk.delete.server_side.failed", context, rows=len(ids), error=str(exc)),
            )
            return 0
        job.record_success(len(ids))
        return len(ids)
