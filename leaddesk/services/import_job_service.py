"""Batched lead import with a progress record per job."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from leaddesk.auth.rbac import require_scopes
from leaddesk.auth.scope import CallerIdentity, require_caller
from leaddesk.core.config import Config
from leaddesk.core.exceptions import NotFoundError
from leaddesk.core.logging import LogContext, build_log_event
from leaddesk.models import CustomField, ImportJob, JobStatus, LeadBucket
from leaddesk.models.base import utcnow
from leaddesk.orchestration.state_machine import JOB_STATE_MACHINE
from leaddesk.repositories.lead_store import LeadStore, chunked
from leaddesk.schemas.jobs import ImportJobResponse
from leaddesk.services.base_service import BaseService
from leaddesk.services.cache import CacheRegistry
from leaddesk.services.job_progress import JobEventChannel

logger = logging.getLogger(__name__)

REQUIRED_IMPORT_FIELDS = ("name", "phone", "school", "district", "gender", "stream")
OPTIONAL_LEAD_COLUMNS = ("email",)


class RowRejected(ValueError):
    pass


class ImportJobService(BaseService):
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: Config | None = None,
        caches: CacheRegistry | None = None,
        channel: JobEventChannel | None = None,
    ) -> None:
        super().__init__(session_factory=session_factory, settings=settings, caches=caches)
        self.channel = channel

    def create_job(
        self,
        caller: CallerIdentity | None,
        file_name: str,
        bucket_id: str | None = None,
    ) -> ImportJobResponse:
        caller = require_caller(caller)
        require_scopes(caller.role.value, ["imports.run"])
        with self.session_scope() as session:
            if bucket_id is not None and session.get(LeadBucket, bucket_id) is None:
                raise NotFoundError(f"Bucket {bucket_id} not found.")
            job = ImportJob(
                file_name=file_name,
                bucket_id=bucket_id,
                created_by=caller.user_id,
                status=JobStatus.PENDING,
                errors=[],
            )
            session.add(job)
            session.flush()
            return ImportJobResponse.model_validate(job)

    def get_job(self, caller: CallerIdentity | None, job_id: str) -> ImportJobResponse:
        caller = require_caller(caller)
        require_scopes(caller.role.value, ["imports.read"])
        with self.session_scope() as session:
            job = session.get(ImportJob, job_id)
            if job is None or (not caller.is_admin and job.created_by != caller.user_id):
                raise NotFoundError(f"Import job {job_id} not found.")
            return ImportJobResponse.model_validate(job)

    # -- execution ------------------------------------------------------------

    @staticmethod
    def _custom_field_map(session: Session, bucket_id: str | None) -> dict[str, str]:
        """Map both labels and names of the bucket's custom fields to field names."""
        if bucket_id is None:
            return {}
        fields = session.execute(select(CustomField).where(CustomField.bucket_id == bucket_id)).scalars().all()
        mapping = {field.label: field.name for field in fields}
        mapping.update({field.name: field.name for field in fields})
        return mapping

    @staticmethod
    def build_lead_row(
        row: dict[str, Any],
        custom_map: dict[str, str],
        bucket_id: str | None,
        created_by: str | None,
    ) -> dict[str, Any]:
        missing = [name for name in REQUIRED_IMPORT_FIELDS if not str(row.get(name) or "").strip()]
        if missing:
            raise RowRejected(f"Missing required fields: {', '.join(missing)}")
        lead: dict[str, Any] = {name: str(row[name]).strip() for name in REQUIRED_IMPORT_FIELDS}
        for name in OPTIONAL_LEAD_COLUMNS:
            if row.get(name):
                lead[name] = str(row[name]).strip()
        lead["custom_fields"] = {
            custom_map[key]: value
            for key, value in row.items()
            if key in custom_map and key not in REQUIRED_IMPORT_FIELDS and value not in (None, "")
        }
        lead["bucket_id"] = bucket_id
        lead["created_by"] = created_by
        return lead

    def _publish(self, job: ImportJob) -> None:
        if self.channel is None:
            return
        try:
            self.channel.publish(job.id, ImportJobResponse.model_validate(job).model_dump(mode="json"))
        except Exception as exc:
            # Subscribers fall back to polling the job record.
            logger.warning(
                "import.publish.failed",
                extra=build_log_event(
                    "import.publish.failed", LogContext(job_id=job.id, operation="import"), error=str(exc)
                ),
            )

    def _save(self, job_id: str, **fields: Any) -> ImportJob:
        with self.session_scope() as session:
            job = session.get(ImportJob, job_id)
            if job is None:
                raise NotFoundError(f"Import job {job_id} not found.")
            target = fields.get("status")
            if target is not None and target is not job.status:
                JOB_STATE_MACHINE.assert_transition(job.status, target)
            for key, value in fields.items():
                setattr(job, key, value)
            session.flush()
        self._publish(job)
        return job

    def run_import(self, job_id: str, rows: Sequence[dict[str, Any]]) -> ImportJobResponse:
        """Insert ``rows`` in batches, updating and publishing progress after each batch.

        The job ends ``failed`` only when every row failed.
        """
        with self.session_scope() as session:
            job = session.get(ImportJob, job_id)
            if job is None:
                raise NotFoundError(f"Import job {job_id} not found.")
            bucket_id, created_by = job.bucket_id, job.created_by
            custom_map = self._custom_field_map(session, bucket_id)

        context = LogContext(user_id=created_by, job_id=job_id, operation="import")
        total = len(rows)
        self._save(job_id, status=JobStatus.PROCESSING, total_rows=total, started_at=utcnow())
        logger.info("import.start", extra=build_log_event("import.start", context, total_rows=total))

        success_count = 0
        failed_count = 0
        errors: list[dict[str, Any]] = []
        processed = 0
        max_errors = self.settings.MAX_REPORTED_ERRORS

        def reject(row_number: int, message: str) -> None:
            nonlocal failed_count
            failed_count += 1
            if len(errors) < max_errors:
                errors.append({"row": row_number, "error": message})

        try:
            for batch in chunked(list(range(total)), self.settings.IMPORT_BATCH_SIZE):
                prepared: list[tuple[int, dict[str, Any]]] = []
                for index in batch:
                    try:
                        prepared.append((index, self.build_lead_row(dict(rows[index]), custom_map, bucket_id, created_by)))
                    except RowRejected as exc:
                        reject(index + 1, str(exc))
                if prepared:
                    try:
                        with self.session_scope() as session:
                            LeadStore(session).insert_many(lead for _, lead in prepared)
                        success_count += len(prepared)
                    except SQLAlchemyError as exc:
                        for index, _ in prepared:
                            reject(index + 1, f"Insert failed: {exc}")
                        logger.error(
                            "import.batch.failed",
                            extra=build_log_event("import.batch.failed", context, rows=len(prepared), error=str(exc)),
                        )
                processed += len(batch)
                self._save(
                    job_id,
                    processed_rows=processed,
                    success_count=success_count,
                    failed_count=failed_count,
                    errors=list(errors),
                )
        except Exception as exc:
            self._save(job_id, status=JobStatus.FAILED, completed_at=utcnow())
            logger.exception("import.failed", extra=build_log_event("import.failed", context, error=str(exc)))
            raise

        status = JobStatus.FAILED if failed_count == total else JobStatus.COMPLETED
        job = self._save(job_id, status=status, processed_rows=total, completed_at=utcnow())
        if success_count:
            self.caches.invalidate_all()
        logger.info(
            "import.finish",
            extra=build_log_event(
                "import.finish",
                context,
                status=status.value,
                success_count=success_count,
                failed_count=failed_count,
            ),
        )
        return ImportJobResponse.model_validate(job)
