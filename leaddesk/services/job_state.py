"""Progress and failure accounting for bulk mutation jobs."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, Field

from leaddesk.models.base import new_id, utcnow
from leaddesk.models.enums import JobStatus
from leaddesk.orchestration.state_machine import JOB_STATE_MACHINE, InvalidTransitionError

DEFAULT_MAX_REPORTED_ERRORS = 100


@dataclass(frozen=True)
class RowError:
    row_ref: str
    message: str


class RowErrorReport(BaseModel):
    row_ref: str
    message: str


class BulkJobReport(BaseModel):
    """Immutable view of a job handed to callbacks and API responses."""

    job_id: str
    operation: str
    status: JobStatus
    total: int | None = None
    processed: int = 0
    success_count: int = 0
    failed_count: int = 0
    errors: list[RowErrorReport] = Field(default_factory=list)
    omitted_error_count: int = 0
    error_summary: str | None = None
    message: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return JOB_STATE_MACHINE.is_terminal(self.status)

    @property
    def outcome_summary(self) -> str:
        return f"{self.success_count} succeeded, {self.failed_count} failed"


@dataclass
class BulkJobState:
    """Mutable job record owned by a single bulk operation.

    ``processed`` only grows, ``success_count + failed_count <= processed``,
    and once the job is completed or failed every mutator raises.
    """

    operation: str
    max_errors: int = DEFAULT_MAX_REPORTED_ERRORS
    job_id: str = field(default_factory=new_id)
    status: JobStatus = JobStatus.PENDING
    total: int | None = None
    processed: int = 0
    success_count: int = 0
    failed_count: int = 0
    errors: list[RowError] = field(default_factory=list)
    omitted_error_count: int = 0
    message: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return JOB_STATE_MACHINE.is_terminal(self.status)

    def _transition(self, target: JobStatus) -> None:
        JOB_STATE_MACHINE.assert_transition(self.status, target)
        self.status = target

    def _ensure_active(self) -> None:
        if self.status is not JobStatus.PROCESSING:
            raise InvalidTransitionError(f"Job {self.job_id} is not processing (status={self.status.value}).")

    def start(self, total: int) -> None:
        if total < 0:
            raise ValueError("total must be >= 0")
        self._transition(JobStatus.PROCESSING)
        self.total = total
        self.started_at = utcnow()

    def _advance(self, amount: int) -> None:
        if self.total is not None and self.processed + amount > self.total:
            raise ValueError(f"processed would exceed total ({self.processed + amount} > {self.total})")
        self.processed += amount

    def record_success(self, amount: int) -> None:
        self._ensure_active()
        self._advance(amount)
        self.success_count += amount

    def record_failures(self, row_refs: Iterable[str], message: str) -> None:
        self._ensure_active()
        refs = list(row_refs)
        self._advance(len(refs))
        self.failed_count += len(refs)
        for ref in refs:
            if len(self.errors) < self.max_errors:
                self.errors.append(RowError(row_ref=ref, message=message))
            else:
                self.omitted_error_count += 1

    def complete(self, message: str | None = None) -> None:
        self._transition(JobStatus.COMPLETED)
        self.message = message
        self.finished_at = utcnow()

    def fail(self, message: str) -> None:
        self._transition(JobStatus.FAILED)
        self.message = message
        self.finished_at = utcnow()

    @property
    def error_summary(self) -> str | None:
        if self.omitted_error_count:
            return f"+{self.omitted_error_count} more"
        return None

    def report(self) -> BulkJobReport:
        return BulkJobReport(
            job_id=self.job_id,
            operation=self.operation,
            status=self.status,
            total=self.total,
            processed=self.processed,
            success_count=self.success_count,
            failed_count=self.failed_count,
            errors=[RowErrorReport(row_ref=error.row_ref, message=error.message) for error in self.errors],
            omitted_error_count=self.omitted_error_count,
            error_summary=self.error_summary,
            message=self.message,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )
