"""Import job schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from leaddesk.models.enums import JobStatus
from leaddesk.orchestration.state_machine import JOB_STATE_MACHINE


class ImportJobCreate(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    bucket_id: str | None = None
    rows: list[dict[str, Any]] = Field(min_length=1)
    run_async: bool = True


class ImportJobResponse(BaseModel):
    """Snapshot of an import job, used for API responses and progress events."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    bucket_id: str | None = None
    status: JobStatus
    total_rows: int | None = None
    processed_rows: int = 0
    success_count: int = 0
    failed_count: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return JOB_STATE_MACHINE.is_terminal(self.status)
