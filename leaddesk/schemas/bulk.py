"""Bulk assign/delete request and result schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from leaddesk.schemas.filters import FilterCriteria
from leaddesk.services.job_state import BulkJobReport


class AssignmentTarget(BaseModel):
    user_id: str = Field(min_length=1)
    count: int = Field(default=0, ge=0)


class BulkAssignRequest(BaseModel):
    targets: list[AssignmentTarget] = Field(min_length=1)
    total: int | None = Field(default=None, ge=1)
    lead_ids: list[str] | None = None
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    equal_distribution: bool = False

    @model_validator(mode="after")
    def _check_source(self) -> "BulkAssignRequest":
        if self.lead_ids is None and self.total is None and self.equal_distribution:
            raise ValueError("equal distribution over a filter selection needs 'total'")
        return self


class BulkDeleteRequest(BaseModel):
    lead_ids: list[str] | None = None
    count: int | None = Field(default=None, ge=1)
    filters: FilterCriteria = Field(default_factory=FilterCriteria)

    @model_validator(mode="after")
    def _check_source(self) -> "BulkDeleteRequest":
        if self.lead_ids is None and self.count is None:
            raise ValueError("provide 'lead_ids' or 'count' with filters")
        return self


class TargetAssignment(BaseModel):
    user_id: str
    requested: int
    assigned: int


class BulkAssignResult(BaseModel):
    job: BulkJobReport
    assignments: list[TargetAssignment]

    @property
    def total_assigned(self) -> int:
        return sum(item.assigned for item in self.assignments)


class BulkDeleteResult(BaseModel):
    job: BulkJobReport
    deleted_count: int
    server_side: bool = False


class BulkDeleteQueued(BaseModel):
    """Answer for explicit deletes handed to the background worker."""

    task_id: str
    status: str = "queued"
    total: int
