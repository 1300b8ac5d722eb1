"""Lead request/response schemas for API contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from leaddesk.schemas.filters import FilterCriteria


class AssignedUserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None = None


class LeadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    school: str | None = None
    district: str | None = None
    gender: str | None = None
    stream: str | None = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    bucket_id: str | None = None
    assigned_to: str | None = None
    assignment_date: datetime | None = None
    assigned_user: AssignedUserSummary | None = None
    created_at: datetime
    updated_at: datetime | None = None


class LeadCounts(BaseModel):
    filtered_count: int = 0
    total_count: int = 0
    has_active_filters: bool = False
    per_field_counts: dict[str, dict[str, int]] = Field(default_factory=dict)
    custom_field_counts: dict[str, dict[str, int]] = Field(default_factory=dict)
    degraded: bool = False
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any(self.per_field_counts.values()) and not any(self.custom_field_counts.values())


class UniqueValues(BaseModel):
    school: list[str] = Field(default_factory=list)
    district: list[str] = Field(default_factory=list)
    gender: list[str] = Field(default_factory=list)
    stream: list[str] = Field(default_factory=list)
    custom_fields: dict[str, list[str]] = Field(default_factory=dict)
    degraded: bool = False
    error: str | None = None


class LeadPage(BaseModel):
    rows: list[LeadResponse]
    page: int
    page_size: int
    total_count: int
    degraded: bool = False
    error: str | None = None

    @computed_field
    @property
    def has_next_page(self) -> bool:
        return (self.page + 1) * self.page_size < self.total_count


class LeadScrollPage(BaseModel):
    rows: list[LeadResponse]
    page_size: int
    next_cursor: str | None = None
    has_next_page: bool = False
    degraded: bool = False
    error: str | None = None


class CountsRequest(BaseModel):
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    bust_cache: bool = False


class PageRequest(BaseModel):
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    page: int = Field(default=0, ge=0)
    page_size: int = Field(default=100, ge=1, le=1000)


class ScrollRequest(BaseModel):
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    cursor: str | None = None
    page_size: int = Field(default=100, ge=1, le=1000)
