"""Canonical enum values for the LeadDesk schema."""

from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    SALES_REP = "sales_rep"
    VIEWER = "viewer"


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CustomFieldType(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"
    TEXTAREA = "textarea"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"


class PaginationMode(str, enum.Enum):
    STANDARD = "standard"
    INFINITE = "infinite"


# Fixed categorical columns exposed as equality filters.
FILTERABLE_FIELDS: tuple[str, ...] = ("school", "district", "gender", "stream")
