"""SQLAlchemy model package for the LeadDesk schema."""

from leaddesk.models.base import Base
from leaddesk.models.bucket import CustomField, LeadBucket
from leaddesk.models.enums import (
    FILTERABLE_FIELDS,
    CustomFieldType,
    JobStatus,
    PaginationMode,
    UserRole,
)
from leaddesk.models.import_job import ImportJob
from leaddesk.models.lead import Lead
from leaddesk.models.user import User

__all__ = [
    "Base",
    "CustomField",
    "CustomFieldType",
    "FILTERABLE_FIELDS",
    "ImportJob",
    "JobStatus",
    "Lead",
    "LeadBucket",
    "PaginationMode",
    "User",
    "UserRole",
]
