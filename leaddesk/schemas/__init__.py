"""Pydantic schema package for API contracts."""

from leaddesk.schemas.auth import DevTokenRequest, RefreshRequest, TokenClaims, TokenResponse
from leaddesk.schemas.bulk import (
    AssignmentTarget,
    BulkAssignRequest,
    BulkAssignResult,
    BulkDeleteRequest,
    BulkDeleteResult,
    TargetAssignment,
)
from leaddesk.schemas.filters import DateRange, FilterCriteria
from leaddesk.schemas.jobs import ImportJobCreate, ImportJobResponse
from leaddesk.schemas.leads import (
    CountsRequest,
    LeadCounts,
    LeadPage,
    LeadResponse,
    LeadScrollPage,
    PageRequest,
    ScrollRequest,
    UniqueValues,
)

__all__ = [
    "AssignmentTarget",
    "BulkAssignRequest",
    "BulkAssignResult",
    "BulkDeleteRequest",
    "BulkDeleteResult",
    "CountsRequest",
    "DateRange",
    "DevTokenRequest",
    "FilterCriteria",
    "ImportJobCreate",
    "ImportJobResponse",
    "LeadCounts",
    "LeadPage",
    "LeadResponse",
    "LeadScrollPage",
    "PageRequest",
    "RefreshRequest",
    "ScrollRequest",
    "TargetAssignment",
    "TokenClaims",
    "TokenResponse",
    "UniqueValues",
]
