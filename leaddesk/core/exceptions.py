"""Custom exceptions for the LeadDesk application."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from leaddesk.services.job_state import BulkJobState


class LeadDeskException(Exception):
    """Base exception for LeadDesk application."""

    pass


class ValidationError(LeadDeskException):
    """Raised when validation fails."""

    pass


class NotFoundError(LeadDeskException):
    """Raised when a resource is not found."""

    pass


class DatabaseError(LeadDeskException):
    """Raised when a database operation fails."""

    pass


class ConfigurationError(LeadDeskException):
    """Raised when configuration is invalid."""

    pass


class AuthenticationError(LeadDeskException):
    """Raised when authentication fails."""

    pass


class AuthorizationError(LeadDeskException):
    """Raised when an authenticated caller lacks permission."""

    pass


class UnauthorizedError(AuthenticationError):
    """Raised when no valid caller identity is available."""

    def __init__(self, message: str = "Authentication required.") -> None:
        super().__init__(message)


class AuthorizationRequiredError(AuthorizationError):
    """Raised when the caller is authenticated but lacks an elevated role."""

    def __init__(self, message: str = "Admin access required.") -> None:
        super().__init__(message)


class QueryError(LeadDeskException):
    """Raised when a read query fails."""

    pass


class QueryTimeoutError(QueryError):
    """Raised when a read query exceeds its deadline.

    Kept distinct from :class:`QueryError` so callers can suggest narrowing
    filters instead of retrying.
    """

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Query timeout after {timeout_seconds:g} seconds.")
        self.timeout_seconds = timeout_seconds


class AggregationUnavailableError(QueryError):
    """Raised when server-side aggregation cannot be computed."""

    pass


class MutationFailedError(LeadDeskException):
    """Raised when a bulk mutation could not proceed at all."""

    def __init__(self, message: str, job: "BulkJobState | None" = None) -> None:
        super().__init__(message)
        self.job = job
