"""Shared authorization helpers for API v1 route modules."""

from __future__ import annotations

from fastapi import HTTPException, status

from leaddesk.auth.rbac import require_scopes
from leaddesk.auth.scope import CallerIdentity
from leaddesk.core.config import get_config
from leaddesk.core.dependencies import get_current_caller
from leaddesk.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    LeadDeskException,
    MutationFailedError,
    NotFoundError,
    QueryTimeoutError,
    ValidationError,
)


def _extract_bearer_token(authorization: str | None) -> str:
    if authorization is None or not authorization.strip():
        raise AuthenticationError("Authorization header is required.")
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Authorization header must use Bearer token.")
    return parts[1].strip()


def authorize(authorization: str | None, scopes: list[str]) -> CallerIdentity:
    token = _extract_bearer_token(authorization)
    caller = get_current_caller(token=token, settings=get_config())
    require_scopes(caller.role.value, scopes)
    return caller


def map_auth_error(exc: Exception) -> tuple[int, str]:
    if isinstance(exc, AuthenticationError):
        return 401, str(exc)
    if isinstance(exc, AuthorizationError):
        return 403, str(exc)
    return 401, "Unauthorized."


def authorize_or_raise(authorization: str | None, scopes: list[str]) -> CallerIdentity:
    try:
        return authorize(authorization=authorization, scopes=scopes)
    except LeadDeskException as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc


def to_http_error(exc: LeadDeskException) -> HTTPException:
    """Translate a domain error raised by a service into an HTTP error."""
    if isinstance(exc, (AuthenticationError, AuthorizationError)):
        code, detail = map_auth_error(exc)
        return HTTPException(status_code=code, detail=detail)
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, QueryTimeoutError):
        return HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=f"{exc} Narrow your filters and try again.",
        )
    if isinstance(exc, MutationFailedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "job": exc.job.report().model_dump(mode="json") if exc.job is not None else None,
            },
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
