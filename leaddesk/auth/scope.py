"""Caller identity and the role-scope row predicate.

Every resolver (counts, unique values, lists, bulk id resolution) restricts
rows through :func:`scope_predicate`. Admins see every row; any other role
sees only the leads assigned to them.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import ColumnElement

from leaddesk.core.exceptions import AuthorizationRequiredError, UnauthorizedError
from leaddesk.models import Lead, UserRole


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    role: UserRole
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def cache_identity(self) -> str:
        return f"{self.role.value}:{self.user_id}"


def require_caller(caller: CallerIdentity | None) -> CallerIdentity:
    """Reject a missing identity instead of degrading to an empty result."""
    if caller is None or not caller.user_id:
        raise UnauthorizedError()
    return caller


def require_admin(caller: CallerIdentity | None) -> CallerIdentity:
    resolved = require_caller(caller)
    if not resolved.is_admin:
        raise AuthorizationRequiredError()
    return resolved


def scope_predicate(caller: CallerIdentity) -> ColumnElement[bool] | None:
    """Return the implicit row filter for the caller, or ``None`` for admins."""
    if caller.is_admin:
        return None
    return Lead.assigned_to == caller.user_id


def scope_conditions(caller: CallerIdentity) -> list[ColumnElement[bool]]:
    predicate = scope_predicate(caller)
    return [] if predicate is None else [predicate]
