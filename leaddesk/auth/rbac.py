"""Role-based authorization helpers."""

from __future__ import annotations

from leaddesk.core.exceptions import AuthorizationRequiredError

# Scope strings are kept explicit for endpoint-level declarations.
ROLE_SCOPES: dict[str, set[str]] = {
    "admin": {
        "*",
    },
    "manager": {
        "leads.read",
        "leads.counts",
        "imports.run",
        "imports.read",
    },
    "sales_rep": {
        "leads.read",
        "leads.counts",
        "imports.read",
    },
    "viewer": {
        "leads.read",
        "leads.counts",
    },
}


def get_scopes_for_role(role: str) -> set[str]:
    """Return scopes granted to a role."""
    return ROLE_SCOPES.get(role.lower(), set())


def has_scopes(role: str, required_scopes: list[str] | set[str] | tuple[str, ...]) -> bool:
    """Check if role includes every required scope."""
    granted = get_scopes_for_role(role)
    if "*" in granted:
        return True
    return set(required_scopes).issubset(granted)


def require_scopes(role: str, required_scopes: list[str] | set[str] | tuple[str, ...]) -> None:
    """Raise when a role lacks required scopes."""
    if has_scopes(role=role, required_scopes=required_scopes):
        return
    missing = sorted(set(required_scopes) - get_scopes_for_role(role))
    raise AuthorizationRequiredError(f"Missing required scopes: {', '.join(missing)}")
