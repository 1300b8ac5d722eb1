from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from leaddesk.auth.jwt import caller_from_token, issue_token, issue_token_pair, sign_token, verify_token
from leaddesk.auth.rbac import has_scopes, require_scopes
from leaddesk.auth.scope import CallerIdentity
from leaddesk.core.config import get_config
from leaddesk.core.dependencies import get_current_caller
from leaddesk.core.exceptions import AuthenticationError, AuthorizationError
from leaddesk.models import UserRole


@pytest.fixture
def cfg():
    return replace(get_config(), JWT_SECRET="test-secret", JWT_PERMISSIONS_VERSION=3)


def test_token_pair_carries_caller_claims(cfg):
    caller = CallerIdentity(user_id="u-10", role=UserRole.ADMIN, email="admin@example.com")

    tokens = issue_token_pair(caller, cfg)
    claims = verify_token(tokens.access_token, secret="test-secret")

    assert claims["sub"] == "u-10"
    assert claims["role"] == "admin"
    assert claims["email"] == "admin@example.com"
    assert claims["permissions_version"] == 3
    assert claims["token_use"] == "access"
    assert claims["exp"] - claims["iat"] == cfg.JWT_ACCESS_TTL_MINUTES * 60
    assert "jti" in claims
    assert verify_token(tokens.refresh_token, secret="test-secret")["token_use"] == "refresh"
    assert tokens.token_type == "bearer"


def test_tampered_malformed_and_expired_tokens_are_rejected(cfg):
    token = issue_token(CallerIdentity(user_id="u-1", role=UserRole.VIEWER), "access", cfg)
    with pytest.raises(AuthenticationError):
        verify_token(token, secret="other-secret")
    with pytest.raises(AuthenticationError):
        verify_token("not.a.jwt", secret="test-secret")
    with pytest.raises(AuthenticationError):
        verify_token("only-one-segment", secret="test-secret")

    expired = sign_token({"sub": "u-1"}, secret="test-secret", ttl=timedelta(seconds=-30))
    with pytest.raises(AuthenticationError, match="expired"):
        verify_token(expired, secret="test-secret")


def test_rbac_blocks_missing_scope():
    require_scopes("viewer", ["leads.read"])
    with pytest.raises(AuthorizationError):
        require_scopes("viewer", ["imports.run"])
    with pytest.raises(AuthorizationError):
        require_scopes("manager", ["leads.bulk"])
    assert has_scopes("admin", ["leads.bulk", "imports.run"])
    assert not has_scopes("unknown-role", ["leads.read"])


def test_access_token_resolves_caller_identity(cfg):
    token = issue_token(CallerIdentity(user_id="u-7", role=UserRole.SALES_REP), "access", cfg)

    caller = get_current_caller(token, settings=cfg)

    assert caller.user_id == "u-7"
    assert caller.role is UserRole.SALES_REP
    assert not caller.is_admin


def test_token_use_and_stale_permissions_are_enforced(cfg):
    admin = CallerIdentity(user_id="u-7", role=UserRole.ADMIN)
    tokens = issue_token_pair(admin, cfg)
    stale = issue_token(admin, "access", replace(cfg, JWT_PERMISSIONS_VERSION=2))

    with pytest.raises(AuthenticationError):
        get_current_caller(tokens.refresh_token, settings=cfg)
    with pytest.raises(AuthenticationError):
        caller_from_token(tokens.access_token, "refresh", cfg)
    with pytest.raises(AuthenticationError, match="out of date"):
        get_current_caller(stale, settings=cfg)
    assert get_current_caller(tokens.access_token, settings=cfg).is_admin
    assert caller_from_token(tokens.refresh_token, "refresh", cfg).user_id == "u-7"


def test_unknown_role_claim_is_rejected(cfg):
    token = sign_token(
        {"sub": "u-1", "role": "superuser", "permissions_version": 3, "token_use": "access"},
        secret="test-secret",
        ttl=timedelta(minutes=5),
    )
    with pytest.raises(AuthenticationError, match="Invalid auth claims"):
        get_current_caller(token, settings=cfg)
