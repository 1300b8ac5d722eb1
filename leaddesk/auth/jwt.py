"""HS256 bearer tokens for LeadDesk callers.

A token pair is issued per caller: a short-lived access token for API calls
and a refresh token that can only be exchanged for a new pair. Both carry the
caller's role and the deployment's permissions version, so bumping
``JWT_PERMISSIONS_VERSION`` invalidates every outstanding token.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from pydantic import ValidationError as PydanticValidationError

from leaddesk.auth.scope import CallerIdentity
from leaddesk.core.config import Config
from leaddesk.core.exceptions import AuthenticationError
from leaddesk.models import UserRole
from leaddesk.schemas.auth import TokenClaims, TokenResponse

TokenUse = Literal["access", "refresh"]

_HEADER = {"alg": "HS256", "typ": "JWT"}


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _unb64(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _segment(document: dict[str, Any]) -> str:
    return _b64(json.dumps(document, separators=(",", ":"), sort_keys=True).encode("utf-8"))


def _signature(signing_input: str, secret: str) -> str:
    return _b64(hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest())


def sign_token(claims: dict[str, Any], secret: str, ttl: timedelta) -> str:
    """Sign ``claims`` with ``iat``/``exp``/``jti`` stamped in."""
    if not secret:
        raise AuthenticationError("JWT secret must be configured.")
    issued_at = datetime.now(timezone.utc)
    body = {
        **claims,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ttl).timestamp()),
        "jti": uuid.uuid4().hex,
    }
    signing_input = f"{_segment(_HEADER)}.{_segment(body)}"
    return f"{signing_input}.{_signature(signing_input, secret)}"


def verify_token(token: str, secret: str) -> dict[str, Any]:
    """Check signature and expiry; return the raw claims."""
    if not secret:
        raise AuthenticationError("JWT secret must be configured.")
    parts = token.split(".")
    if len(parts) != 3:
        raise AuthenticationError("Invalid token format.")
    signing_input = f"{parts[0]}.{parts[1]}"
    if not hmac.compare_digest(_signature(signing_input, secret), parts[2]):
        raise AuthenticationError("Invalid token signature.")
    try:
        claims = json.loads(_unb64(parts[1]))
    except ValueError as exc:
        raise AuthenticationError("Invalid token payload.") from exc
    if not isinstance(claims, dict) or "exp" not in claims:
        raise AuthenticationError("Token is missing exp claim.")
    if int(claims["exp"]) < int(datetime.now(timezone.utc).timestamp()):
        raise AuthenticationError("Token has expired.")
    return claims


def issue_token(caller: CallerIdentity, token_use: TokenUse, cfg: Config) -> str:
    ttl = (
        timedelta(minutes=cfg.JWT_ACCESS_TTL_MINUTES)
        if token_use == "access"
        else timedelta(days=cfg.JWT_REFRESH_TTL_DAYS)
    )
    claims = {
        "sub": caller.user_id,
        "role": caller.role.value,
        "email": caller.email,
        "permissions_version": cfg.JWT_PERMISSIONS_VERSION,
        "token_use": token_use,
    }
    return sign_token(claims, secret=cfg.JWT_SECRET, ttl=ttl)


def issue_token_pair(caller: CallerIdentity, cfg: Config) -> TokenResponse:
    return TokenResponse(
        access_token=issue_token(caller, "access", cfg),
        refresh_token=issue_token(caller, "refresh", cfg),
    )


def caller_from_token(token: str, token_use: TokenUse, cfg: Config) -> CallerIdentity:
    """Resolve the caller a token was issued to, rejecting the wrong use or a stale permissions version."""
    try:
        claims = TokenClaims.model_validate(verify_token(token, secret=cfg.JWT_SECRET))
        role = UserRole(claims.role.lower())
    except (PydanticValidationError, ValueError) as exc:
        raise AuthenticationError("Invalid auth claims.") from exc
    if claims.token_use != token_use:
        raise AuthenticationError(f"Expected a {token_use} token.")
    if claims.permissions_version != cfg.JWT_PERMISSIONS_VERSION:
        raise AuthenticationError("Token permissions are out of date.")
    return CallerIdentity(user_id=claims.sub, role=role, email=claims.email)
