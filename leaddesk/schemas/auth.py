"""Auth schema module."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DevTokenRequest(BaseModel):
    """Token issuance for an existing active user; password checks live upstream."""

    email: str = Field(min_length=3, max_length=320)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenClaims(BaseModel):
    sub: str
    role: str
    email: str | None = None
    permissions_version: int = 1
    exp: int
    iat: int
    jti: str
    token_use: str
