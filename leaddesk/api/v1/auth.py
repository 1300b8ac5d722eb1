"""Auth endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select

from leaddesk.auth.jwt import caller_from_token, issue_token_pair
from leaddesk.auth.scope import CallerIdentity
from leaddesk.core.config import get_config
from leaddesk.core.exceptions import AuthenticationError
from leaddesk.database.db import get_db_session
from leaddesk.models import User
from leaddesk.schemas.auth import DevTokenRequest, RefreshRequest, TokenResponse

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token", response_model=TokenResponse)
def issue_dev_token(payload: DevTokenRequest) -> TokenResponse:
    cfg = get_config()
    if cfg.is_production:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found.")
    with get_db_session() as session:
        user = session.execute(select(User).where(User.email == payload.email.strip().lower())).scalar_one_or_none()
        if user is None or not user.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or inactive user.")
        caller = CallerIdentity(user_id=user.id, role=user.role, email=user.email)
    return issue_token_pair(caller, cfg)


@router.post("/refresh", response_model=TokenResponse)
def refresh(payload: RefreshRequest) -> TokenResponse:
    cfg = get_config()
    try:
        caller = caller_from_token(payload.refresh_token, "refresh", cfg)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return issue_token_pair(caller, cfg)
