from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status

from ..core.config import settings
from ..core.security import TokenError, check_admin_login, check_api_key, issue_admin_tokens, rotate_tokens
from ..schemas.auth import LoginRequest, RefreshRequest, TokenRequest, TokenResponse

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=TokenResponse, summary="Administrator login")
async def login(payload: LoginRequest):
    if not check_admin_login(payload.username, payload.password):
        logger.info("auth.login_failed", extra={"extra_data": {"username": payload.username}})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    logger.info("auth.login", extra={"extra_data": {"username": payload.username}})
    return TokenResponse(**issue_admin_tokens(payload.username).model_dump())


@router.post("/token", response_model=TokenResponse, summary="Trade the admin API key for tokens")
async def token_for_api_key(
    payload: TokenRequest,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
):
    if not settings.AUTH_ALLOW_API_KEY or not (settings.API_KEY or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="API key login is disabled")
    if not check_api_key(payload.api_key or x_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return TokenResponse(**issue_admin_tokens("api-key").model_dump())


@router.post("/refresh", response_model=TokenResponse, summary="Rotate an admin token pair")
async def refresh(payload: RefreshRequest):
    try:
        pair = rotate_tokens(payload.refresh_token)
    except TokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return TokenResponse(**pair.model_dump())
