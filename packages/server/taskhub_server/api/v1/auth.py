"""
Authentication endpoints.

- Email/Password registration & login
- Access-token refresh from the httpOnly refresh cookie (rotated on every use)
- Logout (revokes the refresh token)

Access tokens travel in the response body and come back as
``Authorization: Bearer``; the refresh token only ever travels as a cookie.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Cookie, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub_server.core.auth import (
    REFRESH_TOKEN,
    Principal,
    TokenPair,
    claim_refresh_token,
    get_current_principal,
    issue_tokens,
    revoke_refresh_token,
    seconds_until,
    verify_token,
)
from taskhub_server.core.config import get_settings
from taskhub_server.core.database import get_session
from taskhub_server.core.errors import AuthenticationFailed
from taskhub_server.models.user import User
from taskhub_server.services import users as user_service
from taskhub_shared.schemas.auth import (
    REFRESH_TOKEN_COOKIE,
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UserProfile,
)
from taskhub_shared.schemas.common import MessageResponse

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()


def _set_refresh_cookie(response: Response, tokens: TokenPair) -> None:
    response.set_cookie(
        key=REFRESH_TOKEN_COOKIE,
        value=tokens.refresh_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        domain=settings.cookie_domain,
        path="/",
        max_age=max(seconds_until(tokens.refresh_expires_at), 0),
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/", domain=settings.cookie_domain)


def _auth_response(user: User, tokens: TokenPair) -> AuthResponse:
    return AuthResponse(user=UserProfile.model_validate(user), access_token=tokens.access_token)


# ---------------------------------------------------------------------------
# Email/Password
# ---------------------------------------------------------------------------

@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Register a new user and start a session."""
    user = await user_service.register_user(session, body)
    tokens = issue_tokens(user.id)
    _set_refresh_cookie(response, tokens)
    return _auth_response(user, tokens)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and start a session."""
    user = await user_service.authenticate_user(session, body)
    tokens = issue_tokens(user.id)
    _set_refresh_cookie(response, tokens)
    return _auth_response(user, tokens)


# ---------------------------------------------------------------------------
# Session Management
# ---------------------------------------------------------------------------

@router.post("/login/access-token", response_model=AuthResponse)
async def refresh_access_token(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_TOKEN_COOKIE),
    session: AsyncSession = Depends(get_session),
):
    """Exchange the refresh cookie for a new access token and a rotated refresh cookie.

    An expired refresh token fails with the message "jwt expired", which is
    what tells a client its session is over.
    """
    if not refresh_token:
        raise AuthenticationFailed(
            "Refresh token not passed",
            code="refresh_missing",
            headers={"set-cookie": f'{REFRESH_TOKEN_COOKIE}=""; Max-Age=0; Path=/; SameSite=lax'},
        )

    payload = verify_token(refresh_token, REFRESH_TOKEN)

    jti = payload.get("jti")
    if not jti or not await claim_refresh_token(jti, seconds_until(payload["exp"])):
        log.warning("auth.refresh_revoked", user_id=payload.get("sub"))
        raise AuthenticationFailed("Session has been revoked", code="session_revoked")

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise AuthenticationFailed("invalid token", code="token_invalid")

    user = await session.get(User, user_id)
    if not user:
        raise AuthenticationFailed("User not found", code="user_not_found")

    tokens = issue_tokens(user.id)
    _set_refresh_cookie(response, tokens)

    log.info("auth.refreshed", user_id=str(user.id))
    return _auth_response(user, tokens)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_TOKEN_COOKIE),
):
    """End the session: revoke the refresh token and clear its cookie."""
    if refresh_token:
        try:
            payload = verify_token(refresh_token, REFRESH_TOKEN)
        except AuthenticationFailed:
            payload = {}  # Already unusable, just clear the cookie
        if payload.get("jti"):
            await revoke_refresh_token(payload["jti"], seconds_until(payload["exp"]))
            log.info("auth.logout", user_id=payload.get("sub"))

    _clear_refresh_cookie(response)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserProfile)
async def me(principal: Principal = Depends(get_current_principal)):
    """Return the authenticated user's profile."""
    return UserProfile.model_validate(principal.user)
