"""
Authentication for Taskhub.

Supports:
- Email/Password credentials (bcrypt)
- Short-lived access tokens sent as ``Authorization: Bearer``
- Long-lived refresh tokens sent as an httpOnly cookie, rotated on every use
- Redis revocation list for rotated / logged-out refresh tokens

Authorization (who may do what) lives in ``taskhub_server.core.guard``;
this module only establishes *who* is calling.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub_server.core.config import get_settings
from taskhub_server.core.database import get_session
from taskhub_server.core.errors import AuthenticationFailed
from taskhub_server.core.redis import get_redis, revoked_key
from taskhub_server.models.user import User
from taskhub_shared.schemas.auth import TOKEN_EXPIRED_MESSAGE, TOKEN_MISSING_MESSAGE

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str
    refresh_jti: str
    refresh_expires_at: datetime


def create_jwt(
    user_id: uuid.UUID,
    token_type: str,
    *,
    expires_delta: timedelta,
) -> tuple[str, str, datetime]:
    """Create a signed JWT. Returns (token, jti, expires_at)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + expires_delta
    payload = {
        "sub": str(user_id),
        "typ": token_type,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti, exp


def issue_tokens(
    user_id: uuid.UUID,
    *,
    access_expires: Optional[timedelta] = None,
    refresh_expires: Optional[timedelta] = None,
) -> TokenPair:
    """Issue a fresh access/refresh pair for a user."""
    access, _, _ = create_jwt(
        user_id,
        ACCESS_TOKEN,
        expires_delta=access_expires or timedelta(minutes=settings.access_token_expire_minutes),
    )
    refresh, jti, refresh_exp = create_jwt(
        user_id,
        REFRESH_TOKEN,
        expires_delta=refresh_expires or timedelta(days=settings.refresh_token_expire_days),
    )
    return TokenPair(access, refresh, jti, refresh_exp)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def verify_token(token: str, token_type: str) -> dict:
    """Decode a token of the expected type or raise AuthenticationFailed.

    The messages are part of the refresh wire contract: clients retry on
    "jwt expired" and treat everything else as a hard failure.
    """
    try:
        payload = decode_jwt(token)
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed(TOKEN_EXPIRED_MESSAGE, code="token_expired")
    except jwt.PyJWTError:
        raise AuthenticationFailed("invalid token", code="token_invalid")

    if payload.get("typ") != token_type or "sub" not in payload:
        raise AuthenticationFailed("invalid token", code="token_invalid")
    return payload


# ---------------------------------------------------------------------------
# Refresh-token revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_refresh_token(jti: str, ttl_seconds: int) -> None:
    """Add a refresh token id to the revocation list until it would expire anyway."""
    redis = await get_redis()
    await redis.setex(revoked_key(jti), max(ttl_seconds, 1), "1")


async def claim_refresh_token(jti: str, ttl_seconds: int) -> bool:
    """Revoke a refresh token id unless it already is, in one step.

    Returns False when the id was already on the revocation list, so of two
    concurrent refreshes with the same token only one succeeds.
    """
    redis = await get_redis()
    return bool(await redis.set(revoked_key(jti), "1", ex=max(ttl_seconds, 1), nx=True))


def seconds_until(exp: int | float | datetime) -> int:
    if isinstance(exp, datetime):
        exp = exp.timestamp()
    return int(exp - datetime.now(timezone.utc).timestamp())


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------

class Principal:
    """The authenticated caller. Its id is passed explicitly into every guard call."""

    def __init__(self, user: User):
        self.user = user
        self.user_id = user.id
        self.email = user.email


async def get_current_principal(
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> Principal:
    """Authenticate a request by its bearer access token."""
    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
    if not token:
        raise AuthenticationFailed(TOKEN_MISSING_MESSAGE, code="token_missing")

    payload = verify_token(token, ACCESS_TOKEN)

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise AuthenticationFailed("invalid token", code="token_invalid")

    user = await session.get(User, user_id)
    if not user:
        raise AuthenticationFailed("User not found", code="user_not_found")
    return Principal(user)
