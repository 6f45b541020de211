"""
User account service: registration and credential checks.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskhub_server.core.auth import hash_password, verify_password
from taskhub_server.core.errors import AuthenticationFailed, Conflict
from taskhub_server.models.user import User
from taskhub_shared.schemas.auth import LoginRequest, RegisterRequest

log = structlog.get_logger()


async def get_user_by_email(session: AsyncSession, email: str):
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def register_user(session: AsyncSession, req: RegisterRequest) -> User:
    """Create a user account. Emails are unique, compared case-insensitively."""
    if await get_user_by_email(session, req.email):
        raise Conflict("Email already registered")

    user = User(
        email=req.email.lower(),
        name=req.name,
        password_hash=hash_password(req.password),
    )
    session.add(user)
    await session.flush()

    log.info("user.registered", user_id=str(user.id))
    return user


async def authenticate_user(session: AsyncSession, req: LoginRequest) -> User:
    user = await get_user_by_email(session, req.email)
    if not user or not verify_password(req.password, user.password_hash):
        log.warning("auth.login_failure", email=req.email)
        raise AuthenticationFailed("Invalid email or password", code="invalid_credentials")

    log.info("auth.login_success", user_id=str(user.id))
    return user
