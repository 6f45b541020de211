"""
Shared fixtures for server tests.

Services run against an in-memory SQLite database (one connection shared via
StaticPool so every session sees the same tables). API tests drive the real
app through httpx's ASGI transport with ``get_session`` overridden.
"""

import os

os.environ.setdefault("TASKHUB_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TASKHUB_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("TASKHUB_COOKIE_SECURE", "false")
os.environ.setdefault("TASKHUB_LOG_FORMAT", "text")

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import taskhub_server.models  # noqa: F401  (populate metadata)
from taskhub_server.core.auth import hash_password, issue_tokens
from taskhub_server.core.database import get_session
from taskhub_server.main import app as taskhub_app
from taskhub_server.models.membership import OrganizationUser, ProjectUser, TeamUser
from taskhub_server.models.organization import Organization
from taskhub_server.models.project import Project
from taskhub_server.models.team import Team
from taskhub_server.models.user import User


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(session):
    async def _make(email=None, name="Test User"):
        user = User(
            email=email or f"{uuid.uuid4().hex[:10]}@example.com",
            name=name,
            password_hash=hash_password("password123"),
        )
        session.add(user)
        await session.flush()
        return user
    return _make


@pytest.fixture
def make_org(session):
    async def _make(owner, title=None, join_code=None):
        org = Organization(
            title=title or f"Org {uuid.uuid4().hex[:8]}",
            join_code=join_code or uuid.uuid4().hex,
        )
        session.add(org)
        await session.flush()
        session.add(OrganizationUser(user_id=owner.id, org_id=org.id, role="owner"))
        await session.flush()
        return org
    return _make


@pytest.fixture
def add_member(session):
    async def _add(org, user, role="member", status="active"):
        membership = OrganizationUser(user_id=user.id, org_id=org.id, role=role, status=status)
        session.add(membership)
        await session.flush()
        return membership
    return _add


@pytest.fixture
def make_team(session):
    async def _make(org, leader=None, title=None):
        team = Team(org_id=org.id, title=title or f"Team {uuid.uuid4().hex[:6]}")
        session.add(team)
        await session.flush()
        if leader is not None:
            session.add(TeamUser(user_id=leader.id, team_id=team.id, org_id=org.id, role="leader"))
            await session.flush()
        return team
    return _make


@pytest.fixture
def make_project(session):
    async def _make(org, manager=None, title=None):
        project = Project(org_id=org.id, title=title or f"Project {uuid.uuid4().hex[:6]}")
        session.add(project)
        await session.flush()
        if manager is not None:
            session.add(
                ProjectUser(user_id=manager.id, project_id=project.id, org_id=org.id, role="manager")
            )
            await session.flush()
        return project
    return _make


@pytest.fixture
def add_scope_row(session):
    async def _add(model, scope, user, role="member", status="active"):
        key = "team_id" if model is TeamUser else "project_id"
        row = model(
            user_id=user.id, org_id=scope.org_id, role=role, status=status, **{key: scope.id}
        )
        session.add(row)
        await session.flush()
        return row
    return _add


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

@pytest.fixture
def redis_mock():
    """In-memory stand-in for the refresh-token revocation list."""
    revoked = set()

    async def revoke(jti, ttl_seconds):
        revoked.add(jti)

    async def claim(jti, ttl_seconds):
        if jti in revoked:
            return False
        revoked.add(jti)
        return True

    with patch("taskhub_server.api.v1.auth.revoke_refresh_token", AsyncMock(side_effect=revoke)), \
         patch("taskhub_server.api.v1.auth.claim_refresh_token", AsyncMock(side_effect=claim)):
        yield revoked


@pytest.fixture
async def client(session_factory, redis_mock):
    async def _get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    taskhub_app.dependency_overrides[get_session] = _get_session
    async with AsyncClient(transport=ASGITransport(app=taskhub_app), base_url="http://testserver") as ac:
        yield ac
    taskhub_app.dependency_overrides.clear()


@pytest.fixture
def bearer():
    def _headers(user):
        return {"Authorization": f"Bearer {issue_tokens(user.id).access_token}"}
    return _headers
