"""
Organization service: org CRUD, join codes and the cascading delete.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskhub_server.core.config import get_settings
from taskhub_server.core.errors import Conflict
from taskhub_server.core.guard import require
from taskhub_server.core.membership import ResourcePath, Resolution, get_active_organization
from taskhub_server.models.membership import OrganizationUser, ProjectUser, TeamUser
from taskhub_server.models.organization import Organization
from taskhub_server.models.project import Project
from taskhub_server.models.team import Team
from taskhub_shared.schemas.common import AccessStatus, Action, OrgRole, OrgStatus
from taskhub_shared.schemas.organizations import OrgCreateRequest, OrgUpdateRequest

log = structlog.get_logger()
settings = get_settings()


def generate_join_code() -> str:
    return secrets.token_urlsafe(settings.join_code_bytes)


def org_info(org: Organization, resolution: Optional[Resolution] = None) -> dict:
    """Serialize an org for OrgResponse. The join code is shown only to user managers."""
    can_manage = resolution is not None and Action.MANAGE_USERS in resolution.permissions
    return {
        "id": org.id,
        "title": org.title,
        "description": org.description,
        "status": org.status,
        "join_code": org.join_code if can_manage else None,
        "role": resolution.org_role if resolution else None,
        "created_at": org.created_at,
        "updated_at": org.updated_at,
    }


async def _ensure_title_free(
    session: AsyncSession, title: str, exclude_id: Optional[uuid.UUID] = None
) -> None:
    stmt = select(Organization).where(Organization.title == title)
    if exclude_id is not None:
        stmt = stmt.where(Organization.id != exclude_id)
    result = await session.execute(stmt)
    if result.scalar_one_or_none():
        raise Conflict("Organization title already taken")


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def list_user_orgs(session: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    """List live orgs a user belongs to, with their role and status."""
    result = await session.execute(
        select(Organization, OrganizationUser)
        .join(OrganizationUser, OrganizationUser.org_id == Organization.id)
        .where(OrganizationUser.user_id == user_id)
        .where(Organization.status == OrgStatus.ACTIVE.value)
        .order_by(Organization.created_at)
    )
    return [
        {
            "id": org.id,
            "title": org.title,
            "description": org.description,
            "role": membership.role,
            "status": membership.status,
        }
        for org, membership in result.all()
    ]


async def create_org(
    session: AsyncSession, creator_id: uuid.UUID, req: OrgCreateRequest
) -> Organization:
    """Create an org; the creator becomes its OWNER."""
    await _ensure_title_free(session, req.title)

    org = Organization(
        title=req.title,
        description=req.description,
        join_code=generate_join_code(),
        status=OrgStatus.ACTIVE.value,
    )
    session.add(org)
    await session.flush()

    session.add(
        OrganizationUser(
            user_id=creator_id,
            org_id=org.id,
            role=OrgRole.OWNER.value,
            status=AccessStatus.ACTIVE.value,
        )
    )
    await session.flush()

    log.info("org.created", org_id=str(org.id), creator=str(creator_id))
    return org


async def get_org(
    session: AsyncSession, actor_id: uuid.UUID, org_id: uuid.UUID
) -> tuple[Organization, Resolution]:
    resolution = await require(session, actor_id, ResourcePath(org_id), Action.VIEW_RESOURCES)
    org = await get_active_organization(session, org_id)
    return org, resolution


async def update_org(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    req: OrgUpdateRequest,
) -> tuple[Organization, Resolution]:
    org = await get_active_organization(session, org_id, for_update=True)
    resolution = await require(
        session, actor_id, ResourcePath(org_id), Action.UPDATE_ORGANIZATION
    )

    if req.title is not None and req.title != org.title:
        await _ensure_title_free(session, req.title, exclude_id=org.id)
        org.title = req.title
    if req.description is not None:
        org.description = req.description

    org.updated_at = datetime.now(timezone.utc)
    session.add(org)
    await session.flush()

    log.info("org.updated", org_id=str(org.id))
    return org, resolution


async def rotate_join_code(
    session: AsyncSession, actor_id: uuid.UUID, org_id: uuid.UUID
) -> str:
    """Replace the join code. The old code stops admitting immediately."""
    org = await get_active_organization(session, org_id, for_update=True)
    await require(session, actor_id, ResourcePath(org_id), Action.UPDATE_ORGANIZATION)

    org.join_code = generate_join_code()
    session.add(org)
    await session.flush()

    log.info("org.join_code_rotated", org_id=str(org.id))
    return org.join_code


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

async def delete_org(
    session: AsyncSession, actor_id: uuid.UUID, org_id: uuid.UUID
) -> Organization:
    """Delete an org together with every team, project and membership in it.

    The org row itself is kept as a tombstone (status ``deleted``) so its id
    keeps resolving to NotFound rather than being reused. Everything under it
    goes in the same transaction; no membership row outlives its org.
    """
    org = await get_active_organization(session, org_id, for_update=True)
    await require(session, actor_id, ResourcePath(org_id), Action.DELETE_ORGANIZATION)

    for model in (TeamUser, ProjectUser, OrganizationUser):
        await session.execute(delete(model).where(model.org_id == org_id))
    await session.execute(delete(Team).where(Team.org_id == org_id))
    await session.execute(delete(Project).where(Project.org_id == org_id))

    now = datetime.now(timezone.utc)
    org.status = OrgStatus.DELETED.value
    org.deleted_at = now
    org.updated_at = now
    # Free the unique title and make the old join code unusable.
    org.title = f"{org.title}#deleted-{org.id.hex[:8]}"
    org.join_code = f"deleted-{org.id.hex}"
    session.add(org)
    await session.flush()

    log.info("org.deleted", org_id=str(org_id), actor_id=str(actor_id))
    return org
