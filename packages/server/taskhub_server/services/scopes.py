"""
Team and project service: CRUD for the two resource kinds nested under an
organization. Both behave the same way apart from their role enum and the
actions that guard them, so one set of functions serves both.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskhub_server.core.errors import Conflict
from taskhub_server.core.guard import require
from taskhub_server.core.membership import (
    SCOPES,
    ResourcePath,
    ScopeKind,
    get_active_organization,
    get_scope_membership,
    get_scope_resource,
)
from taskhub_shared.permissions import ORG_WIDE_ROLES, lead_role
from taskhub_shared.schemas.common import AccessStatus, Action, OrgRole

log = structlog.get_logger()

CREATE = {ScopeKind.TEAM: Action.CREATE_TEAM, ScopeKind.PROJECT: Action.CREATE_PROJECT}
UPDATE = {ScopeKind.TEAM: Action.UPDATE_TEAM, ScopeKind.PROJECT: Action.UPDATE_PROJECT}
DELETE = {ScopeKind.TEAM: Action.DELETE_TEAM, ScopeKind.PROJECT: Action.DELETE_PROJECT}


def scope_info(resource, membership=None) -> dict:
    """Serialize a team/project along with the caller's own membership, if any."""
    return {
        "id": resource.id,
        "org_id": resource.org_id,
        "title": resource.title,
        "description": resource.description,
        "created_at": resource.created_at,
        "updated_at": resource.updated_at,
        "role": membership.role if membership else None,
        "status": membership.status if membership else None,
    }


async def _ensure_title_free(
    session: AsyncSession,
    kind: ScopeKind,
    org_id: uuid.UUID,
    title: str,
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    model = SCOPES[kind].resource
    stmt = select(model).where(model.org_id == org_id, model.title == title)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    result = await session.execute(stmt)
    if result.scalar_one_or_none():
        raise Conflict(f"A {kind.value} with this title already exists")


async def list_scopes(
    session: AsyncSession, actor_id: uuid.UUID, org_id: uuid.UUID, kind: ScopeKind
) -> list[dict]:
    """List the org's teams/projects, hiding the ones the caller is banned from."""
    resolution = await require(session, actor_id, ResourcePath(org_id), Action.VIEW_RESOURCES)
    sees_all = resolution.org_role in ORG_WIDE_ROLES

    scope_def = SCOPES[kind]
    resource, membership = scope_def.resource, scope_def.membership
    result = await session.execute(
        select(resource, membership)
        .outerjoin(
            membership,
            (getattr(membership, scope_def.key) == resource.id) & (membership.user_id == actor_id),
        )
        .where(resource.org_id == org_id)
        .order_by(resource.created_at)
    )
    return [
        scope_info(row, own)
        for row, own in result.all()
        if sees_all or own is None or own.status != AccessStatus.BANNED.value
    ]


async def create_scope(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    title: str,
    description: Optional[str] = None,
):
    """Create a team/project. The creator becomes its lead (LEADER / MANAGER)."""
    await get_active_organization(session, org_id, for_update=True)
    await require(session, actor_id, ResourcePath(org_id), CREATE[kind])
    await _ensure_title_free(session, kind, org_id, title)

    scope_def = SCOPES[kind]
    resource = scope_def.resource(org_id=org_id, title=title, description=description)
    session.add(resource)
    await session.flush()

    membership = scope_def.membership(
        user_id=actor_id,
        org_id=org_id,
        role=lead_role(scope_def.role_type).value,
        status=AccessStatus.ACTIVE.value,
        **{scope_def.key: resource.id},
    )
    session.add(membership)
    await session.flush()

    log.info(f"{kind.value}.created", org_id=str(org_id), scope_id=str(resource.id), creator=str(actor_id))
    return resource, membership


async def get_scope(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
):
    path = ResourcePath.for_scope(org_id, kind, scope_id)
    await require(session, actor_id, path, Action.VIEW_RESOURCES)
    resource = await get_scope_resource(session, kind, org_id, scope_id)
    membership = await get_scope_membership(session, kind, actor_id, scope_id)
    return resource, membership


async def update_scope(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
    title: Optional[str] = None,
    description: Optional[str] = None,
):
    await get_active_organization(session, org_id, for_update=True)
    path = ResourcePath.for_scope(org_id, kind, scope_id)
    await require(session, actor_id, path, UPDATE[kind])

    resource = await get_scope_resource(session, kind, org_id, scope_id)
    if title is not None and title != resource.title:
        await _ensure_title_free(session, kind, org_id, title, exclude_id=resource.id)
        resource.title = title
    if description is not None:
        resource.description = description

    resource.updated_at = datetime.now(timezone.utc)
    session.add(resource)
    await session.flush()

    log.info(f"{kind.value}.updated", org_id=str(org_id), scope_id=str(scope_id))
    membership = await get_scope_membership(session, kind, actor_id, scope_id)
    return resource, membership


async def delete_scope(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
) -> None:
    """Delete a team/project and every membership row in it."""
    await get_active_organization(session, org_id, for_update=True)
    path = ResourcePath.for_scope(org_id, kind, scope_id)
    await require(session, actor_id, path, DELETE[kind])

    scope_def = SCOPES[kind]
    resource = await get_scope_resource(session, kind, org_id, scope_id)
    await session.execute(
        delete(scope_def.membership).where(getattr(scope_def.membership, scope_def.key) == scope_id)
    )
    await session.delete(resource)
    await session.flush()

    log.info(f"{kind.value}.deleted", org_id=str(org_id), scope_id=str(scope_id), actor_id=str(actor_id))
