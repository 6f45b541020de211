"""
Team and project membership lifecycle.

Mirrors the organization lifecycle one level down: the lead role (team
LEADER, project MANAGER) plays the part of the OWNER. It is held by exactly
one member, moves only by transfer, and cannot be banned or leave.

A team/project row is only ever created for an ACTIVE organization member.
"""

from __future__ import annotations

import uuid
from typing import Union

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskhub_server.core.errors import AccessDenied, InvariantViolation, ResourceNotFound
from taskhub_server.core.guard import require
from taskhub_server.core.membership import (
    SCOPES,
    ResourcePath,
    ScopeKind,
    get_active_organization,
    get_org_membership,
    get_scope_membership,
    resolve,
)
from taskhub_server.models.user import User
from taskhub_server.services.memberships import member_info
from taskhub_shared.permissions import ORG_WIDE_ROLES, lead_role
from taskhub_shared.schemas.common import (
    AccessStatus,
    Action,
    DenyReason,
    OrgRole,
    ProjectRole,
    TeamRole,
)

log = structlog.get_logger()

ScopeRole = Union[TeamRole, ProjectRole]

TRANSFER_LEAD = {
    ScopeKind.TEAM: Action.MANAGE_TEAM_USERS,
    ScopeKind.PROJECT: Action.TRANSFER_PROJECT_MANAGER,
}


async def _authorize(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
    action: Action,
) -> None:
    """Lock the org, then require ``action`` on the team/project."""
    await get_active_organization(session, org_id, for_update=True)
    await require(session, actor_id, ResourcePath.for_scope(org_id, kind, scope_id), action)


async def _get_target(
    session: AsyncSession, kind: ScopeKind, scope_id: uuid.UUID, user_id: uuid.UUID
):
    membership = await get_scope_membership(session, kind, user_id, scope_id)
    if not membership:
        raise ResourceNotFound(f"User is not a member of this {kind.value}")
    return membership


async def _require_active_org_member(
    session: AsyncSession, org_id: uuid.UUID, user_id: uuid.UUID
) -> None:
    org_member = await get_org_membership(session, user_id, org_id)
    if not org_member or org_member.status != AccessStatus.ACTIVE.value:
        raise InvariantViolation("User is not an active member of this organization")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def list_scope_members(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
) -> list[dict]:
    await require(
        session, actor_id, ResourcePath.for_scope(org_id, kind, scope_id), Action.VIEW_RESOURCES
    )
    scope_def = SCOPES[kind]
    model = scope_def.membership
    result = await session.execute(
        select(model, User)
        .join(User, User.id == model.user_id)
        .where(getattr(model, scope_def.key) == scope_id)
        .order_by(model.created_at)
    )
    return [member_info(membership, user) for membership, user in result.all()]


# ---------------------------------------------------------------------------
# Add / role / status
# ---------------------------------------------------------------------------

async def add_scope_member(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
    target_id: uuid.UUID,
    role: ScopeRole,
):
    """Add an organization member to a team/project. Returns (membership, created)."""
    await _authorize(session, actor_id, org_id, kind, scope_id, Action.MANAGE_TEAM_USERS)

    scope_def = SCOPES[kind]
    if role == lead_role(scope_def.role_type):
        raise InvariantViolation(f"The {role.value} role can only be handed over by transfer")
    await _require_active_org_member(session, org_id, target_id)

    existing = await get_scope_membership(session, kind, target_id, scope_id)
    if existing:
        if existing.status == AccessStatus.BANNED.value:
            raise InvariantViolation(f"User is banned from this {kind.value}; reactivate them instead")
        if existing.role == lead_role(scope_def.role_type).value or existing.role == role.value:
            return existing, False
        existing.role = role.value
        session.add(existing)
        await session.flush()
        log.info(f"{kind.value}.member_role_changed", scope_id=str(scope_id), user_id=str(target_id), role=role.value)
        return existing, False

    membership = scope_def.membership(
        user_id=target_id,
        org_id=org_id,
        role=role.value,
        status=AccessStatus.ACTIVE.value,
        **{scope_def.key: scope_id},
    )
    session.add(membership)
    await session.flush()

    log.info(f"{kind.value}.member_added", scope_id=str(scope_id), user_id=str(target_id), actor_id=str(actor_id))
    return membership, True


async def change_scope_role(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
    target_id: uuid.UUID,
    new_role: ScopeRole,
):
    await _authorize(session, actor_id, org_id, kind, scope_id, Action.MANAGE_TEAM_USERS)

    lead = lead_role(SCOPES[kind].role_type)
    target = await _get_target(session, kind, scope_id, target_id)

    if new_role == lead:
        raise InvariantViolation(f"The {lead.value} role can only be handed over by transfer")
    if target.role == lead.value:
        raise InvariantViolation(f"The {lead.value}'s role cannot be changed; transfer it first")
    if target.status == AccessStatus.BANNED.value:
        raise InvariantViolation("Cannot change the role of a banned member")
    if target.role == new_role.value:
        raise InvariantViolation("User already has the requested role")

    target.role = new_role.value
    session.add(target)
    await session.flush()

    log.info(f"{kind.value}.member_role_changed", scope_id=str(scope_id), user_id=str(target_id), role=new_role.value)
    return target


async def change_scope_status(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
    target_id: uuid.UUID,
    new_status: AccessStatus,
):
    await _authorize(session, actor_id, org_id, kind, scope_id, Action.MANAGE_TEAM_USERS)

    lead = lead_role(SCOPES[kind].role_type)
    target = await _get_target(session, kind, scope_id, target_id)

    if target_id == actor_id:
        raise InvariantViolation("You cannot change your own status")
    if target.role == lead.value and new_status == AccessStatus.BANNED:
        raise InvariantViolation(f"The {lead.value} cannot be banned")
    if new_status == AccessStatus.BANNED:
        org_member = await get_org_membership(session, target_id, org_id)
        if org_member and OrgRole(org_member.role) in ORG_WIDE_ROLES:
            raise InvariantViolation(f"An organization {org_member.role} cannot be banned from a {kind.value}")
    if target.status == new_status.value:
        raise InvariantViolation(f"The user already has the status {new_status.value}")

    target.status = new_status.value
    session.add(target)
    await session.flush()

    log.info(f"{kind.value}.member_status_changed", scope_id=str(scope_id), user_id=str(target_id), status=new_status.value)
    return target


# ---------------------------------------------------------------------------
# Lead transfer
# ---------------------------------------------------------------------------

async def transfer_scope_lead(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
    new_lead_id: uuid.UUID,
):
    """Hand the lead role to another active member; the current lead becomes MEMBER.

    Returns (previous_leads, new_lead).
    """
    await _authorize(session, actor_id, org_id, kind, scope_id, TRANSFER_LEAD[kind])

    scope_def = SCOPES[kind]
    lead = lead_role(scope_def.role_type)
    target = await get_scope_membership(session, kind, new_lead_id, scope_id)
    if not target:
        raise InvariantViolation(f"The new {lead.value} must be a member of this {kind.value}")
    if target.status != AccessStatus.ACTIVE.value:
        raise InvariantViolation(f"The {lead.value} role cannot go to a banned member")
    if target.role == lead.value:
        raise InvariantViolation(f"User is already the {lead.value}")
    await _require_active_org_member(session, org_id, new_lead_id)

    model = scope_def.membership
    result = await session.execute(
        select(model).where(getattr(model, scope_def.key) == scope_id, model.role == lead.value)
    )
    previous = list(result.scalars().all())
    for row in previous:
        row.role = scope_def.role_type.MEMBER.value
    session.add_all(previous)
    await session.flush()
    target.role = lead.value
    session.add(target)
    await session.flush()

    log.info(
        f"{kind.value}.lead_transferred",
        scope_id=str(scope_id),
        previous=[str(row.user_id) for row in previous],
        new_lead=str(new_lead_id),
    )
    return previous, target


# ---------------------------------------------------------------------------
# Removal / exit
# ---------------------------------------------------------------------------

async def _delete_row(session: AsyncSession, kind: ScopeKind, scope_id: uuid.UUID, user_id: uuid.UUID):
    scope_def = SCOPES[kind]
    model = scope_def.membership
    await session.execute(
        delete(model).where(getattr(model, scope_def.key) == scope_id, model.user_id == user_id)
    )
    await session.flush()


async def remove_scope_member(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
    target_id: uuid.UUID,
) -> None:
    await _authorize(session, actor_id, org_id, kind, scope_id, Action.MANAGE_TEAM_USERS)

    if target_id == actor_id:
        raise InvariantViolation(f"Use exit to leave a {kind.value} yourself")

    lead = lead_role(SCOPES[kind].role_type)
    target = await _get_target(session, kind, scope_id, target_id)
    if target.role == lead.value:
        raise InvariantViolation(f"The {lead.value} cannot be removed; transfer the role first")

    await _delete_row(session, kind, scope_id, target_id)
    log.info(f"{kind.value}.member_removed", scope_id=str(scope_id), user_id=str(target_id), actor_id=str(actor_id))


async def exit_scope(
    session: AsyncSession,
    principal_id: uuid.UUID,
    org_id: uuid.UUID,
    kind: ScopeKind,
    scope_id: uuid.UUID,
) -> None:
    """Leave a team/project. The lead must transfer the role first."""
    await get_active_organization(session, org_id, for_update=True)

    resolution = await resolve(session, principal_id, ResourcePath.for_scope(org_id, kind, scope_id))
    if resolution is None:
        raise AccessDenied(DenyReason.NOT_A_MEMBER, "You are not a member of this organization")

    membership = await _get_target(session, kind, scope_id, principal_id)
    lead = lead_role(SCOPES[kind].role_type)
    if membership.role == lead.value:
        raise InvariantViolation(f"The {lead.value} cannot leave; transfer the role first")
    if membership.status == AccessStatus.BANNED.value or resolution.banned:
        raise AccessDenied(DenyReason.BANNED, f"Banned members cannot leave the {kind.value}")

    await _delete_row(session, kind, scope_id, principal_id)
    log.info(f"{kind.value}.member_exited", scope_id=str(scope_id), user_id=str(principal_id))
