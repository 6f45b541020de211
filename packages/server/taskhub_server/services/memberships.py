"""
Organization membership lifecycle: admission by join code, role and status
changes, ownership transfer, removal and voluntary exit.

Every mutating operation locks the organization row first, then authorizes
the actor, then validates invariants, and only then writes. A rejected
operation has written nothing; the request transaction commits or rolls back
as a whole.

Invariants held here:
- exactly one OWNER per live organization;
- one membership row per (user, organization);
- the OWNER cannot be demoted, banned, removed or leave except by transfer.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskhub_server.core.errors import (
    AccessDenied,
    InvalidJoinCode,
    InvariantViolation,
    ResourceNotFound,
)
from taskhub_server.core.guard import require
from taskhub_server.core.membership import (
    ResourcePath,
    get_active_organization,
    get_org_membership,
)
from taskhub_server.models.membership import OrganizationUser, ProjectUser, TeamUser
from taskhub_server.models.organization import Organization
from taskhub_server.models.user import User
from taskhub_shared.schemas.common import (
    AccessStatus,
    Action,
    DenyReason,
    OrgRole,
    OrgStatus,
)

log = structlog.get_logger()


def member_info(membership, user: Optional[User] = None) -> dict:
    """Flatten a membership row (any scope) for MemberResponse."""
    return {
        "user_id": membership.user_id,
        "name": user.name if user else None,
        "email": user.email if user else None,
        "role": membership.role,
        "status": membership.status,
        "created_at": membership.created_at,
    }


async def _get_target(
    session: AsyncSession, org_id: uuid.UUID, user_id: uuid.UUID
) -> OrganizationUser:
    membership = await get_org_membership(session, user_id, org_id)
    if not membership:
        raise ResourceNotFound("User is not a member of this organization")
    return membership


async def _delete_member_rows(
    session: AsyncSession, org_id: uuid.UUID, user_id: uuid.UUID
) -> None:
    """Drop a user's organization row and every team/project row under it."""
    for model in (TeamUser, ProjectUser, OrganizationUser):
        await session.execute(
            delete(model).where(model.org_id == org_id, model.user_id == user_id)
        )
    await session.flush()


async def count_active_owners(session: AsyncSession, org_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count()).select_from(OrganizationUser).where(
            OrganizationUser.org_id == org_id,
            OrganizationUser.role == OrgRole.OWNER.value,
            OrganizationUser.status == AccessStatus.ACTIVE.value,
        )
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def list_members(
    session: AsyncSession, actor_id: uuid.UUID, org_id: uuid.UUID
) -> list[dict]:
    """List every membership of an organization."""
    await require(session, actor_id, ResourcePath(org_id), Action.VIEW_RESOURCES)
    result = await session.execute(
        select(OrganizationUser, User)
        .join(User, User.id == OrganizationUser.user_id)
        .where(OrganizationUser.org_id == org_id)
        .order_by(OrganizationUser.created_at)
    )
    return [member_info(membership, user) for membership, user in result.all()]


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------

async def admit_via_join_code(
    session: AsyncSession, principal_id: uuid.UUID, join_code: str
) -> tuple[OrganizationUser, bool]:
    """Join an organization by its join code.

    Returns (membership, created). Joining again while already ACTIVE is a
    no-op success; a banned member stays banned.
    """
    result = await session.execute(
        select(Organization)
        .where(
            Organization.join_code == join_code,
            Organization.status == OrgStatus.ACTIVE.value,
        )
        .with_for_update()
    )
    org = result.scalar_one_or_none()
    if not org:
        log.info("member.admit_rejected", user_id=str(principal_id), reason="invalid_code")
        raise InvalidJoinCode()

    existing = await get_org_membership(session, principal_id, org.id)
    if existing:
        if existing.status == AccessStatus.BANNED.value:
            raise AccessDenied(DenyReason.BANNED, "You are banned from this organization")
        log.info("member.admit_noop", org_id=str(org.id), user_id=str(principal_id))
        return existing, False

    membership = OrganizationUser(
        user_id=principal_id,
        org_id=org.id,
        role=OrgRole.MEMBER.value,
        status=AccessStatus.ACTIVE.value,
    )
    session.add(membership)
    await session.flush()

    log.info("member.admitted", org_id=str(org.id), user_id=str(principal_id))
    return membership, True


# ---------------------------------------------------------------------------
# Role / status
# ---------------------------------------------------------------------------

async def change_role(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    target_id: uuid.UUID,
    new_role: OrgRole,
) -> OrganizationUser:
    """Change a member's organization role. OWNER is only reachable by transfer."""
    await get_active_organization(session, org_id, for_update=True)
    await require(session, actor_id, ResourcePath(org_id), Action.MANAGE_USERS)

    target = await _get_target(session, org_id, target_id)

    if new_role == OrgRole.OWNER:
        raise InvariantViolation("Ownership can only be granted by transferring it")
    if target.role == OrgRole.OWNER.value:
        raise InvariantViolation("The owner's role cannot be changed; transfer ownership first")
    if target.status == AccessStatus.BANNED.value:
        raise InvariantViolation("Cannot change the role of a banned member")
    if target.role == new_role.value:
        raise InvariantViolation("User already has the requested role")

    previous = target.role
    target.role = new_role.value
    session.add(target)
    await session.flush()

    log.info(
        "member.role_changed",
        org_id=str(org_id),
        user_id=str(target_id),
        actor_id=str(actor_id),
        previous=previous,
        role=new_role.value,
    )
    return target


async def change_status(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    target_id: uuid.UUID,
    new_status: AccessStatus,
) -> OrganizationUser:
    """Ban or reactivate a member. Banning also drops the member to VIEWER."""
    await get_active_organization(session, org_id, for_update=True)
    await require(session, actor_id, ResourcePath(org_id), Action.MANAGE_USERS)

    target = await _get_target(session, org_id, target_id)

    if target_id == actor_id:
        raise InvariantViolation("You cannot change your own status")
    if target.role == OrgRole.OWNER.value and new_status == AccessStatus.BANNED:
        raise InvariantViolation("The owner cannot be banned")
    if target.status == new_status.value:
        raise InvariantViolation(f"The user already has the status {new_status.value}")

    if new_status == AccessStatus.BANNED:
        target.role = OrgRole.VIEWER.value
    target.status = new_status.value
    session.add(target)
    await session.flush()

    log.info(
        "member.status_changed",
        org_id=str(org_id),
        user_id=str(target_id),
        actor_id=str(actor_id),
        status=new_status.value,
    )
    return target


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------

async def transfer_ownership(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    new_owner_id: uuid.UUID,
) -> tuple[OrganizationUser, OrganizationUser]:
    """Hand OWNER to another active member; the former owner becomes ADMIN.

    Both rows change in the same transaction under the organization lock.
    Returns (former_owner, new_owner).
    """
    await get_active_organization(session, org_id, for_update=True)
    await require(session, actor_id, ResourcePath(org_id), Action.TRANSFER_OWNERSHIP)

    if new_owner_id == actor_id:
        raise InvariantViolation("You are already the owner")

    target = await get_org_membership(session, new_owner_id, org_id)
    if not target:
        raise InvariantViolation("The new owner must be a member of this organization")
    if target.status != AccessStatus.ACTIVE.value:
        raise InvariantViolation("Ownership cannot be transferred to a banned member")
    if target.role == OrgRole.OWNER.value:
        raise InvariantViolation("User is already the owner")

    current = await get_org_membership(session, actor_id, org_id)

    # Demote first: at no flush may two owner rows coexist.
    current.role = OrgRole.ADMIN.value
    session.add(current)
    await session.flush()
    target.role = OrgRole.OWNER.value
    session.add(target)
    await session.flush()

    if await count_active_owners(session, org_id) != 1:
        raise InvariantViolation("An organization must have exactly one owner")

    log.info(
        "org.ownership_transferred",
        org_id=str(org_id),
        previous_owner=str(actor_id),
        new_owner=str(new_owner_id),
    )
    return current, target


# ---------------------------------------------------------------------------
# Removal / exit
# ---------------------------------------------------------------------------

async def remove_member(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    target_id: uuid.UUID,
) -> None:
    """Remove a member along with their team and project memberships."""
    await get_active_organization(session, org_id, for_update=True)
    await require(session, actor_id, ResourcePath(org_id), Action.REMOVE_USER)

    if target_id == actor_id:
        raise InvariantViolation("Use exit to leave an organization yourself")

    target = await _get_target(session, org_id, target_id)
    if target.role == OrgRole.OWNER.value:
        raise InvariantViolation("The owner cannot be removed")

    await _delete_member_rows(session, org_id, target_id)
    log.info("member.removed", org_id=str(org_id), user_id=str(target_id), actor_id=str(actor_id))


async def exit_organization(
    session: AsyncSession, principal_id: uuid.UUID, org_id: uuid.UUID
) -> None:
    """Leave an organization. The owner must transfer ownership first."""
    await get_active_organization(session, org_id, for_update=True)

    membership = await get_org_membership(session, principal_id, org_id)
    if not membership:
        raise AccessDenied(DenyReason.NOT_A_MEMBER, "You are not a member of this organization")
    if membership.role == OrgRole.OWNER.value:
        raise InvariantViolation("The owner cannot leave; transfer ownership first")
    if membership.status == AccessStatus.BANNED.value:
        raise AccessDenied(DenyReason.BANNED, "Banned members cannot leave the organization")

    await _delete_member_rows(session, org_id, principal_id)
    log.info("member.exited", org_id=str(org_id), user_id=str(principal_id))
