"""
Membership Resolver.

Answers "what role and status does this principal hold on this resource?" by
walking organization membership first and the team/project membership below
it. Team and project rows only count when layered on an organization
membership; a principal outside the organization is never a member of
anything inside it.

Reads here never lock: they see the latest committed state.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskhub_server.core.errors import ResourceNotFound
from taskhub_server.models.membership import OrganizationUser, ProjectUser, TeamUser
from taskhub_server.models.organization import Organization
from taskhub_server.models.project import Project
from taskhub_server.models.team import Team
from taskhub_shared.permissions import ORG_WIDE_ROLES, effective_permissions
from taskhub_shared.schemas.common import (
    AccessStatus,
    Action,
    OrgRole,
    OrgStatus,
    ProjectRole,
    TeamRole,
)

ScopeRole = Union[TeamRole, ProjectRole]


class ScopeKind(str, Enum):
    TEAM = "team"
    PROJECT = "project"


@dataclass(frozen=True)
class ScopeSpec:
    resource: type
    membership: type
    key: str
    role_type: type


SCOPES: dict[ScopeKind, ScopeSpec] = {
    ScopeKind.TEAM: ScopeSpec(Team, TeamUser, "team_id", TeamRole),
    ScopeKind.PROJECT: ScopeSpec(Project, ProjectUser, "project_id", ProjectRole),
}


@dataclass(frozen=True)
class ResourcePath:
    """An organization, optionally narrowed to one team or one project in it."""

    organization_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        if self.team_id is not None and self.project_id is not None:
            raise ValueError("A resource path targets a team or a project, not both")

    @classmethod
    def for_scope(
        cls, organization_id: uuid.UUID, kind: ScopeKind, scope_id: uuid.UUID
    ) -> "ResourcePath":
        return cls(organization_id, **{SCOPES[kind].key: scope_id})

    @property
    def scope(self) -> Optional[tuple[ScopeKind, uuid.UUID]]:
        if self.team_id is not None:
            return ScopeKind.TEAM, self.team_id
        if self.project_id is not None:
            return ScopeKind.PROJECT, self.project_id
        return None

    def __str__(self) -> str:
        base = f"org/{self.organization_id}"
        if self.scope is None:
            return base
        kind, scope_id = self.scope
        return f"{base}/{kind.value}/{scope_id}"


@dataclass(frozen=True)
class Resolution:
    """Effective standing of a principal on a resource path.

    A banned resolution carries no usable permissions whatever its role.
    """

    status: AccessStatus
    org_role: Optional[OrgRole]
    scope_role: Optional[ScopeRole] = None

    @property
    def role(self) -> Optional[Union[OrgRole, ScopeRole]]:
        return self.scope_role if self.scope_role is not None else self.org_role

    @property
    def banned(self) -> bool:
        return self.status == AccessStatus.BANNED

    @property
    def permissions(self) -> frozenset[Action]:
        if self.banned or self.org_role is None:
            return frozenset()
        return effective_permissions(self.org_role, self.scope_role)


# ---------------------------------------------------------------------------
# Lookups shared with the lifecycle services
# ---------------------------------------------------------------------------

async def get_active_organization(
    session: AsyncSession, org_id: uuid.UUID, *, for_update: bool = False
) -> Organization:
    """Return a live organization; deleted or missing ones are NotFound.

    ``for_update`` row-locks the organization, which is how mutating
    membership operations on the same organization serialize.
    """
    stmt = select(Organization).where(Organization.id == org_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    org = result.scalar_one_or_none()
    if not org or org.status == OrgStatus.DELETED.value:
        raise ResourceNotFound("Organization not found")
    return org


async def get_scope_resource(
    session: AsyncSession, kind: ScopeKind, org_id: uuid.UUID, scope_id: uuid.UUID
):
    """Return the team/project, which must belong to the given organization."""
    scope_def = SCOPES[kind]
    resource = await session.get(scope_def.resource, scope_id)
    if not resource or resource.org_id != org_id:
        raise ResourceNotFound(f"{kind.value.capitalize()} not found")
    return resource


async def get_org_membership(
    session: AsyncSession, user_id: uuid.UUID, org_id: uuid.UUID
) -> Optional[OrganizationUser]:
    result = await session.execute(
        select(OrganizationUser).where(
            OrganizationUser.user_id == user_id,
            OrganizationUser.org_id == org_id,
        )
    )
    return result.scalar_one_or_none()


async def get_scope_membership(
    session: AsyncSession, kind: ScopeKind, user_id: uuid.UUID, scope_id: uuid.UUID
):
    scope_def = SCOPES[kind]
    model = scope_def.membership
    result = await session.execute(
        select(model).where(
            model.user_id == user_id,
            getattr(model, scope_def.key) == scope_id,
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

async def resolve(
    session: AsyncSession, principal_id: uuid.UUID, path: ResourcePath
) -> Optional[Resolution]:
    """Resolve a principal's role and status on a path.

    Returns None when the principal is not an organization member. Raises
    ResourceNotFound when the organization (or the targeted team/project
    inside it) does not exist or has been deleted.
    """
    await get_active_organization(session, path.organization_id)

    org_member = await get_org_membership(session, principal_id, path.organization_id)
    if org_member is None:
        return None

    if org_member.status == AccessStatus.BANNED.value:
        # Nothing below the organization is revealed to a banned member.
        return Resolution(status=AccessStatus.BANNED, org_role=None)

    org_role = OrgRole(org_member.role)
    if path.scope is None:
        return Resolution(status=AccessStatus.ACTIVE, org_role=org_role)

    kind, scope_id = path.scope
    await get_scope_resource(session, kind, path.organization_id, scope_id)

    scope_member = await get_scope_membership(session, kind, principal_id, scope_id)
    if scope_member is None:
        return Resolution(status=AccessStatus.ACTIVE, org_role=org_role)

    status = AccessStatus(scope_member.status)
    if org_role in ORG_WIDE_ROLES:
        status = AccessStatus.ACTIVE
    return Resolution(
        status=status,
        org_role=org_role,
        scope_role=SCOPES[kind].role_type(scope_member.role),
    )
