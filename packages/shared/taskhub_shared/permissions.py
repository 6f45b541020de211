"""
Role-Permission Table.

Single source of truth for what each role may do. The server enforces it;
clients may consult it to hide actions, but never to decide access.

Every role table is monotonic: a role's action set is a superset of the
action set of every role ranked below it.
"""

from __future__ import annotations

from typing import Optional, Union

from .schemas.common import (
    PROJECT_ROLE_ORDER,
    TEAM_ROLE_ORDER,
    Action,
    OrgRole,
    ProjectRole,
    TeamRole,
)

AnyRole = Union[OrgRole, TeamRole, ProjectRole]

_VIEWER = frozenset({Action.VIEW_RESOURCES})

_MEMBER = _VIEWER | {
    Action.EDIT_RESOURCES,
    Action.CREATE_TEAM,
    Action.UPDATE_TEAM,
    Action.DELETE_TEAM,
    Action.MANAGE_TEAM_USERS,
}

_ADMIN = _MEMBER | {
    Action.MANAGE_USERS,
    Action.REMOVE_USER,
    Action.CREATE_PROJECT,
    Action.UPDATE_PROJECT,
    Action.DELETE_PROJECT,
    Action.TRANSFER_PROJECT_MANAGER,
}

_OWNER = _ADMIN | {
    Action.UPDATE_ORGANIZATION,
    Action.DELETE_ORGANIZATION,
    Action.TRANSFER_OWNERSHIP,
}

ORG_ROLE_PERMISSIONS: dict[OrgRole, frozenset[Action]] = {
    OrgRole.OWNER: frozenset(_OWNER),
    OrgRole.ADMIN: frozenset(_ADMIN),
    OrgRole.MEMBER: frozenset(_MEMBER),
    OrgRole.VIEWER: _VIEWER,
}

# Roles whose org permissions apply unchanged inside every team and project.
ORG_WIDE_ROLES = frozenset({OrgRole.OWNER, OrgRole.ADMIN})

_SCOPE_MEMBER = frozenset({Action.VIEW_RESOURCES, Action.EDIT_RESOURCES})

TEAM_ROLE_PERMISSIONS: dict[TeamRole, frozenset[Action]] = {
    TeamRole.LEADER: _SCOPE_MEMBER
    | {Action.UPDATE_TEAM, Action.DELETE_TEAM, Action.MANAGE_TEAM_USERS},
    TeamRole.MEMBER: _SCOPE_MEMBER,
}

PROJECT_ROLE_PERMISSIONS: dict[ProjectRole, frozenset[Action]] = {
    ProjectRole.MANAGER: _SCOPE_MEMBER
    | {
        Action.UPDATE_PROJECT,
        Action.DELETE_PROJECT,
        Action.MANAGE_TEAM_USERS,
        Action.TRANSFER_PROJECT_MANAGER,
    },
    ProjectRole.MEMBER: _SCOPE_MEMBER,
}


def permissions_for(role: AnyRole) -> frozenset[Action]:
    """Return the action set granted by a role.

    Org, team and project roles share string values ("member"), so the
    lookup dispatches on the enum type. An unknown role raises KeyError.
    """
    if isinstance(role, OrgRole):
        return ORG_ROLE_PERMISSIONS[role]
    if isinstance(role, TeamRole):
        return TEAM_ROLE_PERMISSIONS[role]
    if isinstance(role, ProjectRole):
        return PROJECT_ROLE_PERMISSIONS[role]
    raise KeyError(f"Unknown role: {role!r}")


def effective_permissions(
    org_role: OrgRole, scope_role: Optional[AnyRole] = None
) -> frozenset[Action]:
    """Permissions inside a scope.

    OWNER and ADMIN act with their org permissions in every team and project,
    whatever row they hold there. For lower roles a team/project role never
    exceeds the org role.
    """
    granted = permissions_for(org_role)
    if scope_role is None or org_role in ORG_WIDE_ROLES:
        return granted
    return permissions_for(scope_role) & granted


def lead_role(role_type: type) -> AnyRole:
    """The single most privileged role of a team/project role enum."""
    if role_type is TeamRole:
        return TEAM_ROLE_ORDER[0]
    if role_type is ProjectRole:
        return PROJECT_ROLE_ORDER[0]
    raise KeyError(f"No lead role for {role_type!r}")
