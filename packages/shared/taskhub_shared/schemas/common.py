from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class OrgRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class TeamRole(str, Enum):
    LEADER = "leader"
    MEMBER = "member"


class ProjectRole(str, Enum):
    MANAGER = "manager"
    MEMBER = "member"


# Ordered most privileged first
ORG_ROLE_ORDER: list[OrgRole] = [
    OrgRole.OWNER,
    OrgRole.ADMIN,
    OrgRole.MEMBER,
    OrgRole.VIEWER,
]

TEAM_ROLE_ORDER: list[TeamRole] = [TeamRole.LEADER, TeamRole.MEMBER]

PROJECT_ROLE_ORDER: list[ProjectRole] = [ProjectRole.MANAGER, ProjectRole.MEMBER]


class AccessStatus(str, Enum):
    ACTIVE = "active"
    BANNED = "banned"


class OrgStatus(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class Action(str, Enum):
    UPDATE_ORGANIZATION = "update_organization"
    DELETE_ORGANIZATION = "delete_organization"
    TRANSFER_OWNERSHIP = "transfer_ownership"
    MANAGE_USERS = "manage_users"
    REMOVE_USER = "remove_user"
    VIEW_RESOURCES = "view_resources"
    EDIT_RESOURCES = "edit_resources"
    CREATE_PROJECT = "create_project"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"
    TRANSFER_PROJECT_MANAGER = "transfer_project_manager"
    CREATE_TEAM = "create_team"
    UPDATE_TEAM = "update_team"
    DELETE_TEAM = "delete_team"
    MANAGE_TEAM_USERS = "manage_team_users"


class DenyReason(str, Enum):
    NOT_A_MEMBER = "not_a_member"
    BANNED = "banned"
    INSUFFICIENT_ROLE = "insufficient_role"
    INVALID_CODE = "invalid_code"


class ErrorDetail(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    """Envelope for every error the server reports."""
    error: ErrorDetail


class MessageResponse(BaseModel):
    message: str
    data: Optional[Any] = None
