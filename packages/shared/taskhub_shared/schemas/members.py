"""Membership management schemas (organization, team and project scope)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, List, Union

from pydantic import BaseModel

from .common import AccessStatus, OrgRole, ProjectRole, TeamRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgRoleUpdateRequest(BaseModel):
    role: OrgRole


class TeamRoleUpdateRequest(BaseModel):
    role: TeamRole


class ProjectRoleUpdateRequest(BaseModel):
    role: ProjectRole


class StatusUpdateRequest(BaseModel):
    status: AccessStatus


class TransferRequest(BaseModel):
    """Hand the OWNER (org) or lead (team/project) role to another member."""
    user_id: uuid.UUID


class TeamMemberAddRequest(BaseModel):
    user_id: uuid.UUID
    role: TeamRole = TeamRole.MEMBER


class ProjectMemberAddRequest(BaseModel):
    user_id: uuid.UUID
    role: ProjectRole = ProjectRole.MEMBER


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    """A single membership row."""
    user_id: uuid.UUID
    name: Optional[str] = None
    email: Optional[str] = None
    role: Union[OrgRole, TeamRole, ProjectRole]
    status: AccessStatus
    created_at: Optional[datetime] = None


class MemberListResponse(BaseModel):
    data: List[MemberResponse]


class TransferResponse(BaseModel):
    previous: MemberResponse
    current: MemberResponse
