"""
Organization schemas shared between server and client.

Covers: org CRUD request/response, join-code admission.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import AccessStatus, OrgRole, OrgStatus


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    description: Optional[str] = Field(None, max_length=1000)


class OrgUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class JoinOrgRequest(BaseModel):
    join_code: str = Field(..., min_length=1, max_length=100)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    status: OrgStatus
    # Only populated for callers allowed to manage users
    join_code: Optional[str] = None
    role: Optional[OrgRole] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgListItem(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    role: OrgRole  # the requesting user's role in this org
    status: AccessStatus

    model_config = {"from_attributes": True}


class OrgListResponse(BaseModel):
    data: list[OrgListItem]


class JoinCodeResponse(BaseModel):
    join_code: str
