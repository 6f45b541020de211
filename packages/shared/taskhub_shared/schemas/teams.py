from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field

from .common import AccessStatus, TeamRole


class TeamCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class TeamUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class TeamResponse(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    title: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    # The caller's own team membership, if any
    role: Optional[TeamRole] = None
    status: Optional[AccessStatus] = None

    model_config = {"from_attributes": True}


class TeamListResponse(BaseModel):
    data: List[TeamResponse]
