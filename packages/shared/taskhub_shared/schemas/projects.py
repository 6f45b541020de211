from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field

from .common import AccessStatus, ProjectRole


class ProjectCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class ProjectUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class ProjectResponse(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    title: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    # The caller's own project membership, if any
    role: Optional[ProjectRole] = None
    status: Optional[AccessStatus] = None

    model_config = {"from_attributes": True}


class ProjectListResponse(BaseModel):
    data: List[ProjectResponse]
