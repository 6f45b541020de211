"""Organization model (top-level tenant)."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    title: str = Field(nullable=False, unique=True, index=True)
    description: Optional[str] = None
    join_code: str = Field(nullable=False, unique=True, index=True)
    status: str = Field(default="active", nullable=False)  # active | deleted
    deleted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
