"""Membership join tables.

One row per (user, scope resource); the composite primary key is what keeps
re-invitations from producing duplicate rows. Team and project rows carry
``org_id`` so an organization delete can sweep them in one statement.
"""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class OrganizationUser(TimestampMixin, SQLModel, table=True):
    __tablename__ = "organization_users"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", primary_key=True)
    role: str = Field(nullable=False, default="member")  # owner | admin | member | viewer
    status: str = Field(nullable=False, default="active")  # active | banned


class TeamUser(TimestampMixin, SQLModel, table=True):
    __tablename__ = "team_users"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    team_id: uuid.UUID = Field(foreign_key="teams.id", primary_key=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    role: str = Field(nullable=False, default="member")  # leader | member
    status: str = Field(nullable=False, default="active")


class ProjectUser(TimestampMixin, SQLModel, table=True):
    __tablename__ = "project_users"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    role: str = Field(nullable=False, default="member")  # manager | member
    status: str = Field(nullable=False, default="active")
