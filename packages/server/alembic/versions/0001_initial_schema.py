"""Users, organizations, teams, projects and their membership tables.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def _membership_table(name: str, scope_table: str, scope_key: str, default_role: str) -> None:
    op.create_table(
        name,
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column(scope_key, postgresql.UUID(as_uuid=True), sa.ForeignKey(f"{scope_table}.id"), primary_key=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default=default_role),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        *_timestamps(),
    )
    op.create_index(f"ix_{name}_org_id", name, ["org_id"])


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("join_code", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_organizations_title", "organizations", ["title"], unique=True)
    op.create_index("ix_organizations_join_code", "organizations", ["join_code"], unique=True)

    for table in ("teams", "projects"):
        op.create_table(
            table,
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column("org_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("title", sa.Text(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index(f"ix_{table}_org_id", table, ["org_id"])

    op.create_table(
        "organization_users",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), primary_key=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        *_timestamps(),
    )
    # At most one owner per organization.
    op.create_index(
        "uq_organization_users_owner",
        "organization_users",
        ["org_id"],
        unique=True,
        postgresql_where=sa.text("role = 'owner'"),
    )

    _membership_table("team_users", "teams", "team_id", "member")
    _membership_table("project_users", "projects", "project_id", "member")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.drop_table("project_users")
    op.drop_table("team_users")
    op.drop_index("uq_organization_users_owner", table_name="organization_users")
    op.drop_table("organization_users")
    op.drop_table("projects")
    op.drop_table("teams")
    op.drop_table("organizations")
    op.drop_table("users")
