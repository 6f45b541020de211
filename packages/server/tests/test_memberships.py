"""
Tests for the organization membership lifecycle.

Covers:
- Admission by join code (idempotent, invalid code, banned member)
- Role changes and the single-owner invariant
- Ban / reactivate
- Ownership transfer
- Removal and exit, including nested team/project rows
- Cascading organization delete
"""

from __future__ import annotations

import uuid

import pytest
from sqlmodel import select

from taskhub_server.core.errors import (
    AccessDenied,
    InvalidJoinCode,
    InvariantViolation,
    ResourceNotFound,
)
from taskhub_server.core.membership import ResourcePath, resolve
from taskhub_server.models.membership import OrganizationUser, ProjectUser, TeamUser
from taskhub_server.models.project import Project
from taskhub_server.models.team import Team
from taskhub_server.services import memberships as member_service
from taskhub_server.services import organizations as org_service
from taskhub_shared.schemas.common import AccessStatus, DenyReason, OrgRole


async def _row(session, org, user):
    result = await session.execute(
        select(OrganizationUser).where(
            OrganizationUser.org_id == org.id, OrganizationUser.user_id == user.id
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------

class TestAdmission:
    @pytest.mark.asyncio
    async def test_valid_code_admits_member(self, session, make_user, make_org):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner, join_code="open-sesame")

        membership, created = await member_service.admit_via_join_code(session, bob.id, "open-sesame")
        assert created
        assert membership.role == OrgRole.MEMBER.value
        assert membership.status == AccessStatus.ACTIVE.value
        assert membership.org_id == org.id

    @pytest.mark.asyncio
    async def test_admission_is_idempotent(self, session, make_user, make_org):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner, join_code="twice")

        await member_service.admit_via_join_code(session, bob.id, "twice")
        _, created = await member_service.admit_via_join_code(session, bob.id, "twice")
        assert not created

        result = await session.execute(
            select(OrganizationUser).where(
                OrganizationUser.org_id == org.id, OrganizationUser.user_id == bob.id
            )
        )
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_invalid_code_rejected(self, session, make_user, make_org):
        owner, bob = await make_user(), await make_user()
        await make_org(owner, join_code="right")

        with pytest.raises(InvalidJoinCode) as exc_info:
            await member_service.admit_via_join_code(session, bob.id, "wrong")
        assert exc_info.value.code == "invalid_code"

    @pytest.mark.asyncio
    async def test_admission_does_not_change_existing_role(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner, join_code="code")
        await add_member(org, bob, role="admin")

        membership, created = await member_service.admit_via_join_code(session, bob.id, "code")
        assert not created
        assert membership.role == "admin"

    @pytest.mark.asyncio
    async def test_banned_member_stays_banned(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner, join_code="code")
        await add_member(org, bob, role="viewer", status="banned")

        with pytest.raises(AccessDenied) as exc_info:
            await member_service.admit_via_join_code(session, bob.id, "code")
        assert exc_info.value.reason is DenyReason.BANNED
        assert (await _row(session, org, bob)).status == "banned"

    @pytest.mark.asyncio
    async def test_rotated_code_stops_working(self, session, make_user, make_org):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner, join_code="old-code")

        new_code = await org_service.rotate_join_code(session, owner.id, org.id)
        assert new_code != "old-code"
        with pytest.raises(InvalidJoinCode):
            await member_service.admit_via_join_code(session, bob.id, "old-code")
        _, created = await member_service.admit_via_join_code(session, bob.id, new_code)
        assert created


# ---------------------------------------------------------------------------
# Role changes
# ---------------------------------------------------------------------------

class TestChangeRole:
    @pytest.mark.asyncio
    async def test_admin_promotes_member(self, session, make_user, make_org, add_member):
        owner, admin, bob = await make_user(), await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, admin, role="admin")
        await add_member(org, bob, role="viewer")

        membership = await member_service.change_role(session, admin.id, org.id, bob.id, OrgRole.MEMBER)
        assert membership.role == "member"

    @pytest.mark.asyncio
    async def test_member_cannot_change_roles(self, session, make_user, make_org, add_member):
        owner, carol, bob = await make_user(), await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, carol, role="member")
        await add_member(org, bob, role="viewer")

        with pytest.raises(AccessDenied) as exc_info:
            await member_service.change_role(session, carol.id, org.id, bob.id, OrgRole.MEMBER)
        assert exc_info.value.reason is DenyReason.INSUFFICIENT_ROLE
        assert (await _row(session, org, bob)).role == "viewer"

    @pytest.mark.asyncio
    async def test_cannot_grant_owner(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, bob)

        with pytest.raises(InvariantViolation):
            await member_service.change_role(session, owner.id, org.id, bob.id, OrgRole.OWNER)
        assert await member_service.count_active_owners(session, org.id) == 1

    @pytest.mark.asyncio
    async def test_cannot_demote_owner(self, session, make_user, make_org, add_member):
        owner, admin = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, admin, role="admin")

        with pytest.raises(InvariantViolation):
            await member_service.change_role(session, admin.id, org.id, owner.id, OrgRole.MEMBER)
        with pytest.raises(InvariantViolation):
            await member_service.change_role(session, owner.id, org.id, owner.id, OrgRole.ADMIN)
        assert await member_service.count_active_owners(session, org.id) == 1

    @pytest.mark.asyncio
    async def test_banned_member_role_locked(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, bob, role="viewer", status="banned")

        with pytest.raises(InvariantViolation):
            await member_service.change_role(session, owner.id, org.id, bob.id, OrgRole.ADMIN)

    @pytest.mark.asyncio
    async def test_same_role_rejected(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, bob, role="member")

        with pytest.raises(InvariantViolation):
            await member_service.change_role(session, owner.id, org.id, bob.id, OrgRole.MEMBER)

    @pytest.mark.asyncio
    async def test_unknown_target_not_found(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)

        with pytest.raises(ResourceNotFound):
            await member_service.change_role(session, owner.id, org.id, uuid.uuid4(), OrgRole.ADMIN)


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------

class TestChangeStatus:
    @pytest.mark.asyncio
    async def test_ban_drops_to_viewer_and_denies(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, bob, role="admin")

        membership = await member_service.change_status(
            session, owner.id, org.id, bob.id, AccessStatus.BANNED
        )
        assert membership.status == "banned"
        assert membership.role == "viewer"

        resolution = await resolve(session, bob.id, ResourcePath(org.id))
        assert resolution.banned
        assert resolution.permissions == frozenset()

    @pytest.mark.asyncio
    async def test_reactivate_keeps_row(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, bob, role="viewer", status="banned")

        membership = await member_service.change_status(
            session, owner.id, org.id, bob.id, AccessStatus.ACTIVE
        )
        assert membership.status == "active"
        assert membership.role == "viewer"

    @pytest.mark.asyncio
    async def test_owner_cannot_be_banned(self, session, make_user, make_org, add_member):
        owner, admin = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, admin, role="admin")

        with pytest.raises(InvariantViolation):
            await member_service.change_status(session, admin.id, org.id, owner.id, AccessStatus.BANNED)
        assert await member_service.count_active_owners(session, org.id) == 1

    @pytest.mark.asyncio
    async def test_cannot_change_own_status(self, session, make_user, make_org, add_member):
        owner, admin = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, admin, role="admin")

        with pytest.raises(InvariantViolation):
            await member_service.change_status(session, admin.id, org.id, admin.id, AccessStatus.BANNED)

    @pytest.mark.asyncio
    async def test_banned_admin_cannot_ban(self, session, make_user, make_org, add_member):
        owner, admin, bob = await make_user(), await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, admin, role="admin", status="banned")
        await add_member(org, bob)

        with pytest.raises(AccessDenied) as exc_info:
            await member_service.change_status(session, admin.id, org.id, bob.id, AccessStatus.BANNED)
        assert exc_info.value.reason is DenyReason.BANNED


# ---------------------------------------------------------------------------
# Ownership transfer
# ---------------------------------------------------------------------------

class TestTransferOwnership:
    @pytest.mark.asyncio
    async def test_owner_becomes_admin(self, session, make_user, make_org, add_member):
        alice, bob = await make_user(), await make_user()
        org = await make_org(alice)
        await add_member(org, bob, role="member")

        previous, current = await member_service.transfer_ownership(session, alice.id, org.id, bob.id)
        assert previous.user_id == alice.id and previous.role == "admin"
        assert current.user_id == bob.id and current.role == "owner"
        assert (await _row(session, org, alice)).role == "admin"
        assert (await _row(session, org, bob)).role == "owner"
        assert await member_service.count_active_owners(session, org.id) == 1

    @pytest.mark.asyncio
    async def test_non_owner_cannot_transfer(self, session, make_user, make_org, add_member):
        alice, admin, bob = await make_user(), await make_user(), await make_user()
        org = await make_org(alice)
        await add_member(org, admin, role="admin")
        await add_member(org, bob)

        with pytest.raises(AccessDenied):
            await member_service.transfer_ownership(session, admin.id, org.id, bob.id)

    @pytest.mark.asyncio
    async def test_transfer_to_non_member_rejected(self, session, make_user, make_org):
        alice, stranger = await make_user(), await make_user()
        org = await make_org(alice)

        with pytest.raises(InvariantViolation):
            await member_service.transfer_ownership(session, alice.id, org.id, stranger.id)
        assert (await _row(session, org, alice)).role == "owner"

    @pytest.mark.asyncio
    async def test_transfer_to_banned_member_rejected(self, session, make_user, make_org, add_member):
        alice, bob = await make_user(), await make_user()
        org = await make_org(alice)
        await add_member(org, bob, role="viewer", status="banned")

        with pytest.raises(InvariantViolation):
            await member_service.transfer_ownership(session, alice.id, org.id, bob.id)
        assert (await _row(session, org, alice)).role == "owner"

    @pytest.mark.asyncio
    async def test_transfer_to_self_rejected(self, session, make_user, make_org):
        alice = await make_user()
        org = await make_org(alice)

        with pytest.raises(InvariantViolation):
            await member_service.transfer_ownership(session, alice.id, org.id, alice.id)

    @pytest.mark.asyncio
    async def test_exactly_one_owner_through_a_sequence(self, session, make_user, make_org, add_member):
        alice, bob, carol = await make_user(), await make_user(), await make_user()
        org = await make_org(alice)
        await add_member(org, bob)
        await add_member(org, carol, role="admin")

        await member_service.transfer_ownership(session, alice.id, org.id, bob.id)
        assert await member_service.count_active_owners(session, org.id) == 1
        await member_service.change_role(session, bob.id, org.id, alice.id, OrgRole.MEMBER)
        assert await member_service.count_active_owners(session, org.id) == 1
        await member_service.transfer_ownership(session, bob.id, org.id, carol.id)
        assert await member_service.count_active_owners(session, org.id) == 1
        assert (await _row(session, org, carol)).role == "owner"


# ---------------------------------------------------------------------------
# Removal / exit
# ---------------------------------------------------------------------------

class TestRemoveAndExit:
    @pytest.mark.asyncio
    async def test_remove_deletes_nested_rows(
        self, session, make_user, make_org, add_member, make_team, make_project, add_scope_row
    ):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, bob)
        team = await make_team(org, leader=owner)
        project = await make_project(org, manager=owner)
        await add_scope_row(TeamUser, team, bob)
        await add_scope_row(ProjectUser, project, bob)

        await member_service.remove_member(session, owner.id, org.id, bob.id)

        assert await _row(session, org, bob) is None
        teams = await session.execute(select(TeamUser).where(TeamUser.user_id == bob.id))
        projects = await session.execute(select(ProjectUser).where(ProjectUser.user_id == bob.id))
        assert teams.scalars().all() == []
        assert projects.scalars().all() == []
        assert await resolve(session, bob.id, ResourcePath(org.id, team_id=team.id)) is None

    @pytest.mark.asyncio
    async def test_owner_cannot_be_removed(self, session, make_user, make_org, add_member):
        owner, admin = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, admin, role="admin")

        with pytest.raises(InvariantViolation):
            await member_service.remove_member(session, admin.id, org.id, owner.id)

    @pytest.mark.asyncio
    async def test_member_cannot_remove(self, session, make_user, make_org, add_member):
        owner, carol, bob = await make_user(), await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, carol)
        await add_member(org, bob)

        with pytest.raises(AccessDenied):
            await member_service.remove_member(session, carol.id, org.id, bob.id)

    @pytest.mark.asyncio
    async def test_member_exits(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, bob)

        await member_service.exit_organization(session, bob.id, org.id)
        assert await _row(session, org, bob) is None

    @pytest.mark.asyncio
    async def test_owner_cannot_exit(self, session, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)

        with pytest.raises(InvariantViolation):
            await member_service.exit_organization(session, owner.id, org.id)

    @pytest.mark.asyncio
    async def test_banned_cannot_exit(self, session, make_user, make_org, add_member):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, bob, role="viewer", status="banned")

        with pytest.raises(AccessDenied):
            await member_service.exit_organization(session, bob.id, org.id)
        assert await _row(session, org, bob) is not None

    @pytest.mark.asyncio
    async def test_non_member_exit_denied(self, session, make_user, make_org):
        owner, stranger = await make_user(), await make_user()
        org = await make_org(owner)

        with pytest.raises(AccessDenied) as exc_info:
            await member_service.exit_organization(session, stranger.id, org.id)
        assert exc_info.value.reason is DenyReason.NOT_A_MEMBER


# ---------------------------------------------------------------------------
# Cascading delete
# ---------------------------------------------------------------------------

class TestDeleteOrganization:
    @pytest.mark.asyncio
    async def test_delete_leaves_no_orphans(
        self, session, make_user, make_org, add_member, make_team, make_project, add_scope_row
    ):
        owner, bob = await make_user(), await make_user()
        org = await make_org(owner, join_code="gone")
        other = await make_org(owner)
        await add_member(org, bob)
        team = await make_team(org, leader=owner)
        project = await make_project(org, manager=owner)
        await add_scope_row(TeamUser, team, bob)
        await add_scope_row(ProjectUser, project, bob)
        other_team = await make_team(other, leader=owner)

        await org_service.delete_org(session, owner.id, org.id)

        for model in (OrganizationUser, TeamUser, ProjectUser):
            rows = await session.execute(select(model).where(model.org_id == org.id))
            assert rows.scalars().all() == []
        assert (await session.execute(select(Team).where(Team.org_id == org.id))).scalars().all() == []
        assert (await session.execute(select(Project).where(Project.org_id == org.id))).scalars().all() == []

        with pytest.raises(ResourceNotFound):
            await resolve(session, bob.id, ResourcePath(org.id, team_id=team.id))
        with pytest.raises(ResourceNotFound):
            await resolve(session, owner.id, ResourcePath(org.id))

        # The deleted org's code no longer admits anyone.
        with pytest.raises(InvalidJoinCode):
            await member_service.admit_via_join_code(session, bob.id, "gone")

        # Other organizations are untouched.
        assert await resolve(session, owner.id, ResourcePath(other.id, team_id=other_team.id)) is not None

    @pytest.mark.asyncio
    async def test_admin_cannot_delete(self, session, make_user, make_org, add_member):
        owner, admin = await make_user(), await make_user()
        org = await make_org(owner)
        await add_member(org, admin, role="admin")

        with pytest.raises(AccessDenied):
            await org_service.delete_org(session, admin.id, org.id)
        assert (await resolve(session, owner.id, ResourcePath(org.id))) is not None
