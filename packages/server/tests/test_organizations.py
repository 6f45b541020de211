"""
Tests for the organization service: create, list, update, join codes.
"""

from __future__ import annotations

import pytest

from taskhub_server.core.errors import AccessDenied, Conflict
from taskhub_server.core.membership import ResourcePath, resolve
from taskhub_server.services import organizations as org_service
from taskhub_shared.schemas.common import OrgRole
from taskhub_shared.schemas.organizations import OrgCreateRequest, OrgUpdateRequest


class TestCreateOrganization:
    @pytest.mark.asyncio
    async def test_creator_is_sole_owner(self, session, make_user):
        alice = await make_user()
        org = await org_service.create_org(session, alice.id, OrgCreateRequest(title="Acme"))

        resolution = await resolve(session, alice.id, ResourcePath(org.id))
        assert resolution.org_role is OrgRole.OWNER
        assert org.join_code

    @pytest.mark.asyncio
    async def test_duplicate_title(self, session, make_user):
        alice = await make_user()
        await org_service.create_org(session, alice.id, OrgCreateRequest(title="Acme"))
        with pytest.raises(Conflict):
            await org_service.create_org(session, alice.id, OrgCreateRequest(title="Acme"))

    @pytest.mark.asyncio
    async def test_join_codes_differ(self, session, make_user):
        alice = await make_user()
        a = await org_service.create_org(session, alice.id, OrgCreateRequest(title="A"))
        b = await org_service.create_org(session, alice.id, OrgCreateRequest(title="B"))
        assert a.join_code != b.join_code


class TestListOrganizations:
    @pytest.mark.asyncio
    async def test_lists_own_orgs_with_role(self, session, make_user, make_org, add_member):
        alice, bob = await make_user(), await make_user()
        mine = await make_org(alice, title="Mine")
        theirs = await make_org(bob, title="Theirs")
        await add_member(theirs, alice, role="viewer")
        await make_org(bob, title="Private")

        items = await org_service.list_user_orgs(session, alice.id)
        assert {(item["title"], item["role"]) for item in items} == {
            ("Mine", "owner"),
            ("Theirs", "viewer"),
        }
        assert mine.id in {item["id"] for item in items}

    @pytest.mark.asyncio
    async def test_deleted_org_not_listed(self, session, make_user, make_org):
        alice = await make_user()
        org = await make_org(alice)
        await org_service.delete_org(session, alice.id, org.id)
        assert await org_service.list_user_orgs(session, alice.id) == []


class TestUpdateOrganization:
    @pytest.mark.asyncio
    async def test_owner_updates(self, session, make_user, make_org):
        alice = await make_user()
        org = await make_org(alice)

        updated, _ = await org_service.update_org(
            session, alice.id, org.id, OrgUpdateRequest(title="Renamed", description="New")
        )
        assert updated.title == "Renamed"
        assert updated.description == "New"

    @pytest.mark.asyncio
    async def test_admin_cannot_update(self, session, make_user, make_org, add_member):
        alice, admin = await make_user(), await make_user()
        org = await make_org(alice)
        await add_member(org, admin, role="admin")

        with pytest.raises(AccessDenied):
            await org_service.update_org(session, admin.id, org.id, OrgUpdateRequest(title="Mine now"))


class TestJoinCodeVisibility:
    @pytest.mark.asyncio
    async def test_only_user_managers_see_code(self, session, make_user, make_org, add_member):
        alice, admin, bob = await make_user(), await make_user(), await make_user()
        org = await make_org(alice, join_code="secret-code")
        await add_member(org, admin, role="admin")
        await add_member(org, bob, role="member")

        for user, expected in ((alice, "secret-code"), (admin, "secret-code"), (bob, None)):
            fetched, resolution = await org_service.get_org(session, user.id, org.id)
            assert org_service.org_info(fetched, resolution)["join_code"] == expected

    @pytest.mark.asyncio
    async def test_admin_cannot_rotate(self, session, make_user, make_org, add_member):
        alice, admin = await make_user(), await make_user()
        org = await make_org(alice)
        await add_member(org, admin, role="admin")

        with pytest.raises(AccessDenied):
            await org_service.rotate_join_code(session, admin.id, org.id)
