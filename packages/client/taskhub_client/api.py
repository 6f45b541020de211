"""
Typed calls for the organization and membership endpoints.

Responses are validated into the shared schemas. Permission checks here are
hints for hiding actions; the server decides.
"""

from __future__ import annotations

import uuid

from taskhub_shared.permissions import permissions_for
from taskhub_shared.schemas.common import AccessStatus, Action, OrgRole
from taskhub_shared.schemas.members import MemberListResponse, MemberResponse, TransferResponse
from taskhub_shared.schemas.organizations import OrgListResponse, OrgResponse

from .session import SessionClient

API = "/api/v1"


def can(role: OrgRole, status: AccessStatus, action: Action) -> bool:
    """Whether the UI should offer an action to a member with this standing."""
    if status == AccessStatus.BANNED:
        return False
    return action in permissions_for(role)


class TaskhubApi:
    def __init__(self, session: SessionClient):
        self._session = session

    async def list_orgs(self) -> OrgListResponse:
        return OrgListResponse.model_validate(await self._session.get(f"{API}/orgs"))

    async def create_org(self, title: str, description: str | None = None) -> OrgResponse:
        data = await self._session.post(
            f"{API}/orgs", json={"title": title, "description": description}
        )
        return OrgResponse.model_validate(data)

    async def get_org(self, org_id: uuid.UUID) -> OrgResponse:
        return OrgResponse.model_validate(await self._session.get(f"{API}/orgs/{org_id}"))

    async def join_org(self, join_code: str) -> OrgResponse:
        data = await self._session.post(f"{API}/orgs/join", json={"join_code": join_code})
        return OrgResponse.model_validate(data)

    async def delete_org(self, org_id: uuid.UUID) -> None:
        await self._session.delete(f"{API}/orgs/{org_id}")

    async def list_members(self, org_id: uuid.UUID) -> MemberListResponse:
        data = await self._session.get(f"{API}/orgs/{org_id}/members")
        return MemberListResponse.model_validate(data)

    async def change_member_role(
        self, org_id: uuid.UUID, user_id: uuid.UUID, role: OrgRole
    ) -> MemberResponse:
        data = await self._session.patch(
            f"{API}/orgs/{org_id}/members/{user_id}/role", json={"role": role.value}
        )
        return MemberResponse.model_validate(data)

    async def change_member_status(
        self, org_id: uuid.UUID, user_id: uuid.UUID, status: AccessStatus
    ) -> MemberResponse:
        data = await self._session.patch(
            f"{API}/orgs/{org_id}/members/{user_id}/status", json={"status": status.value}
        )
        return MemberResponse.model_validate(data)

    async def transfer_ownership(self, org_id: uuid.UUID, user_id: uuid.UUID) -> TransferResponse:
        data = await self._session.post(
            f"{API}/orgs/{org_id}/transfer-ownership", json={"user_id": str(user_id)}
        )
        return TransferResponse.model_validate(data)

    async def remove_member(self, org_id: uuid.UUID, user_id: uuid.UUID) -> None:
        await self._session.delete(f"{API}/orgs/{org_id}/members/{user_id}")

    async def exit_org(self, org_id: uuid.UUID) -> None:
        await self._session.post(f"{API}/orgs/{org_id}/exit")
