"""
Organization membership endpoints.

GET    /api/v1/orgs/{org_id}/members                    List members
PATCH  /api/v1/orgs/{org_id}/members/{user_id}/role     Change a member's role
PATCH  /api/v1/orgs/{org_id}/members/{user_id}/status   Ban / reactivate
DELETE /api/v1/orgs/{org_id}/members/{user_id}          Remove a member
POST   /api/v1/orgs/{org_id}/exit                       Leave the org
POST   /api/v1/orgs/{org_id}/transfer-ownership         Hand over ownership
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub_server.core.auth import Principal, get_current_principal
from taskhub_server.core.database import get_session
from taskhub_server.services import memberships as member_service
from taskhub_shared.schemas.members import (
    MemberListResponse,
    MemberResponse,
    OrgRoleUpdateRequest,
    StatusUpdateRequest,
    TransferRequest,
    TransferResponse,
)

router = APIRouter()


@router.get("/members", response_model=MemberListResponse)
async def list_members(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    items = await member_service.list_members(session, principal.user_id, org_id)
    return MemberListResponse(data=items)


@router.patch("/members/{user_id}/role", response_model=MemberResponse)
async def change_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    body: OrgRoleUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role. Ownership is only handed over by transfer."""
    membership = await member_service.change_role(
        session, principal.user_id, org_id, user_id, body.role
    )
    return MemberResponse(**member_service.member_info(membership))


@router.patch("/members/{user_id}/status", response_model=MemberResponse)
async def change_status(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    body: StatusUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Ban or reactivate a member."""
    membership = await member_service.change_status(
        session, principal.user_id, org_id, user_id, body.status
    )
    return MemberResponse(**member_service.member_info(membership))


@router.delete("/members/{user_id}", status_code=204)
async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    await member_service.remove_member(session, principal.user_id, org_id, user_id)


@router.post("/exit", status_code=204)
async def exit_org(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Leave the organization. The owner must transfer ownership first."""
    await member_service.exit_organization(session, principal.user_id, org_id)


@router.post("/transfer-ownership", response_model=TransferResponse)
async def transfer_ownership(
    org_id: uuid.UUID,
    body: TransferRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    previous, current = await member_service.transfer_ownership(
        session, principal.user_id, org_id, body.user_id
    )
    return TransferResponse(
        previous=MemberResponse(**member_service.member_info(previous)),
        current=MemberResponse(**member_service.member_info(current)),
    )
