"""
Team and project endpoints.

Both resource kinds expose the same surface under /api/v1/orgs/{org_id}:

GET    /{kind}s                                       List
POST   /{kind}s                                       Create (creator becomes lead)
GET    /{kind}s/{scope_id}                            Get
PATCH  /{kind}s/{scope_id}                            Update
DELETE /{kind}s/{scope_id}                            Delete
GET    /{kind}s/{scope_id}/members                    List members
POST   /{kind}s/{scope_id}/members                    Add an org member
PATCH  /{kind}s/{scope_id}/members/{user_id}/role     Change role
PATCH  /{kind}s/{scope_id}/members/{user_id}/status   Ban / reactivate
DELETE /{kind}s/{scope_id}/members/{user_id}          Remove
POST   /{kind}s/{scope_id}/transfer-lead              Hand over the lead role
POST   /{kind}s/{scope_id}/exit                       Leave
"""

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub_server.core.auth import Principal, get_current_principal
from taskhub_server.core.database import get_session
from taskhub_server.core.membership import ScopeKind
from taskhub_server.services import scope_members as scope_member_service
from taskhub_server.services import scopes as scope_service
from taskhub_server.services.memberships import member_info
from taskhub_shared.schemas.members import (
    MemberListResponse,
    MemberResponse,
    ProjectMemberAddRequest,
    ProjectRoleUpdateRequest,
    StatusUpdateRequest,
    TeamMemberAddRequest,
    TeamRoleUpdateRequest,
    TransferRequest,
)
from taskhub_shared.schemas.projects import (
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdateRequest,
)
from taskhub_shared.schemas.teams import (
    TeamCreateRequest,
    TeamListResponse,
    TeamResponse,
    TeamUpdateRequest,
)


def build_router(
    kind: ScopeKind,
    create_model,
    update_model,
    response_model,
    list_model,
    add_member_model,
    role_update_model,
) -> APIRouter:
    router = APIRouter()

    @router.get("", response_model=list_model)
    async def list_scopes(
        org_id: uuid.UUID,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        items = await scope_service.list_scopes(session, principal.user_id, org_id, kind)
        return list_model(data=items)

    @router.post("", response_model=response_model, status_code=201)
    async def create_scope(
        org_id: uuid.UUID,
        body: create_model,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        resource, membership = await scope_service.create_scope(
            session, principal.user_id, org_id, kind, body.title, body.description
        )
        return response_model(**scope_service.scope_info(resource, membership))

    @router.get("/{scope_id}", response_model=response_model)
    async def get_scope(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        resource, membership = await scope_service.get_scope(
            session, principal.user_id, org_id, kind, scope_id
        )
        return response_model(**scope_service.scope_info(resource, membership))

    @router.patch("/{scope_id}", response_model=response_model)
    async def update_scope(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        body: update_model,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        resource, membership = await scope_service.update_scope(
            session, principal.user_id, org_id, kind, scope_id, body.title, body.description
        )
        return response_model(**scope_service.scope_info(resource, membership))

    @router.delete("/{scope_id}", status_code=204)
    async def delete_scope(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        await scope_service.delete_scope(session, principal.user_id, org_id, kind, scope_id)

    # -- Membership ---------------------------------------------------------

    @router.get("/{scope_id}/members", response_model=MemberListResponse)
    async def list_members(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        items = await scope_member_service.list_scope_members(
            session, principal.user_id, org_id, kind, scope_id
        )
        return MemberListResponse(data=items)

    @router.post("/{scope_id}/members", response_model=MemberResponse)
    async def add_member(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        body: add_member_model,
        response: Response,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        membership, created = await scope_member_service.add_scope_member(
            session, principal.user_id, org_id, kind, scope_id, body.user_id, body.role
        )
        if created:
            response.status_code = 201
        return MemberResponse(**member_info(membership))

    @router.patch("/{scope_id}/members/{user_id}/role", response_model=MemberResponse)
    async def change_role(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        user_id: uuid.UUID,
        body: role_update_model,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        membership = await scope_member_service.change_scope_role(
            session, principal.user_id, org_id, kind, scope_id, user_id, body.role
        )
        return MemberResponse(**member_info(membership))

    @router.patch("/{scope_id}/members/{user_id}/status", response_model=MemberResponse)
    async def change_status(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        user_id: uuid.UUID,
        body: StatusUpdateRequest,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        membership = await scope_member_service.change_scope_status(
            session, principal.user_id, org_id, kind, scope_id, user_id, body.status
        )
        return MemberResponse(**member_info(membership))

    @router.delete("/{scope_id}/members/{user_id}", status_code=204)
    async def remove_member(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        user_id: uuid.UUID,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        await scope_member_service.remove_scope_member(
            session, principal.user_id, org_id, kind, scope_id, user_id
        )

    @router.post("/{scope_id}/transfer-lead", response_model=MemberResponse)
    async def transfer_lead(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        body: TransferRequest,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        _previous, membership = await scope_member_service.transfer_scope_lead(
            session, principal.user_id, org_id, kind, scope_id, body.user_id
        )
        return MemberResponse(**member_info(membership))

    @router.post("/{scope_id}/exit", status_code=204)
    async def exit_scope(
        org_id: uuid.UUID,
        scope_id: uuid.UUID,
        principal: Principal = Depends(get_current_principal),
        session: AsyncSession = Depends(get_session),
    ):
        await scope_member_service.exit_scope(session, principal.user_id, org_id, kind, scope_id)

    return router


teams_router = build_router(
    ScopeKind.TEAM,
    TeamCreateRequest,
    TeamUpdateRequest,
    TeamResponse,
    TeamListResponse,
    TeamMemberAddRequest,
    TeamRoleUpdateRequest,
)

projects_router = build_router(
    ScopeKind.PROJECT,
    ProjectCreateRequest,
    ProjectUpdateRequest,
    ProjectResponse,
    ProjectListResponse,
    ProjectMemberAddRequest,
    ProjectRoleUpdateRequest,
)
