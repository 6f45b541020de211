"""
Organization API endpoints.

GET    /api/v1/orgs                         List orgs for the authenticated user
POST   /api/v1/orgs                         Create an org (creator becomes owner)
POST   /api/v1/orgs/join                    Join an org by its join code
GET    /api/v1/orgs/{org_id}                Get org details
PATCH  /api/v1/orgs/{org_id}                Update title/description
DELETE /api/v1/orgs/{org_id}                Delete the org and everything in it
POST   /api/v1/orgs/{org_id}/join-code      Rotate the join code
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub_server.core.auth import Principal, get_current_principal
from taskhub_server.core.database import get_session
from taskhub_server.core.membership import resolve, ResourcePath
from taskhub_server.services import memberships as member_service
from taskhub_server.services import organizations as org_service
from taskhub_shared.schemas.common import MessageResponse
from taskhub_shared.schemas.organizations import (
    JoinCodeResponse,
    JoinOrgRequest,
    OrgCreateRequest,
    OrgListResponse,
    OrgResponse,
    OrgUpdateRequest,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# Non-org-scoped routes (no org_id in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = await org_service.list_user_orgs(session, principal.user_id)
    return OrgListResponse(data=items)


@router_global.post("/orgs", response_model=OrgResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(session, principal.user_id, body)
    resolution = await resolve(session, principal.user_id, ResourcePath(org.id))
    return OrgResponse(**org_service.org_info(org, resolution))


@router_global.post("/orgs/join", response_model=OrgResponse, tags=["Organizations"])
async def join_org(
    body: JoinOrgRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Join an organization by its join code. Joining twice is harmless."""
    membership, _created = await member_service.admit_via_join_code(
        session, principal.user_id, body.join_code
    )
    org, resolution = await org_service.get_org(session, principal.user_id, membership.org_id)
    return OrgResponse(**org_service.org_info(org, resolution))


# ---------------------------------------------------------------------------
# Org-scoped routes (org_id in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse, tags=["Organizations"])
async def get_org(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Get org details. The join code is only included for user managers."""
    org, resolution = await org_service.get_org(session, principal.user_id, org_id)
    return OrgResponse(**org_service.org_info(org, resolution))


@router_scoped.patch("", response_model=OrgResponse, tags=["Organizations"])
async def update_org(
    org_id: uuid.UUID,
    body: OrgUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Update org title or description (owner only)."""
    org, resolution = await org_service.update_org(session, principal.user_id, org_id, body)
    return OrgResponse(**org_service.org_info(org, resolution))


@router_scoped.delete("", response_model=MessageResponse, tags=["Organizations"])
async def delete_org(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Delete the org with all of its teams, projects and memberships (owner only)."""
    org = await org_service.delete_org(session, principal.user_id, org_id)
    return MessageResponse(message="Organization deleted", data={"id": str(org.id)})


@router_scoped.post("/join-code", response_model=JoinCodeResponse, tags=["Organizations"])
async def rotate_join_code(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Replace the join code; the previous code stops working."""
    code = await org_service.rotate_join_code(session, principal.user_id, org_id)
    return JoinCodeResponse(join_code=code)
