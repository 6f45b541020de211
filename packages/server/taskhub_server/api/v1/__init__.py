"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{org_id}.
"""

from fastapi import APIRouter
from . import members
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router
from .scopes import projects_router, teams_router

router = APIRouter()

# Organization routes (non-org-scoped: list, create, join)
router.include_router(orgs_global_router)

# Organization routes (org-scoped: get, update, delete, join code)
router.include_router(orgs_scoped_router, prefix="/orgs/{org_id}", tags=["Organizations"])

# Membership and nested resources
router.include_router(members.router, prefix="/orgs/{org_id}", tags=["Members"])
router.include_router(teams_router, prefix="/orgs/{org_id}/teams", tags=["Teams"])
router.include_router(projects_router, prefix="/orgs/{org_id}/projects", tags=["Projects"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/orgs/join",
            "/orgs/{org_id}/members",
            "/orgs/{org_id}/teams",
            "/orgs/{org_id}/projects",
        ],
    }
