"""
API v1 Router

All tenant-scoped endpoints are prefixed with /orgs/{orgId}, where orgId is
the 8-character organization identifier.
"""

from fastapi import APIRouter
from . import onboarding, roles, users
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router

router = APIRouter()

# Organization routes (non-org-scoped: list)
router.include_router(orgs_global_router)

# Organization routes (org-scoped: get, update, transfer ownership)
router.include_router(orgs_scoped_router, prefix="/orgs/{orgId}", tags=["Organizations"])

# Include resource routers
router.include_router(users.router, prefix="/orgs/{orgId}/users", tags=["Users"])
router.include_router(roles.router, prefix="/orgs/{orgId}/roles", tags=["Roles"])
router.include_router(onboarding.router, prefix="/orgs/{orgId}/onboarding", tags=["Onboarding"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/orgs/{orgId}",
            "/orgs/{orgId}/users",
            "/orgs/{orgId}/roles",
            "/orgs/{orgId}/onboarding",
        ],
    }
