"""
Organization (company) API endpoints.

GET    /api/v1/orgs                              — List orgs for the authenticated user
GET    /api/v1/orgs/{orgId}                      — Get company details
PATCH  /api/v1/orgs/{orgId}                      — Update company info/settings
POST   /api/v1/orgs/{orgId}/transfer-ownership   — Hand over the Company Owner role
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.access import (
    AuthContext,
    CurrentUser,
    get_current_user,
    require_manager,
    require_member,
    require_owner,
)
from app.core.database import get_session
from app.core.events import broadcast, org_topic
from app.services import organizations as org_service
from cayco_shared.schemas.common import SystemRole
from cayco_shared.schemas.organizations import (
    OrgListItem,
    OrgListResponse,
    OrgResponse,
    OrgUpdateRequest,
    TransferOwnershipRequest,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# Non-org-scoped routes (no orgId in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    current: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user is an active member of."""
    if current.user.global_role == SystemRole.SUPER_ADMIN.value:
        orgs = await org_service.list_all_organizations(session)
        return OrgListResponse(
            data=[
                OrgListItem(
                    id=org.id,
                    name=org.name,
                    organization_id=org.identifier,
                    role=SystemRole.SUPER_ADMIN.value,
                )
                for org in orgs
            ]
        )
    items = await org_service.list_user_organizations(session, current.user.id)
    return OrgListResponse(data=items)


# ---------------------------------------------------------------------------
# Org-scoped routes (orgId in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse, tags=["Organizations"])
async def get_org(ctx: AuthContext = Depends(require_member)):
    """Get company details including settings."""
    return org_service.org_response(ctx.org)


@router_scoped.patch("", response_model=OrgResponse, tags=["Organizations"])
async def update_org(
    body: OrgUpdateRequest,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    """Update company info or settings (Owner / Operations Manager). Settings are deep-merged."""
    org = await org_service.update_organization(session, ctx.org, body)
    return org_service.org_response(org)


@router_scoped.post("/transfer-ownership", response_model=OrgResponse, tags=["Organizations"])
async def transfer_ownership(
    body: TransferOwnershipRequest,
    ctx: AuthContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    """Make another active member the Company Owner (Owner only)."""
    org = await org_service.transfer_ownership(session, ctx.org, body.user_id)
    await broadcast(org_topic(org.id), "org.ownership_transferred", {"owner_id": str(body.user_id)})
    return org_service.org_response(org)
