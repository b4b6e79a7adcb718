"""
Member management API endpoints.

GET    /api/v1/orgs/{orgId}/users              — List org members
GET    /api/v1/orgs/{orgId}/users/{userId}     — Get a member
PATCH  /api/v1/orgs/{orgId}/users/{userId}     — Change a member's role
DELETE /api/v1/orgs/{orgId}/users/{userId}     — Remove a member
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.access import AuthContext, require_manager, require_member
from app.core.database import get_session
from app.core.events import broadcast, org_topic
from app.services import memberships as membership_service
from app.services import roles as role_service
from cayco_shared.schemas.users import (
    MemberListResponse,
    MemberResponse,
    MemberUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=MemberListResponse, tags=["Users"])
async def list_users(
    include_inactive: bool = False,
    ctx: AuthContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List members of the org (pending and active by default)."""
    rows = await membership_service.list_members(
        session, ctx.scope, include_inactive=include_inactive
    )
    return MemberListResponse(
        data=[membership_service.member_response(user, m) for user, m in rows]
    )


@router.get("/{userId}", response_model=MemberResponse, tags=["Users"])
async def get_user(
    userId: uuid.UUID,
    ctx: AuthContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    user, membership = await membership_service.get_member(session, ctx.scope, userId)
    return membership_service.member_response(user, membership)


@router.patch("/{userId}", response_model=MemberResponse, tags=["Users"])
async def update_user(
    userId: uuid.UUID,
    body: MemberUpdateRequest,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role (Owner / Operations Manager)."""
    role = body.role.strip()
    await role_service.ensure_assignable(session, ctx.org_id, role)
    user, membership = await membership_service.update_member_role(
        session, organization_id=ctx.org_id, user_id=userId, role=role
    )
    await broadcast(org_topic(ctx.org_id), "member.role_changed", {"user_id": str(userId), "role": role})
    return membership_service.member_response(user, membership)


@router.delete("/{userId}", status_code=204, tags=["Users"])
async def remove_user(
    userId: uuid.UUID,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member (Owner / Operations Manager). The user record is kept."""
    await membership_service.remove_member(
        session,
        organization_id=ctx.org_id,
        actor_user_id=ctx.user_id,
        target_user_id=userId,
    )
    await broadcast(org_topic(ctx.org_id), "member.removed", {"user_id": str(userId)})
