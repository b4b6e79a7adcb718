"""
Custom role API endpoints.

GET    /api/v1/orgs/{orgId}/roles             — List roles
GET    /api/v1/orgs/{orgId}/roles/{roleId}    — Get a role
POST   /api/v1/orgs/{orgId}/roles             — Create a custom role
PATCH  /api/v1/orgs/{orgId}/roles/{roleId}    — Update a role
DELETE /api/v1/orgs/{orgId}/roles/{roleId}    — Delete an unused custom role
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.access import AuthContext, require_manager, require_member
from app.core.database import get_session
from app.services import roles as role_service
from cayco_shared.schemas.roles import (
    RoleCreateRequest,
    RoleListResponse,
    RoleResponse,
    RoleUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=RoleListResponse, tags=["Roles"])
async def list_roles(
    include_inactive: bool = False,
    ctx: AuthContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    roles = await role_service.list_roles(session, ctx.scope, include_inactive=include_inactive)
    return RoleListResponse(count=len(roles), data=[role_service.role_response(r) for r in roles])


@router.get("/{roleId}", response_model=RoleResponse, tags=["Roles"])
async def get_role(
    roleId: uuid.UUID,
    ctx: AuthContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    role = await role_service.get_role(session, ctx.scope, roleId)
    return role_service.role_response(role)


@router.post("", response_model=RoleResponse, status_code=201, tags=["Roles"])
async def create_role(
    body: RoleCreateRequest,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    role = await role_service.create_role(session, ctx.org_id, body, ctx.user_id)
    return role_service.role_response(role)


@router.patch("/{roleId}", response_model=RoleResponse, tags=["Roles"])
async def update_role(
    roleId: uuid.UUID,
    body: RoleUpdateRequest,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    role = await role_service.update_role(session, ctx.org_id, roleId, body)
    return role_service.role_response(role)


@router.delete("/{roleId}", status_code=204, tags=["Roles"])
async def delete_role(
    roleId: uuid.UUID,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    await role_service.delete_role(session, ctx.org_id, roleId)
