"""
Custom roles: named permission sets scoped to one organization.

Fixed (system) role names are reserved; a custom role cannot shadow one.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Conflict, NotFound, ValidationError
from app.core.permissions import is_system_role
from app.core.tenancy import TenantScope, apply_tenant_filter
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.role import Role
from app.services.memberships import LIVE_STATUSES

from cayco_shared.schemas.common import SystemRole
from cayco_shared.schemas.roles import (
    PermissionEntry,
    RoleCreateRequest,
    RoleResponse,
    RoleUpdateRequest,
)

log = structlog.get_logger()

INVALID_ROLE_MESSAGE = "Invalid role. Role must be a system role or a custom role in your company."
OWNER_NOT_ASSIGNABLE_MESSAGE = "Ownership can only change through an ownership transfer"


async def list_roles(
    session: AsyncSession, scope: TenantScope, *, include_inactive: bool = False
) -> list[Role]:
    stmt = apply_tenant_filter(select(Role).order_by(Role.name), Role.organization_id, scope)
    if not include_inactive:
        stmt = stmt.where(Role.is_active.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_role(session: AsyncSession, scope: TenantScope, role_id: uuid.UUID) -> Role:
    result = await session.execute(
        apply_tenant_filter(select(Role).where(Role.id == role_id), Role.organization_id, scope)
    )
    role = result.scalar_one_or_none()
    if not role:
        raise NotFound("Role not found")
    return role


async def find_active_role(
    session: AsyncSession, organization_id: uuid.UUID, name: str
) -> Optional[Role]:
    result = await session.execute(
        select(Role).where(
            Role.organization_id == organization_id,
            Role.name == name,
            Role.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def ensure_assignable(session: AsyncSession, organization_id: uuid.UUID, name: str) -> None:
    """A role may be handed out if it is a fixed role other than Super Admin
    and Owner, or an active custom role of this organization."""
    if name == SystemRole.SUPER_ADMIN.value:
        raise ValidationError(INVALID_ROLE_MESSAGE)
    if name == SystemRole.OWNER.value:
        raise ValidationError(OWNER_NOT_ASSIGNABLE_MESSAGE)
    if is_system_role(name):
        return
    if await find_active_role(session, organization_id, name) is None:
        raise ValidationError(INVALID_ROLE_MESSAGE)


async def create_role(
    session: AsyncSession,
    organization_id: uuid.UUID,
    req: RoleCreateRequest,
    created_by_id: Optional[uuid.UUID],
) -> Role:
    existing = await session.execute(
        select(Role.id).where(Role.organization_id == organization_id, Role.name == req.name)
    )
    if existing.first():
        raise Conflict("Role with this name already exists")

    role = Role(
        organization_id=organization_id,
        name=req.name,
        description=req.description,
        permissions=[p.model_dump(mode="json") for p in req.permissions],
        created_by_id=created_by_id,
    )
    try:
        async with session.begin_nested():
            session.add(role)
    except IntegrityError as exc:
        raise Conflict("Role with this name already exists") from exc

    log.info("role.created", role_id=str(role.id), org_id=str(organization_id), name=role.name)
    return role


async def update_role(
    session: AsyncSession,
    organization_id: uuid.UUID,
    role_id: uuid.UUID,
    req: RoleUpdateRequest,
) -> Role:
    role = await get_role(session, TenantScope.of(organization_id), role_id)

    if req.permissions is not None:
        if role.is_system_role:
            raise ValidationError("Cannot modify permissions of system roles")
        role.permissions = [p.model_dump(mode="json") for p in req.permissions]
    if req.description is not None:
        role.description = req.description
    if req.is_active is not None:
        role.is_active = req.is_active

    role.updated_at = utcnow()
    session.add(role)
    await session.flush()
    log.info("role.updated", role_id=str(role.id), org_id=str(organization_id))
    return role


async def delete_role(session: AsyncSession, organization_id: uuid.UUID, role_id: uuid.UUID) -> None:
    role = await get_role(session, TenantScope.of(organization_id), role_id)
    if role.is_system_role:
        raise ValidationError("Cannot delete system roles")

    in_use = await session.execute(
        select(func.count())
        .select_from(Membership)
        .where(
            Membership.organization_id == organization_id,
            Membership.role == role.name,
            Membership.status.in_(LIVE_STATUSES),
        )
    )
    count = in_use.scalar_one()
    if count:
        raise ValidationError(
            f"Cannot delete role. {count} user(s) are assigned to this role."
        )

    await session.delete(role)
    await session.flush()
    log.info("role.deleted", role_id=str(role_id), org_id=str(organization_id))


def role_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        company_id=role.organization_id,
        name=role.name,
        description=role.description,
        permissions=[PermissionEntry.model_validate(p) for p in role.permissions or []],
        is_system_role=role.is_system_role,
        is_active=role.is_active,
        created_by_id=role.created_by_id,
        created_at=role.created_at,
        updated_at=role.updated_at,
    )
