"""
Access control: who is calling, in which organization, acting as what.

Every tenant-scoped route depends on ``get_auth_context`` (directly or via
``require_roles`` / ``require_permission``). The session token only names
the user; the organization comes from the request and the role always comes
from the active membership for that organization.

Organization context, first match wins:

1. ``orgId`` path parameter
2. ``X-Organization-Id`` header
3. the user's cached ``current_organization_id``
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import jwt
import structlog
from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import decode_session_token, is_session_revoked
from app.core.database import get_session
from app.core.errors import (
    Forbidden,
    NotOrganizationMember,
    Unauthenticated,
    ValidationError,
)
from app.core.permissions import EffectiveRole, has_permission, is_system_role
from app.core.tenancy import TenantScope
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from app.services import memberships as membership_service
from app.services import organizations as org_service
from app.services import roles as role_service

from cayco_shared.schemas.common import MANAGER_ROLES, MembershipStatus, SystemRole

log = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CurrentUser:
    """An authenticated user plus the session that authenticated them."""

    user: User
    jti: str
    expires_at: datetime


async def verify_session(raw_token: Optional[str]) -> dict:
    """Decode a bearer token and check it has not been revoked."""
    if not raw_token:
        raise Unauthenticated("Not authorized, no token")
    try:
        claims = decode_session_token(raw_token)
    except jwt.PyJWTError:
        raise Unauthenticated("Not authorized, token failed")
    if await is_session_revoked(claims["jti"]):
        raise Unauthenticated("Session has been revoked")
    return claims


async def _load_user(session: AsyncSession, claims: dict) -> User:
    try:
        user_id = uuid.UUID(claims["sub"])
    except ValueError:
        raise Unauthenticated("Not authorized, token failed")
    user = await session.get(User, user_id)
    if not user:
        raise Unauthenticated("User not found")
    if not user.is_active:
        raise Unauthenticated("User account is inactive")
    return user


async def authenticate(session: AsyncSession, raw_token: Optional[str]) -> User:
    claims = await verify_session(raw_token)
    return await _load_user(session, claims)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> CurrentUser:
    """Bearer-token authentication without any organization context."""
    claims = await verify_session(credentials.credentials if credentials else None)
    user = await _load_user(session, claims)
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return CurrentUser(
        user=user,
        jti=claims["jti"],
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )


# ---------------------------------------------------------------------------
# Role resolution
# ---------------------------------------------------------------------------

async def resolve_effective_role(
    session: AsyncSession,
    user: User,
    organization: Optional[Organization],
) -> tuple[EffectiveRole, Optional[Membership]]:
    """The role ``user`` acts with in ``organization``.

    Super Admins get all access everywhere. Everyone else needs an active
    membership; its role is the only source of authority.
    """
    membership = None
    if organization is not None:
        membership = await membership_service.get_membership(session, user.id, organization.id)

    if user.global_role == SystemRole.SUPER_ADMIN.value:
        return EffectiveRole.super_admin(), membership

    if organization is None or membership is None:
        raise NotOrganizationMember()
    if membership.status != MembershipStatus.ACTIVE.value:
        raise NotOrganizationMember()

    if is_system_role(membership.role):
        return EffectiveRole.for_system_role(membership.role, organization.id), membership

    custom = await role_service.find_active_role(session, organization.id, membership.role)
    if custom is None:
        # Custom role was deactivated or removed; the member keeps no permissions
        return EffectiveRole(name=membership.role, organization_id=organization.id), membership
    return (
        EffectiveRole.for_custom_role(custom.name, custom.permissions, organization.id),
        membership,
    )


def authorize(role: EffectiveRole, required_roles: Iterable[str]) -> None:
    if role.is_super_admin:
        return
    if role.name not in set(required_roles):
        raise Forbidden(f"User role '{role.name}' is not authorized to access this route")


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

class AuthContext:
    """Container for an authenticated user + their org context."""

    def __init__(
        self,
        current: CurrentUser,
        role: EffectiveRole,
        organization: Optional[Organization],
        membership: Optional[Membership],
    ):
        self.current = current
        self.user = current.user
        self.user_id = current.user.id
        self.role = role
        self.organization = organization
        self.membership = membership

    @property
    def is_super_admin(self) -> bool:
        return self.role.is_super_admin

    @property
    def org(self) -> Organization:
        if self.organization is None:
            raise ValidationError("No organization selected")
        return self.organization

    @property
    def org_id(self) -> uuid.UUID:
        return self.org.id

    @property
    def scope(self) -> TenantScope:
        return TenantScope(
            organization_id=self.organization.id if self.organization else None,
            bypass=self.is_super_admin and self.organization is None,
        )


async def resolve_organization(
    session: AsyncSession,
    user: User,
    path_identifier: Optional[str],
    header_identifier: Optional[str],
) -> Optional[Organization]:
    identifier = path_identifier or header_identifier
    if identifier:
        return await org_service.get_by_identifier(session, identifier)
    if user.current_organization_id:
        return await session.get(Organization, user.current_organization_id)
    return None


async def get_auth_context(
    request: Request,
    current: CurrentUser = Depends(get_current_user),
    x_organization_id: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> AuthContext:
    """Main access dependency for tenant-scoped routes."""
    organization = await resolve_organization(
        session,
        current.user,
        request.path_params.get("orgId"),
        x_organization_id,
    )
    role, membership = await resolve_effective_role(session, current.user, organization)
    ctx = AuthContext(current, role, organization, membership)
    structlog.contextvars.bind_contextvars(
        org_id=str(organization.id) if organization else None,
        role=role.name,
    )
    request.state.auth = ctx
    return ctx


def require_roles(*roles: str):
    """Dependency factory: the caller's role must be one of ``roles``."""
    allowed = frozenset(roles)

    async def dependency(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        authorize(ctx.role, allowed)
        return ctx

    return dependency


def require_permission(resource: str, action: str):
    """Dependency factory: the caller's role must grant ``resource.action``."""

    async def dependency(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not has_permission(ctx.role, resource, action):
            log.info("access.denied", resource=resource, action=action, role=ctx.role.name)
            raise Forbidden(f"You do not have permission to {action} {resource}")
        return ctx

    return dependency


async def require_member(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Any active member can access this endpoint."""
    return ctx


require_manager = require_roles(*MANAGER_ROLES)
require_owner = require_roles(SystemRole.OWNER.value)
