"""
Membership ledger: who can act as what, where.

Exactly one membership per (user, organization). Status moves along
MEMBERSHIP_TRANSITIONS; ``inactive`` is terminal, except that a fresh
invitation reuses (updates) the inactive record instead of adding a second
row for the same pair.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import (
    CannotRemoveOwner,
    Conflict,
    DuplicateMembership,
    NotFound,
    ValidationError,
)
from app.core.tenancy import TenantScope, apply_tenant_filter
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from cayco_shared.schemas.common import (
    MEMBERSHIP_TRANSITIONS,
    MembershipStatus,
    SystemRole,
)
from cayco_shared.schemas.users import MemberResponse

log = structlog.get_logger()

LIVE_STATUSES = (MembershipStatus.PENDING.value, MembershipStatus.ACTIVE.value)


async def get_membership(
    session: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> Optional[Membership]:
    return await session.get(Membership, (user_id, organization_id))


async def find_active(
    session: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> Membership:
    membership = await get_membership(session, user_id, organization_id)
    if not membership or membership.status != MembershipStatus.ACTIVE.value:
        raise NotFound("User not found in this organization")
    return membership


async def create_membership(
    session: AsyncSession,
    *,
    user: User,
    organization_id: uuid.UUID,
    role: str,
    invited_by_id: Optional[uuid.UUID] = None,
    status: MembershipStatus = MembershipStatus.PENDING,
) -> Membership:
    """Add a user to an organization.

    Raises DuplicateMembership if the pair is already pending or active.
    """
    now = utcnow()
    joined_at = now if status == MembershipStatus.ACTIVE else None

    existing = await get_membership(session, user.id, organization_id)
    if existing:
        if existing.status in LIVE_STATUSES:
            raise DuplicateMembership()
        existing.role = role
        existing.status = status.value
        existing.invited_by_id = invited_by_id
        existing.joined_at = joined_at
        existing.first_name = user.first_name
        existing.last_name = user.last_name
        session.add(existing)
        await session.flush()
        log.info(
            "membership.reopened",
            user_id=str(user.id),
            org_id=str(organization_id),
            status=status.value,
        )
        return existing

    membership = Membership(
        user_id=user.id,
        organization_id=organization_id,
        role=role,
        status=status.value,
        invited_by_id=invited_by_id,
        joined_at=joined_at,
        first_name=user.first_name,
        last_name=user.last_name,
    )
    session.add(membership)
    await session.flush()
    log.info(
        "membership.created",
        user_id=str(user.id),
        org_id=str(organization_id),
        role=role,
        status=status.value,
    )
    return membership


def _transition(membership: Membership, target: MembershipStatus) -> None:
    current = MembershipStatus(membership.status)
    if target not in MEMBERSHIP_TRANSITIONS[current]:
        raise Conflict(f"Cannot move membership from '{current.value}' to '{target.value}'")
    membership.status = target.value


async def activate(
    session: AsyncSession, membership: Membership, *, now: Optional[datetime] = None
) -> Membership:
    """pending -> active. Already-active memberships are left as they are."""
    if membership.status == MembershipStatus.ACTIVE.value:
        return membership
    _transition(membership, MembershipStatus.ACTIVE)
    membership.joined_at = now or utcnow()
    session.add(membership)
    await session.flush()
    log.info(
        "membership.activated",
        user_id=str(membership.user_id),
        org_id=str(membership.organization_id),
    )
    return membership


async def deactivate(session: AsyncSession, membership: Membership) -> User:
    """-> inactive, then reconcile the user record. Returns the user."""
    _transition(membership, MembershipStatus.INACTIVE)
    session.add(membership)
    await session.flush()
    log.info(
        "membership.deactivated",
        user_id=str(membership.user_id),
        org_id=str(membership.organization_id),
    )
    return await reconcile_user(session, membership.user_id, membership.organization_id)


async def reconcile_user(
    session: AsyncSession, user_id: uuid.UUID, removed_organization_id: uuid.UUID
) -> User:
    """Re-derive the user's cached organization and active flag from the ledger."""
    user = await session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    if user.invite_organization_id == removed_organization_id:
        user.invite_token = None
        user.invite_token_expires_at = None
        user.invite_organization_id = None
        user.invite_role = None

    result = await session.execute(
        select(Membership)
        .where(
            Membership.user_id == user_id,
            Membership.status == MembershipStatus.ACTIVE.value,
        )
        .order_by(Membership.joined_at)
    )
    remaining = list(result.scalars().all())

    if not remaining:
        if user.global_role != SystemRole.SUPER_ADMIN.value:
            user.is_active = False
        user.current_organization_id = None
    elif user.current_organization_id in (None, removed_organization_id):
        user.current_organization_id = remaining[0].organization_id

    session.add(user)
    await session.flush()
    log.info(
        "user.reconciled",
        user_id=str(user_id),
        active=user.is_active,
        remaining_orgs=len(remaining),
    )
    return user


async def remove_member(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    target_user_id: uuid.UUID,
) -> Membership:
    """Removal path: deactivates the membership, never deletes the user."""
    membership = await get_membership(session, target_user_id, organization_id)
    if not membership or membership.status == MembershipStatus.INACTIVE.value:
        raise NotFound("User not found in this organization")
    if target_user_id == actor_user_id:
        raise ValidationError("You cannot delete yourself")
    if membership.role == SystemRole.OWNER.value:
        raise CannotRemoveOwner()

    await deactivate(session, membership)
    log.info(
        "member.removed",
        user_id=str(target_user_id),
        org_id=str(organization_id),
        by=str(actor_user_id),
    )
    return membership


async def list_members(
    session: AsyncSession, scope: TenantScope, *, include_inactive: bool = False
) -> list[tuple[User, Membership]]:
    stmt = apply_tenant_filter(
        select(User, Membership)
        .join(Membership, Membership.user_id == User.id)
        .order_by(Membership.created_at),
        Membership.organization_id,
        scope,
    )
    if not include_inactive:
        stmt = stmt.where(Membership.status.in_(LIVE_STATUSES))
    result = await session.execute(stmt)
    return [(user, membership) for user, membership in result.all()]


async def get_member(
    session: AsyncSession, scope: TenantScope, user_id: uuid.UUID
) -> tuple[User, Membership]:
    stmt = (
        select(User, Membership)
        .join(Membership, Membership.user_id == User.id)
        .where(Membership.user_id == user_id)
    )
    result = await session.execute(apply_tenant_filter(stmt, Membership.organization_id, scope))
    row = result.one_or_none()
    if not row:
        raise NotFound("User not found in this organization")
    return row[0], row[1]


async def update_member_role(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    role: str,
) -> tuple[User, Membership]:
    """Change a member's role. Ownership only moves through a transfer."""
    user, membership = await get_member(session, TenantScope.of(organization_id), user_id)
    if membership.status == MembershipStatus.INACTIVE.value:
        raise NotFound("User not found in this organization")
    if SystemRole.OWNER.value in (membership.role, role):
        raise ValidationError("Ownership can only change through an ownership transfer")

    membership.role = role
    membership.first_name = user.first_name
    membership.last_name = user.last_name
    session.add(membership)
    await session.flush()
    log.info("member.role_changed", user_id=str(user_id), org_id=str(organization_id), role=role)
    return user, membership


async def list_active_organizations(
    session: AsyncSession, user_id: uuid.UUID
) -> list[tuple[Organization, Membership]]:
    result = await session.execute(
        select(Organization, Membership)
        .join(Membership, Membership.organization_id == Organization.id)
        .where(
            Membership.user_id == user_id,
            Membership.status == MembershipStatus.ACTIVE.value,
        )
        .order_by(Organization.name)
    )
    return [(org, membership) for org, membership in result.all()]


def member_response(user: User, membership: Membership) -> MemberResponse:
    return MemberResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name or membership.first_name,
        last_name=user.last_name or membership.last_name,
        role=membership.role,
        status=MembershipStatus(membership.status),
        invited_by_id=membership.invited_by_id,
        joined_at=membership.joined_at,
        last_login=user.last_login,
        registration_email_sent=membership.registration_email_sent,
    )
