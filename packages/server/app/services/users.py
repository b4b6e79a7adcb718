"""
Identity directory: user records, independent of any one organization.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import TokenPurpose, hash_password, stored_form, verify_password
from app.core.config import get_settings
from app.core.errors import InvalidCredentials, ValidationError
from app.models.base import as_utc, utcnow
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from cayco_shared.schemas.auth import AuthUser, ChangePasswordRequest, ProfileUpdateRequest

log = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def find_users_by_email(session: AsyncSession, email: str) -> list[User]:
    """All user records for an email, most recently created first."""
    result = await session.execute(
        select(User)
        .where(User.email == normalize_email(email))
        .order_by(User.created_at.desc())
    )
    return list(result.scalars().all())


async def find_member_by_email(
    session: AsyncSession,
    organization_id: uuid.UUID,
    email: str,
    statuses: Iterable[str],
) -> Optional[tuple[User, Membership]]:
    """Resolve (organization, email) to the one user holding a membership there."""
    result = await session.execute(
        select(User, Membership)
        .join(Membership, Membership.user_id == User.id)
        .where(
            Membership.organization_id == organization_id,
            Membership.status.in_(list(statuses)),
            User.email == normalize_email(email),
        )
        .order_by(Membership.created_at.desc())
    )
    row = result.first()
    if row is None:
        return None
    return row[0], row[1]


async def create_user(
    session: AsyncSession,
    *,
    email: str,
    password: str,
    global_role: str,
    first_name: str = "",
    last_name: str = "",
    phone: Optional[str] = None,
    is_active: bool = True,
) -> User:
    user = User(
        email=normalize_email(email),
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        phone=phone or None,
        global_role=global_role,
        is_active=is_active,
    )
    session.add(user)
    await session.flush()
    log.info("user.created", user_id=str(user.id), active=is_active)
    return user


def check_password_strength(password: str) -> None:
    minimum = get_settings().min_password_length
    if len(password) < minimum:
        raise ValidationError(f"Password must be at least {minimum} characters")


def set_password(user: User, password: str) -> None:
    """Replace the stored hash; the raw password is never kept."""
    user.password_hash = hash_password(password)


# ---------------------------------------------------------------------------
# Self-service profile
# ---------------------------------------------------------------------------

async def _refresh_membership_names(session: AsyncSession, user: User) -> None:
    await session.execute(
        update(Membership)
        .where(Membership.user_id == user.id)
        .values(first_name=user.first_name, last_name=user.last_name)
        .execution_options(synchronize_session="fetch")
    )


async def update_profile(session: AsyncSession, user: User, req: ProfileUpdateRequest) -> User:
    if req.first_name is not None:
        user.first_name = req.first_name.strip()
    if req.last_name is not None:
        user.last_name = req.last_name.strip()
    if "phone" in req.model_fields_set:
        user.phone = req.phone or None
    session.add(user)
    await session.flush()
    await _refresh_membership_names(session, user)
    log.info("user.profile_updated", user_id=str(user.id))
    return user


async def change_password(session: AsyncSession, user: User, req: ChangePasswordRequest) -> None:
    """Rehash after checking the current password. Existing sessions stay valid."""
    if not verify_password(req.current_password, user.password_hash):
        log.info("user.password_change_failure", user_id=str(user.id))
        raise InvalidCredentials("Current password is incorrect")
    check_password_strength(req.new_password)
    set_password(user, req.new_password)
    session.add(user)
    await session.flush()
    log.info("user.password_changed", user_id=str(user.id))


def user_payload(
    user: User,
    *,
    role: str,
    organization: Optional[Organization] = None,
    membership: Optional[Membership] = None,
) -> AuthUser:
    """The user as seen from one organization context."""
    first_name = user.first_name or (membership.first_name if membership else "")
    last_name = user.last_name or (membership.last_name if membership else "")
    return AuthUser(
        id=user.id,
        email=user.email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        company_id=organization.id if organization else None,
        organization_id=organization.identifier if organization else None,
        onboarding_completed=membership.registration_email_sent if membership else None,
    )


# ---------------------------------------------------------------------------
# Single-use tokens stored on the user row
# ---------------------------------------------------------------------------

def _token_columns(purpose: TokenPurpose):
    if purpose == TokenPurpose.RESET:
        return User.reset_token_hash, User.reset_token_expires_at
    return User.invite_token, User.invite_token_expires_at


async def find_user_by_token(
    session: AsyncSession, purpose: TokenPurpose, candidate: str
) -> Optional[User]:
    """The user holding an unexpired token matching ``candidate``, if any."""
    token_column, expiry_column = _token_columns(purpose)
    result = await session.execute(
        select(User).where(token_column == stored_form(purpose, candidate))
    )
    user = result.scalars().first()
    if user is None:
        return None
    expires_at = as_utc(getattr(user, expiry_column.key))
    if expires_at is None or expires_at <= utcnow():
        return None
    return user


async def consume_token(session: AsyncSession, user: User, purpose: TokenPurpose) -> bool:
    """Clear the user's token if it is still the one we read.

    A conditional UPDATE, so of two concurrent consumers exactly one sees
    ``True``.
    """
    token_column, expiry_column = _token_columns(purpose)
    current = getattr(user, token_column.key)
    if current is None:
        return False
    result = await session.execute(
        update(User)
        .where(User.id == user.id, token_column == current)
        .values({token_column.key: None, expiry_column.key: None})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    setattr(user, token_column.key, None)
    setattr(user, expiry_column.key, None)
    return True


def has_pending_invite(user: User, organization_id: Optional[uuid.UUID] = None) -> bool:
    """An unexpired invitation is waiting on this user.

    With ``organization_id`` only an invitation to that organization counts.
    """
    if not user.invite_token:
        return False
    if organization_id is not None and user.invite_organization_id != organization_id:
        return False
    expires_at = as_utc(user.invite_token_expires_at)
    return expires_at is not None and expires_at > utcnow()
