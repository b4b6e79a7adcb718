"""
Organization service: the tenant directory.

Every organization gets an 8-character identifier that users type at login.
Identifiers are random, so creation is a bounded retry loop: pre-check the
candidate, insert inside a SAVEPOINT, and treat a unique-constraint failure
at write time as one more collision.
"""

from __future__ import annotations

import secrets
import uuid
from typing import Callable, Optional

import pydantic
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.errors import GenerationExhausted, NotFound, ValidationError
from app.models.base import utcnow
from app.models.organization import Organization
from app.services import memberships as membership_service

from cayco_shared.schemas.common import MembershipStatus, SystemRole
from cayco_shared.schemas.organizations import (
    OrgListItem,
    OrgResponse,
    OrgSettings,
    OrgUpdateRequest,
)

log = structlog.get_logger()


def generate_identifier() -> str:
    """4 random bytes as upper-case hex: 8 characters from [0-9A-F]."""
    return secrets.token_hex(4).upper()


def _deep_merge(base: dict, patch: dict) -> dict:
    """JSON Merge Patch style deep merge."""
    result = base.copy()
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


async def identifier_exists(session: AsyncSession, identifier: str) -> bool:
    result = await session.execute(
        select(Organization.id).where(Organization.identifier == identifier)
    )
    return result.first() is not None


async def create_organization(
    session: AsyncSession,
    *,
    name: str,
    owner_id: Optional[uuid.UUID] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    generator: Callable[[], str] = generate_identifier,
    max_attempts: Optional[int] = None,
) -> Organization:
    """Create an organization with a fresh unique identifier.

    Raises GenerationExhausted after ``max_attempts`` collisions; nothing is
    written in that case.
    """
    attempts = max_attempts or get_settings().org_identifier_max_attempts

    for attempt in range(1, attempts + 1):
        candidate = generator()
        if await identifier_exists(session, candidate):
            log.info("org.identifier_collision", attempt=attempt, stage="precheck")
            continue

        org = Organization(
            name=name.strip(),
            identifier=candidate,
            owner_id=owner_id,
            email=email,
            phone=phone,
            settings=OrgSettings().model_dump(),
        )
        try:
            async with session.begin_nested():
                session.add(org)
        except IntegrityError:
            # Another insert claimed the identifier between check and write
            log.info("org.identifier_collision", attempt=attempt, stage="insert")
            continue

        log.info("org.created", org_id=str(org.id), identifier=candidate, attempts=attempt)
        return org

    log.error("org.identifier_exhausted", attempts=attempts)
    raise GenerationExhausted()


async def get_by_identifier(session: AsyncSession, identifier: str) -> Organization:
    """Look an organization up by its public identifier (case-insensitive)."""
    result = await session.execute(
        select(Organization).where(Organization.identifier == identifier.strip().upper())
    )
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Organization not found")
    return org


async def find_by_identifier(session: AsyncSession, identifier: str) -> Optional[Organization]:
    try:
        return await get_by_identifier(session, identifier)
    except NotFound:
        return None


async def get_organization(session: AsyncSession, organization_id: uuid.UUID) -> Organization:
    org = await session.get(Organization, organization_id)
    if not org:
        raise NotFound("Organization not found")
    return org


async def update_organization(
    session: AsyncSession,
    org: Organization,
    req: OrgUpdateRequest,
) -> Organization:
    """Update company fields and/or settings (deep merge)."""
    if req.name is not None:
        org.name = req.name.strip()
    if req.email is not None:
        org.email = str(req.email).lower()
    if req.phone is not None:
        org.phone = req.phone

    if req.settings is not None:
        merged = _deep_merge(org.settings or {}, req.settings)
        try:
            OrgSettings.model_validate(merged)
        except pydantic.ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first["loc"])
            raise ValidationError(f"Invalid settings: {field}: {first['msg']}") from exc
        org.settings = merged

    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info("org.updated", org_id=str(org.id))
    return org


async def transfer_ownership(
    session: AsyncSession,
    org: Organization,
    new_owner_id: uuid.UUID,
) -> Organization:
    """Hand the Company Owner role to another active member.

    The previous owner stays on as Operations Manager.
    """
    if org.owner_id == new_owner_id:
        raise ValidationError("User is already the company owner")

    target = await membership_service.find_active(session, new_owner_id, org.id)

    if org.owner_id is not None:
        previous = await membership_service.get_membership(session, org.owner_id, org.id)
        if previous and previous.status == MembershipStatus.ACTIVE.value:
            previous.role = SystemRole.OPERATIONS_MANAGER.value
            session.add(previous)

    target.role = SystemRole.OWNER.value
    session.add(target)
    previous_owner = org.owner_id
    org.owner_id = new_owner_id
    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info(
        "org.ownership_transferred",
        org_id=str(org.id),
        from_user=str(previous_owner) if previous_owner else None,
        to_user=str(new_owner_id),
    )
    return org


async def list_user_organizations(
    session: AsyncSession, user_id: uuid.UUID
) -> list[OrgListItem]:
    """All organizations the user is an active member of, with their role."""
    rows = await membership_service.list_active_organizations(session, user_id)
    return [
        OrgListItem(id=org.id, name=org.name, organization_id=org.identifier, role=m.role)
        for org, m in rows
    ]


async def list_all_organizations(session: AsyncSession) -> list[Organization]:
    result = await session.execute(select(Organization).order_by(Organization.name))
    return list(result.scalars().all())


def org_response(org: Organization) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        organization_id=org.identifier,
        owner_id=org.owner_id,
        email=org.email,
        phone=org.phone,
        settings=OrgSettings.model_validate(org.settings or {}),
        created_at=org.created_at,
        updated_at=org.updated_at,
    )
