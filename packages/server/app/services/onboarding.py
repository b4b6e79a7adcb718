"""
Per-organization onboarding.

Completion is tracked on the membership (``registration_email_sent``), so a
user onboards separately in every organization they join.
"""

from __future__ import annotations

import pydantic
import structlog
from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.access import AuthContext
from app.core.email import EmailSender
from app.core.errors import ExternalDependencyFailure, NotOrganizationMember
from app.models.base import utcnow
from app.models.membership import Membership
from app.services import emails as email_service
from app.services.memberships import LIVE_STATUSES

from cayco_shared.schemas.common import MessageResponse
from cayco_shared.schemas.onboarding import (
    OnboardingCompleteResponse,
    OnboardingStatus,
    OnboardingSteps,
)
from cayco_shared.schemas.organizations import OrgSettings

log = structlog.get_logger()


async def onboarding_status(session: AsyncSession, ctx: AuthContext) -> OnboardingStatus:
    if ctx.is_super_admin and ctx.membership is None:
        steps = OnboardingSteps(company_info=True, team_setup=True, pricing_rules=True)
        return OnboardingStatus(
            steps=steps, progress=100, completed_steps=3, total_steps=3, onboarding_completed=True
        )

    org = ctx.org
    team = await session.execute(
        select(func.count())
        .select_from(Membership)
        .where(Membership.organization_id == org.id, Membership.status.in_(LIVE_STATUSES))
    )
    try:
        settings = OrgSettings.model_validate(org.settings or {})
    except pydantic.ValidationError:
        settings = OrgSettings()

    steps = OnboardingSteps(
        company_info=bool(org.name and org.email),
        team_setup=team.scalar_one() > 1,
        pricing_rules=bool(settings.pricing_rules.default_markup),
    )
    flags = steps.model_dump().values()
    completed = sum(1 for done in flags if done)
    total = len(flags)
    membership = ctx.membership
    return OnboardingStatus(
        steps=steps,
        progress=completed / total * 100,
        completed_steps=completed,
        total_steps=total,
        onboarding_completed=bool(membership and membership.registration_email_sent),
        registration_email_sent_at=membership.registration_email_sent_at if membership else None,
    )


async def complete_onboarding(
    session: AsyncSession, sender: EmailSender, ctx: AuthContext
) -> OnboardingCompleteResponse:
    """Mark onboarding done and send the registration email exactly once.

    The flag is claimed with a conditional UPDATE; only the request that flips
    it sends the email. The flag stays set even if the send fails.
    """
    membership = ctx.membership
    if membership is None:
        raise NotOrganizationMember()
    org = ctx.org
    now = utcnow()

    result = await session.execute(
        update(Membership)
        .where(
            Membership.user_id == membership.user_id,
            Membership.organization_id == membership.organization_id,
            Membership.registration_email_sent.is_(False),
        )
        .values(registration_email_sent=True, registration_email_sent_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        log.info("onboarding.already_completed", org_id=str(org.id))
        return OnboardingCompleteResponse(
            message="Onboarding completed", email_sent=False, already_completed=True
        )
    await session.commit()
    await session.refresh(membership)

    user = ctx.user
    sent = await email_service.send_registration(
        sender,
        to=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        company_name=org.name,
        identifier=org.identifier,
    )
    if not sent.success:
        log.warning("onboarding.email_failed", org_id=str(org.id), error=sent.error)
    else:
        log.info("onboarding.completed", org_id=str(org.id))
    return OnboardingCompleteResponse(message="Onboarding completed", email_sent=sent.success)


async def resend_welcome_email(
    session: AsyncSession, sender: EmailSender, ctx: AuthContext
) -> MessageResponse:
    """Manual recovery: always sends, regardless of the onboarding flag."""
    membership = ctx.membership
    if membership is None:
        raise NotOrganizationMember()
    org = ctx.org
    user = ctx.user

    sent = await email_service.send_registration(
        sender,
        to=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        company_name=org.name,
        identifier=org.identifier,
    )
    if not sent.success:
        log.warning("onboarding.resend_failed", org_id=str(org.id), error=sent.error)
        raise ExternalDependencyFailure("Failed to send welcome email. Please try again later.")

    membership.registration_email_sent = True
    membership.registration_email_sent_at = utcnow()
    session.add(membership)
    await session.flush()
    log.info("onboarding.welcome_resent", org_id=str(org.id))
    return MessageResponse(message="Welcome email sent")
