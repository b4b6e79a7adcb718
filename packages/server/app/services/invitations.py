"""
Invitation workflow: invite -> (email) -> accept.

Writes are committed before the invite email goes out. A failed send never
undoes the invitation; the response reports ``emailSent=false`` and the
operator can use resend.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.access import AuthContext
from app.core.auth import TokenPurpose, generate_temporary_password, issue_single_use_token
from app.core.email import EmailSender
from app.core.errors import AlreadyMember, InvalidOrExpiredToken, ValidationError
from app.core.events import broadcast, org_topic
from app.models.organization import Organization
from app.models.user import User
from app.services import emails as email_service
from app.services import memberships as membership_service
from app.services import organizations as org_service
from app.services import roles as role_service
from app.services import users as user_service
from app.services.auth import issue_session

from cayco_shared.schemas.auth import (
    AcceptInviteRequest,
    AuthResponse,
    InvitedUser,
    InviteInfoResponse,
    InviteRequest,
    InviteResponse,
)
from cayco_shared.schemas.common import MembershipStatus

log = structlog.get_logger()

INVALID_INVITE_MESSAGE = "Invalid or expired invitation token"
EMAIL_FAILED_WARNING = (
    "The invitation was created but the email could not be sent. "
    "Use resend invite to try again."
)


def _attach_invite(user: User, organization: Organization, role: str) -> str:
    """Put a fresh invite token on the user; returns the plaintext.

    A user holds one invitation at a time, so a live one from another
    organization is replaced.
    """
    if user_service.has_pending_invite(user) and user.invite_organization_id != organization.id:
        log.warning(
            "invite.superseded",
            user_id=str(user.id),
            previous_org_id=str(user.invite_organization_id),
            org_id=str(organization.id),
        )
    token = issue_single_use_token(TokenPurpose.INVITE)
    user.invite_token = token.stored
    user.invite_token_expires_at = token.expires_at
    user.invite_organization_id = organization.id
    user.invite_role = role
    return token.plaintext


async def _deliver(
    sender: EmailSender, user: User, organization: Organization, role: str, token: str
) -> InviteResponse:
    result = await email_service.send_invite(
        sender,
        to=user.email,
        company_name=organization.name,
        role=role,
        token=token,
        identifier=organization.identifier,
    )
    if not result.success:
        log.warning(
            "invite.email_failed",
            user_id=str(user.id),
            org_id=str(organization.id),
            error=result.error,
        )
    return InviteResponse(
        message="Invitation sent successfully",
        user=InvitedUser(id=user.id, email=user.email, role=role),
        email_sent=result.success,
        warning=None if result.success else EMAIL_FAILED_WARNING,
    )


async def invite(
    session: AsyncSession,
    sender: EmailSender,
    ctx: AuthContext,
    req: InviteRequest,
) -> InviteResponse:
    org = ctx.org
    role = req.role.strip()
    await role_service.ensure_assignable(session, org.id, role)

    candidates = await user_service.find_users_by_email(session, req.email)
    for candidate in candidates:
        existing = await membership_service.get_membership(session, candidate.id, org.id)
        if existing and existing.status in membership_service.LIVE_STATUSES:
            raise AlreadyMember()

    if candidates:
        user = candidates[0]
    else:
        user = await user_service.create_user(
            session,
            email=req.email,
            password=generate_temporary_password(),
            global_role=role,
            is_active=False,
        )

    token = _attach_invite(user, org, role)
    session.add(user)
    await session.flush()

    await membership_service.create_membership(
        session,
        user=user,
        organization_id=org.id,
        role=role,
        invited_by_id=ctx.user_id,
    )
    await session.commit()

    log.info("invite.created", user_id=str(user.id), org_id=str(org.id), role=role)
    response = await _deliver(sender, user, org, role, token)
    await broadcast(
        org_topic(org.id),
        "member.invited",
        {"user_id": str(user.id), "role": role, "email_sent": response.email_sent},
    )
    return response


async def get_invite(session: AsyncSession, token: str) -> InviteInfoResponse:
    user = await user_service.find_user_by_token(session, TokenPurpose.INVITE, token)
    if user is None or user.invite_organization_id is None:
        raise InvalidOrExpiredToken(INVALID_INVITE_MESSAGE)
    org = await org_service.get_organization(session, user.invite_organization_id)
    return InviteInfoResponse(
        email=user.email,
        role=user.invite_role or "",
        company_id=org.id,
        organization_id=org.identifier,
        company_name=org.name,
    )


async def accept_invite(session: AsyncSession, req: AcceptInviteRequest) -> AuthResponse:
    """Consume the invitation, set credentials, and activate the membership."""
    user_service.check_password_strength(req.password)

    user = await user_service.find_user_by_token(session, TokenPurpose.INVITE, req.token)
    if user is None or user.invite_organization_id is None:
        raise InvalidOrExpiredToken(INVALID_INVITE_MESSAGE)
    organization_id = user.invite_organization_id
    role = user.invite_role

    if not await user_service.consume_token(session, user, TokenPurpose.INVITE):
        raise InvalidOrExpiredToken(INVALID_INVITE_MESSAGE)

    user_service.set_password(user, req.password)
    user.first_name = req.first_name.strip()
    user.last_name = req.last_name.strip()
    user.is_active = True
    user.current_organization_id = organization_id
    user.invite_organization_id = None
    user.invite_role = None
    session.add(user)
    await session.flush()

    membership = await membership_service.get_membership(session, user.id, organization_id)
    if membership is None or membership.status == MembershipStatus.INACTIVE.value:
        membership = await membership_service.create_membership(
            session,
            user=user,
            organization_id=organization_id,
            role=membership.role if membership else role,
            status=MembershipStatus.ACTIVE,
        )
    else:
        await membership_service.activate(session, membership)
        membership.first_name = user.first_name
        membership.last_name = user.last_name
        session.add(membership)
        await session.flush()

    org = await org_service.get_organization(session, organization_id)
    log.info("invite.accepted", user_id=str(user.id), org_id=str(organization_id))
    await broadcast(org_topic(organization_id), "member.joined", {"user_id": str(user.id)})

    return AuthResponse(
        token=issue_session(user),
        user=user_service.user_payload(
            user, role=membership.role, organization=org, membership=membership
        ),
    )


async def resend_invite(
    session: AsyncSession,
    sender: EmailSender,
    ctx: AuthContext,
    user_id: uuid.UUID,
) -> InviteResponse:
    """Send the invitation again, re-issuing the token if it lapsed."""
    org = ctx.org
    user, membership = await membership_service.get_member(session, ctx.scope, user_id)
    if membership.status != MembershipStatus.PENDING.value:
        raise ValidationError("Only pending invitations can be resent")

    if user_service.has_pending_invite(user, org.id) and user.invite_role == membership.role:
        # Invite tokens are stored as issued
        token = user.invite_token
    else:
        token = _attach_invite(user, org, membership.role)
        session.add(user)
    await session.commit()

    log.info("invite.resent", user_id=str(user.id), org_id=str(org.id))
    return await _deliver(sender, user, org, membership.role, token)
