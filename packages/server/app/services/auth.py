"""
Account workflows that do not need an organization context: owner
registration, login, and password / organization-ID recovery.
"""

from __future__ import annotations

from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    TokenPurpose,
    create_session_token,
    issue_single_use_token,
    revoke_session,
    verify_password,
)
from app.core.email import EmailSender
from app.core.errors import (
    ExternalDependencyFailure,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvitationPending,
    NotOrganizationMember,
)
from app.models.base import utcnow
from app.models.user import User
from app.services import emails as email_service
from app.services import memberships as membership_service
from app.services import organizations as org_service
from app.services import users as user_service

from cayco_shared.schemas.auth import (
    AuthResponse,
    ForgotOrganizationIdRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from cayco_shared.schemas.common import MembershipStatus, MessageResponse, SystemRole

log = structlog.get_logger()

GENERIC_RESET_MESSAGE = "If an account exists with this email, a password reset link has been sent"


def issue_session(user: User) -> str:
    token, _ = create_session_token(user.id)
    return token


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

async def register_owner(session: AsyncSession, req: RegisterRequest) -> AuthResponse:
    """Create a user, a new organization, and an active owner membership.

    The same email may register again; each registration is a new company.
    """
    user_service.check_password_strength(req.password)

    user = await user_service.create_user(
        session,
        email=req.email,
        password=req.password,
        global_role=SystemRole.OWNER.value,
        first_name=req.first_name,
        last_name=req.last_name,
        phone=req.phone,
    )
    org = await org_service.create_organization(
        session,
        name=req.company_name,
        owner_id=user.id,
        email=user.email,
        phone=req.phone,
    )
    membership = await membership_service.create_membership(
        session,
        user=user,
        organization_id=org.id,
        role=SystemRole.OWNER.value,
        status=MembershipStatus.ACTIVE,
    )
    user.current_organization_id = org.id
    session.add(user)
    await session.flush()

    log.info("user.registered", user_id=str(user.id), org_id=str(org.id))
    return AuthResponse(
        token=issue_session(user),
        user=user_service.user_payload(
            user, role=SystemRole.OWNER.value, organization=org, membership=membership
        ),
    )


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

async def login(session: AsyncSession, req: LoginRequest) -> AuthResponse:
    """Resolve (organization identifier, email, password) to one membership."""
    org = await org_service.find_by_identifier(session, req.organization_id)
    if org is None:
        log.info("auth.login_failure", reason="unknown_organization")
        raise InvalidCredentials("Invalid organization ID")

    found = await user_service.find_member_by_email(
        session, org.id, req.email, membership_service.LIVE_STATUSES
    )
    if found is None:
        if await user_service.find_users_by_email(session, req.email):
            log.info("auth.login_failure", reason="not_a_member", org_id=str(org.id))
            raise InvalidCredentials("You are not a member of this organization")
        log.info("auth.login_failure", reason="unknown_email", org_id=str(org.id))
        raise InvalidCredentials()
    user, membership = found

    # Any open invitation blocks login, checked before the password so the
    # invitee is pointed at the invite link
    if user_service.has_pending_invite(user):
        log.info(
            "auth.login_failure",
            reason="invitation_pending",
            user_id=str(user.id),
            invited_to=str(user.invite_organization_id),
        )
        raise InvitationPending()

    if membership.status != MembershipStatus.ACTIVE.value:
        log.info("auth.login_failure", reason="membership_pending", user_id=str(user.id))
        raise InvalidCredentials()

    if not verify_password(req.password, user.password_hash):
        log.info("auth.login_failure", reason="bad_password", user_id=str(user.id))
        raise InvalidCredentials()

    if not user.is_active:
        log.info("auth.login_failure", reason="inactive", user_id=str(user.id))
        raise InvalidCredentials("Account is inactive")

    user.last_login = utcnow()
    user.current_organization_id = org.id
    session.add(user)
    await session.flush()

    log.info("auth.login_success", user_id=str(user.id), org_id=str(org.id), role=membership.role)
    return AuthResponse(
        token=issue_session(user),
        user=user_service.user_payload(
            user, role=membership.role, organization=org, membership=membership
        ),
    )


async def logout(jti: str, expires_at) -> None:
    """Revoke the session until the moment it would have expired anyway."""
    remaining = expires_at - utcnow()
    await revoke_session(jti, int(max(remaining, timedelta(seconds=1)).total_seconds()))
    log.info("auth.logout", jti=jti)


async def switch_organization(session: AsyncSession, user: User, identifier: str):
    """Move the cached organization hint; membership is checked, not assumed."""
    org = await org_service.get_by_identifier(session, identifier)
    membership = await membership_service.get_membership(session, user.id, org.id)

    if user.global_role == SystemRole.SUPER_ADMIN.value:
        role = SystemRole.SUPER_ADMIN.value
    elif membership is None or membership.status != MembershipStatus.ACTIVE.value:
        raise NotOrganizationMember()
    else:
        role = membership.role

    user.current_organization_id = org.id
    session.add(user)
    await session.flush()
    log.info("auth.organization_switched", user_id=str(user.id), org_id=str(org.id))
    return user_service.user_payload(user, role=role, organization=org, membership=membership)


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

async def forgot_organization_id(
    session: AsyncSession, sender: EmailSender, req: ForgotOrganizationIdRequest
) -> MessageResponse:
    """Email every organization identifier the (email, password) pair can log into.

    Unknown email, wrong password, and no organizations are indistinguishable.
    """
    matched = [
        user
        for user in await user_service.find_users_by_email(session, req.email)
        if verify_password(req.password, user.password_hash)
    ]

    summaries: list[email_service.OrganizationSummary] = []
    seen = set()
    for user in matched:
        for org, membership in await membership_service.list_active_organizations(session, user.id):
            if org.id in seen:
                continue
            seen.add(org.id)
            summaries.append(
                email_service.OrganizationSummary(
                    name=org.name, identifier=org.identifier, role=membership.role
                )
            )

    if not summaries:
        log.info("auth.forgot_org_id_failure", matched_users=len(matched))
        raise InvalidCredentials()

    result = await email_service.send_forgot_organization_id(
        sender, to=user_service.normalize_email(req.email), organizations=summaries
    )
    if not result.success:
        log.warning("auth.forgot_org_id_email_failed", error=result.error)
        raise ExternalDependencyFailure(
            "Failed to send email. Please contact support or try again later."
        )

    log.info("auth.forgot_org_id_sent", organizations=len(summaries))
    return MessageResponse(message="Organization IDs have been sent to your email")


async def forgot_password(
    session: AsyncSession, sender: EmailSender, req: ForgotPasswordRequest
) -> MessageResponse:
    """Issue a reset link to an active member. The response never says whether one was sent."""
    org = await org_service.find_by_identifier(session, req.organization_id)
    if org is None:
        log.info("password_reset.skipped", reason="unknown_organization")
        return MessageResponse(message=GENERIC_RESET_MESSAGE)

    found = await user_service.find_member_by_email(
        session, org.id, req.email, [MembershipStatus.ACTIVE.value]
    )
    if found is None or not found[0].is_active:
        log.info("password_reset.skipped", reason="no_active_member", org_id=str(org.id))
        return MessageResponse(message=GENERIC_RESET_MESSAGE)
    user, _ = found

    token = issue_single_use_token(TokenPurpose.RESET)
    user.reset_token_hash = token.stored
    user.reset_token_expires_at = token.expires_at
    session.add(user)
    await session.commit()

    result = await email_service.send_password_reset(
        sender, to=user.email, company_name=org.name, token=token.plaintext
    )
    if not result.success:
        log.warning("password_reset.email_failed", user_id=str(user.id), error=result.error)
    else:
        log.info("password_reset.requested", user_id=str(user.id), org_id=str(org.id))
    return MessageResponse(message=GENERIC_RESET_MESSAGE)


async def reset_password(session: AsyncSession, req: ResetPasswordRequest) -> AuthResponse:
    user_service.check_password_strength(req.password)

    user = await user_service.find_user_by_token(session, TokenPurpose.RESET, req.token)
    if user is None or not await user_service.consume_token(session, user, TokenPurpose.RESET):
        raise InvalidOrExpiredToken("Invalid or expired reset token")

    user_service.set_password(user, req.password)
    session.add(user)
    await session.flush()
    log.info("password_reset.completed", user_id=str(user.id))

    org = None
    membership = None
    if user.current_organization_id:
        org = await org_service.get_organization(session, user.current_organization_id)
        membership = await membership_service.get_membership(session, user.id, org.id)
    return AuthResponse(
        token=issue_session(user),
        user=user_service.user_payload(
            user,
            role=membership.role if membership else user.global_role,
            organization=org,
            membership=membership,
        ),
        message="Password reset successful",
    )
