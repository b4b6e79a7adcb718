"""
Authentication endpoints (not organization-scoped).

POST   /auth/register                   — Register a company owner + new company
POST   /auth/login                      — Organization ID + email + password
POST   /auth/invite                     — Invite a user (Owner / Operations Manager)
GET    /auth/invite/{token}             — Look up a pending invitation
POST   /auth/accept-invite              — Accept an invitation and set a password
POST   /auth/resend-invite/{userId}     — Resend a pending invitation
POST   /auth/forgot-organization-id     — Email all organization IDs for a login
POST   /auth/forgot-password            — Email a password reset link
POST   /auth/reset-password             — Reset password with a reset token
DELETE /auth/user/{userId}              — Remove a user from the current organization
GET    /auth/me                         — Current user in the current organization
POST   /auth/switch-organization        — Change the current organization
POST   /auth/logout                     — Revoke the current session
PUT    /auth/profile                    — Update own name and phone
PUT    /auth/profile/password           — Change own password
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.access import (
    AuthContext,
    CurrentUser,
    get_current_user,
    require_member,
    require_manager,
)
from app.core.database import get_session
from app.core.email import EmailSender, get_email_sender
from app.core.events import broadcast, org_topic
from app.services import auth as auth_service
from app.services import invitations as invitation_service
from app.services import memberships as membership_service
from app.services import users as user_service
from cayco_shared.schemas.auth import (
    AcceptInviteRequest,
    AuthResponse,
    ChangePasswordRequest,
    ForgotOrganizationIdRequest,
    ForgotPasswordRequest,
    InviteInfoResponse,
    InviteRequest,
    InviteResponse,
    LoginRequest,
    MeResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SwitchOrganizationRequest,
)
from cayco_shared.schemas.common import MessageResponse

log = structlog.get_logger()
router = APIRouter()


# ---------------------------------------------------------------------------
# Registration & login
# ---------------------------------------------------------------------------

@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    """Register a new company and its owner."""
    return await auth_service.register_owner(session, body)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    return await auth_service.login(session, body)


@router.post("/logout", response_model=MessageResponse)
async def logout(current: CurrentUser = Depends(get_current_user)):
    """Revoke the presented session token."""
    await auth_service.logout(current.jti, current.expires_at)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=MeResponse)
async def me(ctx: AuthContext = Depends(require_member)):
    return MeResponse(
        user=user_service.user_payload(
            ctx.user,
            role=ctx.role.name,
            organization=ctx.organization,
            membership=ctx.membership,
        )
    )


@router.post("/switch-organization", response_model=MeResponse)
async def switch_organization(
    body: SwitchOrganizationRequest,
    current: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await auth_service.switch_organization(session, current.user, body.organization_id)
    return MeResponse(user=user)


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    current: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.update_profile(session, current.user, body)
    return ProfileResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
    )


@router.put("/profile/password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    current: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await user_service.change_password(session, current.user, body)
    return MessageResponse(message="Password updated successfully")


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

@router.post("/invite", response_model=InviteResponse, status_code=201)
async def invite(
    body: InviteRequest,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    """Invite a user into the current organization (Owner / Operations Manager)."""
    return await invitation_service.invite(session, sender, ctx, body)


@router.get("/invite/{token}", response_model=InviteInfoResponse)
async def get_invite(
    token: str,
    session: AsyncSession = Depends(get_session),
):
    return await invitation_service.get_invite(session, token)


@router.post("/accept-invite", response_model=AuthResponse)
async def accept_invite(
    body: AcceptInviteRequest,
    session: AsyncSession = Depends(get_session),
):
    return await invitation_service.accept_invite(session, body)


@router.post("/resend-invite/{userId}", response_model=InviteResponse)
async def resend_invite(
    userId: uuid.UUID,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    return await invitation_service.resend_invite(session, sender, ctx, userId)


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

@router.post("/forgot-organization-id", response_model=MessageResponse)
async def forgot_organization_id(
    body: ForgotOrganizationIdRequest,
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    return await auth_service.forgot_organization_id(session, sender, body)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    return await auth_service.forgot_password(session, sender, body)


@router.post("/reset-password", response_model=AuthResponse)
async def reset_password(
    body: ResetPasswordRequest,
    session: AsyncSession = Depends(get_session),
):
    return await auth_service.reset_password(session, body)


# ---------------------------------------------------------------------------
# Membership removal
# ---------------------------------------------------------------------------

@router.delete("/user/{userId}", response_model=MessageResponse)
async def delete_user(
    userId: uuid.UUID,
    ctx: AuthContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    """Remove a user from the current organization. The user record is kept."""
    await membership_service.remove_member(
        session,
        organization_id=ctx.org_id,
        actor_user_id=ctx.user_id,
        target_user_id=userId,
    )
    await broadcast(org_topic(ctx.org_id), "member.removed", {"user_id": str(userId)})
    return MessageResponse(message="User removed from organization successfully")
