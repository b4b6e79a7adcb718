"""
Onboarding API endpoints (per organization).

GET    /api/v1/orgs/{orgId}/onboarding/status          — Step progress + completion flag
POST   /api/v1/orgs/{orgId}/onboarding/complete        — Complete onboarding (idempotent)
POST   /api/v1/orgs/{orgId}/onboarding/resend-welcome  — Send the registration email again
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.access import AuthContext, require_member
from app.core.database import get_session
from app.core.email import EmailSender, get_email_sender
from app.services import onboarding as onboarding_service
from cayco_shared.schemas.common import MessageResponse
from cayco_shared.schemas.onboarding import (
    OnboardingCompleteResponse,
    OnboardingStatusResponse,
)

router = APIRouter()


@router.get("/status", response_model=OnboardingStatusResponse, tags=["Onboarding"])
async def get_status(
    ctx: AuthContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    data = await onboarding_service.onboarding_status(session, ctx)
    return OnboardingStatusResponse(data=data)


@router.post("/complete", response_model=OnboardingCompleteResponse, tags=["Onboarding"])
async def complete(
    ctx: AuthContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    return await onboarding_service.complete_onboarding(session, sender, ctx)


@router.post("/resend-welcome", response_model=MessageResponse, tags=["Onboarding"])
async def resend_welcome(
    ctx: AuthContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    return await onboarding_service.resend_welcome_email(session, sender, ctx)
