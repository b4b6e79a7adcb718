"""Per-organization onboarding schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .common import CamelModel


class OnboardingSteps(CamelModel):
    company_info: bool = False
    team_setup: bool = False
    pricing_rules: bool = False


class OnboardingStatus(CamelModel):
    steps: OnboardingSteps
    progress: float
    completed_steps: int
    total_steps: int
    onboarding_completed: bool
    registration_email_sent_at: Optional[datetime] = None


class OnboardingStatusResponse(CamelModel):
    success: bool = True
    data: OnboardingStatus


class OnboardingCompleteResponse(CamelModel):
    success: bool = True
    message: str
    email_sent: bool
    already_completed: bool = False
