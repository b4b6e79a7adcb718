"""
Authentication and onboarding schemas shared between server and clients.

Covers: registration, login, invitations, password/organization-ID recovery
and the user payload returned with every session token.
"""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import EmailStr, Field

from .common import CamelModel


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RegisterRequest(CamelModel):
    """Self-registration of a company owner (creates user + organization)."""
    email: EmailStr
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    company_name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)


class LoginRequest(CamelModel):
    organization_id: str = Field(min_length=1, description="8-character organization identifier")
    email: EmailStr
    password: str = Field(min_length=1)


class InviteRequest(CamelModel):
    email: EmailStr
    role: str = Field(min_length=1, max_length=100)


class AcceptInviteRequest(CamelModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class ForgotOrganizationIdRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr
    organization_id: str = Field(min_length=1)


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SwitchOrganizationRequest(CamelModel):
    organization_id: str = Field(min_length=1)


class ProfileUpdateRequest(CamelModel):
    """Self-service profile edit; omitted fields are left alone."""
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AuthUser(CamelModel):
    """The user as seen from one organization context."""
    id: uuid.UUID
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str
    company_id: Optional[uuid.UUID] = None
    organization_id: Optional[str] = None
    onboarding_completed: Optional[bool] = None


class AuthResponse(CamelModel):
    success: bool = True
    token: str
    user: AuthUser
    message: Optional[str] = None


class MeResponse(CamelModel):
    success: bool = True
    user: AuthUser


class ProfileResponse(CamelModel):
    id: uuid.UUID
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None


class InvitedUser(CamelModel):
    id: uuid.UUID
    email: str
    role: str


class InviteResponse(CamelModel):
    success: bool = True
    message: str
    user: InvitedUser
    email_sent: bool
    warning: Optional[str] = None


class InviteInfoResponse(CamelModel):
    success: bool = True
    email: str
    role: str
    company_id: uuid.UUID
    organization_id: str
    company_name: str
