"""
Organization-related Pydantic schemas shared between server and clients.

Covers: organization (company) read/update, OrgSettings and its sub-models,
ownership transfer.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import CamelModel

# 8 uppercase alphanumeric characters, the public tenant key used at login
ORG_IDENTIFIER_PATTERN = r"^[A-Z0-9]{8}$"


# ---------------------------------------------------------------------------
# Org Settings sub-models
# ---------------------------------------------------------------------------

class PricingRules(BaseModel):
    default_markup: float = Field(
        default=0.25,
        ge=0,
        le=10,
        description="Default markup applied to estimates (0.25 = 25%)",
    )
    labor_rate: float = Field(
        default=50,
        ge=0,
        description="Default hourly labor rate",
    )


class OrgSettings(BaseModel):
    """Complete company-level settings schema. All fields optional with defaults."""

    pricing_rules: PricingRules = Field(default_factory=PricingRules)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    timezone: str = Field(default="America/New_York", min_length=1)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    settings: Optional[dict] = Field(
        None,
        description="Partial settings update (deep-merged via JSON Merge Patch)",
    )


class TransferOwnershipRequest(CamelModel):
    user_id: uuid.UUID


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(CamelModel):
    id: uuid.UUID
    name: str
    organization_id: str
    owner_id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    settings: OrgSettings
    created_at: datetime
    updated_at: datetime


class OrgListItem(CamelModel):
    id: uuid.UUID
    name: str
    organization_id: str
    role: str  # the requesting user's role in this org


class OrgListResponse(CamelModel):
    data: list[OrgListItem]
