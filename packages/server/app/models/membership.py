"""User-Organization membership (join table, source of truth for role and status)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class Membership(TimestampMixin, SQLModel, table=True):
    __tablename__ = "memberships"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", primary_key=True, index=True
    )
    role: str = Field(nullable=False)  # system role name or custom role name
    status: str = Field(default="pending", nullable=False)  # pending | active | inactive
    # Display cache for this organization; refreshed whenever the membership changes
    first_name: str = Field(default="", nullable=False)
    last_name: str = Field(default="", nullable=False)
    invited_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    joined_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    registration_email_sent: bool = Field(default=False, nullable=False)
    registration_email_sent_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
