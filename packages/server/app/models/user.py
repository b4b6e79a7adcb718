"""User model.

A user is an identity independent of any one organization. Email is not
unique at the table level: uniqueness holds per organization, through the
membership ledger. What a user may do is always read from the membership
for the organization of the request; ``global_role`` only matters when it
is Super Admin.
"""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(nullable=False, index=True)  # stored lower-cased
    password_hash: str = Field(nullable=False)
    first_name: str = Field(default="", nullable=False)
    last_name: str = Field(default="", nullable=False)
    phone: Optional[str] = None
    global_role: str = Field(nullable=False)
    # Cached, non-authoritative pointer to the last organization used
    current_organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id"
    )
    is_active: bool = Field(default=True, nullable=False)

    # Pending invitation (plaintext token; 7-day TTL)
    invite_token: Optional[str] = Field(default=None, index=True)
    invite_token_expires_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    invite_organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id"
    )
    invite_role: Optional[str] = None

    # Password reset (SHA-256 of the token; 10-minute TTL)
    reset_token_hash: Optional[str] = Field(default=None, index=True)
    reset_token_expires_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )

    last_login: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
