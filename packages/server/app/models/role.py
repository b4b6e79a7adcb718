"""Custom role: an organization-specific named permission set."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Role(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "roles"
    __table_args__ = (sa.UniqueConstraint("organization_id", "name", name="uq_roles_org_name"),)

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    # [{"resource": "jobs", "actions": ["view", "edit"]}, ...]
    permissions: list = Field(default_factory=list, sa_type=JSONType, nullable=False)
    is_system_role: bool = Field(default=False, nullable=False)
    is_active: bool = Field(default=True, nullable=False)
    created_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
