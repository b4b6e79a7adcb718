"""Organization (company) model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    # Public tenant key supplied at login; immutable once assigned
    identifier: str = Field(unique=True, nullable=False, index=True, max_length=8)
    owner_id: Optional[uuid.UUID] = Field(default=None, index=True)
    email: Optional[str] = None
    phone: Optional[str] = None
    settings: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
