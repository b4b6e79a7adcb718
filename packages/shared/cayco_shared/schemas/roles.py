"""Custom role schemas: named permission sets scoped to one organization."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from .common import CamelModel, PermissionAction, SystemRole


class PermissionEntry(CamelModel):
    resource: str = Field(min_length=1, max_length=100)
    actions: list[PermissionAction] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RoleCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permissions: list[PermissionEntry] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def name_not_reserved(cls, v: str) -> str:
        v = v.strip()
        if v in {r.value for r in SystemRole}:
            raise ValueError(f"'{v}' is a reserved role name")
        return v


class RoleUpdateRequest(CamelModel):
    description: Optional[str] = Field(default=None, max_length=500)
    permissions: Optional[list[PermissionEntry]] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class RoleResponse(CamelModel):
    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    description: Optional[str] = None
    permissions: list[PermissionEntry]
    is_system_role: bool
    is_active: bool
    created_by_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class RoleListResponse(CamelModel):
    count: int
    data: list[RoleResponse]
