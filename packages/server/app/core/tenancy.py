"""
Tenant scoping for queries and incoming payloads.

Every tenant-owned read goes through ``apply_tenant_filter`` and every
tenant-owned write body through ``scope_to_tenant``. Only a Super Admin
acting without a selected organization bypasses the filter.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class TenantScope:
    organization_id: Optional[uuid.UUID]
    bypass: bool = False

    @classmethod
    def of(cls, organization_id: uuid.UUID) -> "TenantScope":
        return cls(organization_id=organization_id)


def scope_to_tenant(payload: dict[str, Any], scope: TenantScope, field: str = "company_id") -> dict[str, Any]:
    """Force the organization field of an incoming body to the caller's tenant."""
    if scope.bypass:
        return dict(payload)
    return {**payload, field: scope.organization_id}


def apply_tenant_filter(stmt, column, scope: TenantScope):
    """Restrict a SELECT to the caller's tenant."""
    if scope.bypass:
        return stmt
    return stmt.where(column == scope.organization_id)
