"""
Permission model.

Fixed roles map to a static permission matrix; custom roles carry their own
list of ``{resource, actions}`` entries. ``EffectiveRole`` is the resolved
value used for every authorization decision of a request, and
``has_permission`` is a pure function over it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Iterable, Optional

from cayco_shared.schemas.common import PermissionAction, SystemRole

WILDCARD = "*"

# (resource, action) pairs per fixed role
ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    SystemRole.OWNER.value: frozenset({WILDCARD}),
    SystemRole.OPERATIONS_MANAGER.value: frozenset({
        "jobs.view", "jobs.create", "jobs.edit", "jobs.delete",
        "schedules.view", "schedules.create", "schedules.edit", "schedules.delete",
        "customers.view", "customers.create", "customers.edit",
        "estimates.view", "estimates.create", "estimates.edit",
        "invoices.view", "invoices.create", "invoices.edit",
        "reports.view", "users.view", "users.invite",
        "work.view", "work.manage",
        "inbox.view",
    }),
    SystemRole.ESTIMATOR.value: frozenset({
        "jobs.view", "customers.view", "customers.create", "customers.edit",
        "estimates.view", "estimates.create", "estimates.edit", "estimates.delete",
        "work.view",
        "inbox.view",
    }),
    SystemRole.ACCOUNTANT.value: frozenset({
        "jobs.view", "customers.view", "invoices.view", "invoices.create",
        "invoices.edit", "invoices.delete", "reports.view",
        "work.view",
        "inbox.view",
    }),
    SystemRole.STAFF.value: frozenset({
        "jobs.view", "schedules.view", "jobs.edit",
        "work.view",
        "inbox.view",
    }),
    SystemRole.CLIENT.value: frozenset({
        "jobs.view", "invoices.view", "schedules.view",
        "work.view",
        "inbox.view",
    }),
}


def is_system_role(name: str) -> bool:
    return name in {r.value for r in SystemRole}


def permissions_from_entries(entries: Iterable[dict]) -> frozenset[str]:
    """Flatten stored custom-role entries into ``resource.action`` strings."""
    granted: set[str] = set()
    for entry in entries or []:
        resource = entry.get("resource")
        if not resource:
            continue
        for action in entry.get("actions") or []:
            granted.add(f"{resource}.{action}")
    return frozenset(granted)


@dataclass(frozen=True)
class EffectiveRole:
    """The role a request acts with, resolved from the membership."""

    name: str
    permissions: frozenset[str] = field(default_factory=frozenset)
    organization_id: Optional[uuid.UUID] = None  # None only for Super Admin
    is_super_admin: bool = False

    @classmethod
    def super_admin(cls) -> "EffectiveRole":
        return cls(
            name=SystemRole.SUPER_ADMIN.value,
            permissions=frozenset({WILDCARD}),
            is_super_admin=True,
        )

    @classmethod
    def for_system_role(cls, name: str, organization_id: uuid.UUID) -> "EffectiveRole":
        return cls(
            name=name,
            permissions=ROLE_PERMISSIONS.get(name, frozenset()),
            organization_id=organization_id,
        )

    @classmethod
    def for_custom_role(
        cls, name: str, entries: Iterable[dict], organization_id: uuid.UUID
    ) -> "EffectiveRole":
        return cls(
            name=name,
            permissions=permissions_from_entries(entries),
            organization_id=organization_id,
        )


def has_permission(role: EffectiveRole, resource: str, action: str) -> bool:
    """Capability check for ``{resource, action}``.

    ``manage`` on a resource implies every action on it.
    """
    if role.is_super_admin or WILDCARD in role.permissions:
        return True
    action = action.value if isinstance(action, PermissionAction) else action
    return (
        f"{resource}.{action}" in role.permissions
        or f"{resource}.{PermissionAction.MANAGE.value}" in role.permissions
    )
