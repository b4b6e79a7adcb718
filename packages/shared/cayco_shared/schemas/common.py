from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire model: camelCase on the wire, snake_case accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SystemRole(str, Enum):
    SUPER_ADMIN = "Super Admin"
    OWNER = "Company Owner"
    OPERATIONS_MANAGER = "Operations Manager"
    ESTIMATOR = "Estimator"
    ACCOUNTANT = "Accountant"
    STAFF = "Staff"
    CLIENT = "Client"


# Roles that can be held through a membership (Super Admin is global only)
MEMBERSHIP_ROLES: list[str] = [r.value for r in SystemRole if r != SystemRole.SUPER_ADMIN]

# Roles allowed to invite, remove and manage members
MANAGER_ROLES: tuple[str, ...] = (SystemRole.OWNER.value, SystemRole.OPERATIONS_MANAGER.value)


class MembershipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


# Valid state transitions for a membership
MEMBERSHIP_TRANSITIONS: dict[MembershipStatus, list[MembershipStatus]] = {
    MembershipStatus.PENDING: [MembershipStatus.ACTIVE, MembershipStatus.INACTIVE],
    MembershipStatus.ACTIVE: [MembershipStatus.INACTIVE],
    MembershipStatus.INACTIVE: [],
}


class PermissionAction(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    MANAGE = "manage"


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: ErrorBody
