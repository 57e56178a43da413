"""
Role capabilities.

The identity provider assigns each user one role; what a role may do is
looked up here rather than checked by role name throughout the code.
"""

from enum import Enum
from typing import Dict, FrozenSet

from db.enums import UserRole
from db.models import User


class Capability(str, Enum):
    """Actions gated by role."""

    SUBMIT = "submit"  # create and modify own requests
    REVIEW = "review"  # approve / decline
    GATE = "gate"  # check visitors in and out
    VIEW_ALL = "view_all"  # read requests of every department


ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.DEPARTMENT_USER: frozenset({Capability.SUBMIT}),
    UserRole.SECURITY: frozenset({Capability.REVIEW, Capability.VIEW_ALL}),
    UserRole.GATE: frozenset({Capability.GATE, Capability.VIEW_ALL}),
    UserRole.ADMIN: frozenset(Capability),
}


def capabilities_for(role: UserRole) -> FrozenSet[Capability]:
    """Return the capabilities granted to a role (empty for unknown roles)."""
    return ROLE_CAPABILITIES.get(role, frozenset())


def has_capability(user: User, capability: Capability) -> bool:
    """Check whether an active user holds a capability.

    Revoked accounts hold no capabilities.
    """
    if user is None or not user.is_active:
        return False
    return capability in capabilities_for(user.role)
