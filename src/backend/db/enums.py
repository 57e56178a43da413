"""
Model enums for database models.

These enums have a fixed, small set of values that are never modified at
runtime, so they are stored as strings instead of lookup tables.
"""
from enum import Enum


class UserRole(str, Enum):
    """
    Role of a user as provisioned by the identity provider.

    Used by User.role field.
    """
    DEPARTMENT_USER = "department_user"
    SECURITY = "security"
    GATE = "gate"
    ADMIN = "admin"


class VisitorRequestStatus(str, Enum):
    """
    Lifecycle status of a visitor request.

    Used by VisitorRequest.status field.
    """
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    EXPIRED = "expired"


class VisitPriority(str, Enum):
    """
    Priority of a visitor request.

    Used by VisitorRequest.priority field.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
