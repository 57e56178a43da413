"""
Database models using SQLModel.
"""
from .enums import UserRole, VisitorRequestStatus, VisitPriority
from .models import TableModel, User, UUIDField, VisitorRequest, utc_now

__all__ = [
    "TableModel",
    "UUIDField",
    "User",
    "VisitorRequest",
    "UserRole",
    "VisitorRequestStatus",
    "VisitPriority",
    "utc_now",
]
