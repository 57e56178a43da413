"""
Database models for the visitor access workflow.

All timestamps are stored as UTC without timezone info; the API layer adds
the 'Z' suffix when serializing.
"""

from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.types import CHAR, TypeDecorator
from sqlmodel import Field, SQLModel

from db.enums import UserRole, VisitorRequestStatus, VisitPriority


def utc_now() -> datetime:
    """Get current time in UTC (timezone-naive) for database storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TableModel(SQLModel):
    """Base table model with common functionality."""

    pass


class UUIDField(TypeDecorator):
    """Platform-independent UUID type stored as CHAR(36)."""

    impl = CHAR(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, UUID):
            return UUID(value)
        return value


def _enum_column(enum_cls, **kwargs) -> Column:
    """String-backed enum column that stores member values."""
    return Column(
        SAEnum(
            enum_cls,
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
            validate_strings=True,
        ),
        **kwargs,
    )


class User(TableModel, table=True):
    """User provisioned by the identity provider.

    The service never issues credentials; it only resolves bearer tokens to
    rows of this table.
    """

    __tablename__ = "users"

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(UUIDField(), primary_key=True),
    )
    username: str = Field(
        sa_column=Column(String(100), nullable=False, unique=True),
        description="Login name",
    )
    full_name: Optional[str] = Field(
        default=None,
        sa_column=Column(String(200), nullable=True),
    )
    email: Optional[str] = Field(
        default=None,
        sa_column=Column(String(200), nullable=True),
    )
    role: UserRole = Field(
        default=UserRole.DEPARTMENT_USER,
        sa_column=_enum_column(UserRole, nullable=False),
    )
    department: Optional[str] = Field(
        default=None,
        sa_column=Column(String(100), nullable=True),
        description="Organizational unit the user submits requests for",
    )
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, default=True, nullable=False),
        description="False once the account has been revoked",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
    )


class VisitorRequest(TableModel, table=True):
    """A request for a visitor to enter the facility."""

    __tablename__ = "visitor_requests"
    __table_args__ = (
        Index("ix_visitor_requests_status_scheduled_date", "status", "scheduled_date"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(UUIDField(), primary_key=True, nullable=False),
        description="Unique UUID identifier for the visitor request",
    )

    # Visitor
    visitor_name: str = Field(sa_column=Column(String(100), nullable=False))
    visitor_id: str = Field(
        sa_column=Column(String(50), nullable=False),
        description="National ID / passport number of the visitor",
    )
    visitor_phone: str = Field(sa_column=Column(String(20), nullable=False))
    visitor_email: Optional[str] = Field(
        default=None,
        sa_column=Column(String(254), nullable=True),
    )
    purpose: str = Field(sa_column=Column(String(500), nullable=False))
    items_brought: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, default=list),
    )

    # Ownership
    department: str = Field(
        sa_column=Column(String(100), nullable=False, index=True),
    )
    requested_by_id: UUID = Field(
        sa_column=Column(
            UUIDField(),
            ForeignKey("users.id"),
            nullable=False,
            index=True,
        ),
        description="User who submitted the request",
    )

    # Schedule
    visit_duration_hours: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, default=0),
    )
    visit_duration_days: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, default=0),
    )
    scheduled_date: date = Field(
        sa_column=Column(Date, nullable=False, index=True),
    )
    scheduled_time: str = Field(
        sa_column=Column(String(5), nullable=False),
        description="24-hour HH:MM",
    )

    # Lifecycle
    status: VisitorRequestStatus = Field(
        default=VisitorRequestStatus.PENDING,
        sa_column=_enum_column(VisitorRequestStatus, nullable=False, index=True),
    )
    priority: VisitPriority = Field(
        default=VisitPriority.MEDIUM,
        sa_column=_enum_column(VisitPriority, nullable=False),
    )

    # Review
    reviewed_by_id: Optional[UUID] = Field(
        default=None,
        sa_column=Column(UUIDField(), ForeignKey("users.id"), nullable=True),
    )
    reviewed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    review_comments: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    approval_code: Optional[str] = Field(
        default=None,
        sa_column=Column(String(20), nullable=True, unique=True, index=True),
        description="Set once on approval, never changed",
    )

    # Gate
    checked_in_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    checked_in_by_id: Optional[UUID] = Field(
        default=None,
        sa_column=Column(UUIDField(), ForeignKey("users.id"), nullable=True),
    )
    checked_out_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    checked_out_by_id: Optional[UUID] = Field(
        default=None,
        sa_column=Column(UUIDField(), ForeignKey("users.id"), nullable=True),
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
        description="Request creation timestamp",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime, nullable=False),
        description="Last update timestamp",
    )
