"""
Visitor Request schemas for API validation and serialization.

Input schemas only coerce types. Presence, length and pattern rules are
domain rules checked by services.request_validator so that a submitter sees
every problem in a single response.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from core.schema_base import HTTPSchemaModel
from db.enums import VisitorRequestStatus, VisitPriority
from db.models import VisitorRequest


class VisitDuration(HTTPSchemaModel):
    """Expected length of the visit."""
    hours: int = Field(default=0, description="0-23")
    days: int = Field(default=0, description="0-30")


class VisitorRequestCreate(HTTPSchemaModel):
    """Schema for submitting a new visitor request."""
    visitor_name: Optional[str] = None
    visitor_id: Optional[str] = None
    visitor_phone: Optional[str] = None
    visitor_email: Optional[str] = None
    purpose: Optional[str] = None
    items_brought: List[str] = Field(default_factory=list)
    department: Optional[str] = Field(
        default=None,
        description="Owning department (defaults to the requester's department)",
    )
    visit_duration: VisitDuration = Field(default_factory=VisitDuration)
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = Field(default=None, description="HH:MM, 24-hour")
    priority: VisitPriority = VisitPriority.MEDIUM


class VisitorRequestUpdate(HTTPSchemaModel):
    """Schema for modifying a pending visitor request. Unset fields are kept."""
    visitor_name: Optional[str] = None
    visitor_id: Optional[str] = None
    visitor_phone: Optional[str] = None
    visitor_email: Optional[str] = None
    purpose: Optional[str] = None
    items_brought: Optional[List[str]] = None
    department: Optional[str] = None
    visit_duration: Optional[VisitDuration] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    priority: Optional[VisitPriority] = None


class ReviewRequest(HTTPSchemaModel):
    """Reviewer decision on a pending request."""
    status: str = Field(..., description="approved or declined")
    review_comments: Optional[str] = None


class VisitorRequestRead(HTTPSchemaModel):
    """Schema for reading visitor request data."""
    id: UUID
    visitor_name: str
    visitor_id: str
    visitor_phone: str
    visitor_email: Optional[str] = None
    purpose: str
    items_brought: List[str] = Field(default_factory=list)
    department: str
    requested_by_id: UUID
    visit_duration: VisitDuration
    scheduled_date: date
    scheduled_time: str
    status: VisitorRequestStatus
    priority: VisitPriority
    reviewed_by_id: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_comments: Optional[str] = None
    approval_code: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_in_by_id: Optional[UUID] = None
    checked_out_at: Optional[datetime] = None
    checked_out_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def nest_visit_duration(cls, data: Any) -> Any:
        """Fold the two duration columns into the nested visitDuration object."""
        if isinstance(data, VisitorRequest):
            values = data.model_dump()
            values["visit_duration"] = {
                "hours": data.visit_duration_hours,
                "days": data.visit_duration_days,
            }
            return values
        return data


class VisitorRequestListResponse(HTTPSchemaModel):
    """Paginated list of visitor requests."""
    items: List[VisitorRequestRead]
    total: int
    page: int
    per_page: int


class VisitorRequestStatusCounts(HTTPSchemaModel):
    """Number of requests per status."""
    counts: Dict[VisitorRequestStatus, int]
    total: int
