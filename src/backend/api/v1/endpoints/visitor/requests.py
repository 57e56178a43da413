"""
Visitor Request API endpoints.

Department users submit visitor requests, security reviews them, and gate
staff check visitors in and out against the issued approval code.

**Key Features:**
- Submission with field validation (all problems reported at once)
- Edits while the request is still pending
- Approve/decline with a unique approval code issued on approval
- Automatic expiry of pending requests whose visit date has passed
- Check-in/check-out at the gate
- Per-status counts for dashboards

Domain errors raised by VisitorRequestService are mapped to HTTP responses
by the exception handlers registered in app.factory.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.dependencies import get_current_user
from db import User, VisitorRequestStatus
from schemas.visitor_request import (
    ReviewRequest,
    VisitorRequestCreate,
    VisitorRequestListResponse,
    VisitorRequestRead,
    VisitorRequestStatusCounts,
    VisitorRequestUpdate,
)
from services.visitor_request_service import VisitorRequestService

router = APIRouter()


@router.post("", response_model=VisitorRequestRead, status_code=201)
async def create_visitor_request(
    request_data: VisitorRequestCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Submit a new visitor request.

    The request starts out pending with no approval code. When no department
    is given, the requester's own department is used.

    Raises:
        HTTPException 400: One or more fields failed validation
        HTTPException 403: Caller cannot submit requests

    **Permissions:** department_user, admin
    """
    request = await VisitorRequestService.create_request(
        db=db, request_data=request_data, requester=current_user
    )
    return VisitorRequestRead.model_validate(request)


@router.get("", response_model=VisitorRequestListResponse)
async def list_visitor_requests(
    status: Optional[VisitorRequestStatus] = Query(None),
    department: Optional[str] = Query(None),
    scheduled_date: Optional[date] = Query(None, alias="scheduledDate"),
    requested_by_id: Optional[UUID] = Query(None, alias="requestedById"),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, alias="perPage"),
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    List visitor requests, newest visit date first.

    Callers without the view-all capability only see their own requests.
    Past-due pending requests are expired before the page is read.

    **Permissions:** Authenticated users
    """
    items, total = await VisitorRequestService.list_requests(
        db,
        current_user,
        status=status,
        department=department,
        scheduled_date=scheduled_date,
        requested_by_id=requested_by_id,
        page=page,
        per_page=per_page,
    )
    return VisitorRequestListResponse(
        items=[VisitorRequestRead.model_validate(item) for item in items],
        total=total,
        page=page,
        per_page=VisitorRequestService.page_size(per_page),
    )


@router.get("/counts", response_model=VisitorRequestStatusCounts)
async def get_visitor_request_counts(
    department: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Count visitor requests per status.

    **Permissions:** Authenticated users (scoped like the listing)
    """
    counts = await VisitorRequestService.get_status_counts(
        db, current_user, department=department
    )
    return VisitorRequestStatusCounts(counts=counts, total=sum(counts.values()))


@router.get("/by-code/{approval_code}", response_model=VisitorRequestRead)
async def get_visitor_request_by_code(
    approval_code: str,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Look up a visitor request by its approval code.

    **Permissions:** gate, admin
    """
    request = await VisitorRequestService.get_by_approval_code(
        db, approval_code, current_user
    )
    return VisitorRequestRead.model_validate(request)


@router.get("/{request_id}", response_model=VisitorRequestRead)
async def get_visitor_request(
    request_id: UUID,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Get a visitor request by ID.

    Raises:
        HTTPException 404: Request not found

    **Permissions:** Owner, or any role that can view all requests
    """
    request = await VisitorRequestService.get_request(db, request_id, current_user)
    return VisitorRequestRead.model_validate(request)


@router.patch("/{request_id}", response_model=VisitorRequestRead)
async def update_visitor_request(
    request_id: UUID,
    changes: VisitorRequestUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Edit a pending visitor request.

    Raises:
        HTTPException 400: Merged request failed validation
        HTTPException 409: Request is no longer pending, or was changed
            concurrently

    **Permissions:** Owner, admin
    """
    request = await VisitorRequestService.update_request(
        db, request_id, changes, current_user
    )
    return VisitorRequestRead.model_validate(request)


@router.post("/{request_id}/review", response_model=VisitorRequestRead)
async def review_visitor_request(
    request_id: UUID,
    review: ReviewRequest,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Approve or decline a pending visitor request.

    Approval issues the approval code shown to the visitor at the gate.

    **Permissions:** security, admin
    """
    request = await VisitorRequestService.review_request(
        db,
        request_id,
        current_user,
        review.status,
        review.review_comments,
    )
    return VisitorRequestRead.model_validate(request)


@router.post("/{request_id}/check-in", response_model=VisitorRequestRead)
async def check_in_visitor(
    request_id: UUID,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Check the visitor in at the gate.

    **Permissions:** gate, admin
    """
    request = await VisitorRequestService.check_in(db, request_id, current_user)
    return VisitorRequestRead.model_validate(request)


@router.post("/{request_id}/check-out", response_model=VisitorRequestRead)
async def check_out_visitor(
    request_id: UUID,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Check the visitor out at the gate.

    **Permissions:** gate, admin
    """
    request = await VisitorRequestService.check_out(db, request_id, current_user)
    return VisitorRequestRead.model_validate(request)
