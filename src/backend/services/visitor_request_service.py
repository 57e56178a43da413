"""
Visitor Request service: the request lifecycle.

Every status change is a conditional update keyed on the status read just
before it, so concurrent reviewers, gate operators and the expiry sweep can
run in parallel (even across processes) without overwriting each other.
Past-due pending requests are expired before they are returned or
transitioned, so no caller ever acts on a stale "pending".
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.decorators import critical_database_operation, log_database_operation
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from core.logging_config import LifecycleLogger
from core.permissions import Capability, has_capability
from db.enums import UserRole, VisitorRequestStatus
from db.models import User, VisitorRequest, utc_now
from repositories.user_repository import UserRepository
from repositories.visitor_request_repository import VisitorRequestRepository
from schemas.visitor_request import (
    VisitDuration,
    VisitorRequestCreate,
    VisitorRequestUpdate,
)
from services.approval_code import generate_approval_code
from services.lifecycle import (
    REVIEW_DECISIONS,
    can_transition,
    current_business_date,
    is_past_due,
)
from services.request_validator import (
    validate_review_comments,
    validate_visitor_request,
)

# Module-level logger using __name__
logger = logging.getLogger(__name__)
lifecycle_log = LifecycleLogger()

# Editable fields that always hold a value; an explicit null cannot clear them
REQUIRED_UPDATE_FIELDS = {
    "items_brought": "Items brought cannot be null",
    "visit_duration": "Visit duration cannot be null",
    "priority": "Priority cannot be null",
}


def _require(actor: User, capability: Capability, message: str) -> None:
    if not has_capability(actor, capability):
        raise AuthorizationError(message)


def _can_view(actor: User, request: VisitorRequest) -> bool:
    if has_capability(actor, Capability.VIEW_ALL):
        return True
    return actor.is_active and request.requested_by_id == actor.id


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _storage_values(candidate: VisitorRequestCreate) -> Dict[str, Any]:
    """Column values for a validated candidate (trimmed, email lowercased)."""
    email = _clean(candidate.visitor_email)
    return {
        "visitor_name": _clean(candidate.visitor_name),
        "visitor_id": _clean(candidate.visitor_id),
        "visitor_phone": _clean(candidate.visitor_phone),
        "visitor_email": email.lower() if email else None,
        "purpose": _clean(candidate.purpose),
        "items_brought": [
            item for item in (_clean(i) for i in candidate.items_brought or []) if item
        ],
        "department": _clean(candidate.department),
        "visit_duration_hours": candidate.visit_duration.hours,
        "visit_duration_days": candidate.visit_duration.days,
        "scheduled_date": candidate.scheduled_date,
        "scheduled_time": _clean(candidate.scheduled_time),
        "priority": candidate.priority,
    }


def _candidate_from(request: VisitorRequest) -> VisitorRequestCreate:
    """Rebuild the editable fields of a stored request as a candidate."""
    return VisitorRequestCreate(
        visitor_name=request.visitor_name,
        visitor_id=request.visitor_id,
        visitor_phone=request.visitor_phone,
        visitor_email=request.visitor_email,
        purpose=request.purpose,
        items_brought=list(request.items_brought or []),
        department=request.department,
        visit_duration=VisitDuration(
            hours=request.visit_duration_hours,
            days=request.visit_duration_days,
        ),
        scheduled_date=request.scheduled_date,
        scheduled_time=request.scheduled_time,
        priority=request.priority,
    )


class VisitorRequestService:
    """Service for the visitor request lifecycle."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def _load(db: AsyncSession, request_id: UUID) -> VisitorRequest:
        request = await VisitorRequestRepository.find_by_id(db, request_id)
        if request is None:
            raise NotFoundError(f"Visitor request {request_id} not found")
        return request

    @staticmethod
    @critical_database_operation("apply_expiry")
    async def apply_expiry(
        db: AsyncSession,
        request: VisitorRequest,
        today: Optional[date] = None,
    ) -> VisitorRequest:
        """
        Expire a pending request whose scheduled date has passed.

        The rewrite is conditional on the record still being pending; if a
        reviewer got there first, the record is returned as they left it.

        Args:
            db: Database session
            request: Freshly loaded request
            today: Business date (defaults to current_business_date())

        Returns:
            The request as currently stored
        """
        if today is None:
            today = current_business_date()

        if not is_past_due(request, today):
            return request

        request_id = request.id
        expired = await VisitorRequestRepository.conditional_update(
            db,
            request_id,
            VisitorRequestStatus.PENDING,
            {"status": VisitorRequestStatus.EXPIRED},
        )
        if expired:
            lifecycle_log.transitioned(
                request_id, VisitorRequestStatus.PENDING.value, VisitorRequestStatus.EXPIRED.value
            )
        else:
            lifecycle_log.transition_lost(
                request_id, VisitorRequestStatus.PENDING.value, VisitorRequestStatus.EXPIRED.value
            )

        return await VisitorRequestService._load(db, request_id)

    @staticmethod
    @critical_database_operation("get_visitor_request")
    async def get_request(
        db: AsyncSession, request_id: UUID, actor: User
    ) -> VisitorRequest:
        """
        Get a visitor request with expiry applied.

        Department users can only read the requests they submitted.

        Raises:
            NotFoundError: If the request does not exist
            AuthorizationError: If the actor may not see the request
        """
        request = await VisitorRequestService._load(db, request_id)
        if not _can_view(actor, request):
            raise AuthorizationError("You are not allowed to view this request")
        return await VisitorRequestService.apply_expiry(db, request)

    @staticmethod
    @critical_database_operation("get_visitor_request_by_code")
    async def get_by_approval_code(
        db: AsyncSession, approval_code: str, actor: User
    ) -> VisitorRequest:
        """
        Look up a request by approval code at the gate.

        Raises:
            AuthorizationError: If the actor is not a gate operator
            NotFoundError: If no request carries the code
        """
        _require(actor, Capability.GATE, "Gate access required")

        request = await VisitorRequestRepository.find_by_approval_code(
            db, approval_code.strip().upper()
        )
        if request is None:
            raise NotFoundError("No visitor request matches this approval code")
        return await VisitorRequestService.apply_expiry(db, request)

    @staticmethod
    def page_size(per_page: Optional[int] = None) -> int:
        """Effective page size: the configured default, capped at the maximum."""
        if per_page is None:
            per_page = settings.visitor.default_page_size
        return max(1, min(per_page, settings.visitor.max_page_size))

    @staticmethod
    @critical_database_operation("list_visitor_requests")
    @log_database_operation("visitor request listing", level="debug")
    async def list_requests(
        db: AsyncSession,
        actor: User,
        *,
        status: Optional[VisitorRequestStatus] = None,
        department: Optional[str] = None,
        scheduled_date: Optional[date] = None,
        requested_by_id: Optional[UUID] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> Tuple[List[VisitorRequest], int]:
        """
        List visitor requests with filtering and pagination.

        Past-due pending requests are expired first so the listing never
        shows them as pending. Actors without VIEW_ALL only see their own.

        Returns:
            Tuple of (requests, total)
        """
        if not actor.is_active:
            raise AuthorizationError("User account is inactive")

        actor_id = actor.id
        scoped = not has_capability(actor, Capability.VIEW_ALL)

        await VisitorRequestService.expire_stale_requests(db)

        if scoped:
            requested_by_id = actor_id

        return await VisitorRequestRepository.find_paginated(
            db,
            page=max(page, 1),
            per_page=VisitorRequestService.page_size(per_page),
            filters={
                "status": status,
                "department": department,
                "scheduled_date": scheduled_date,
                "requested_by_id": requested_by_id,
            },
            order_by=[VisitorRequest.scheduled_date.desc(), VisitorRequest.created_at.desc()],
        )

    @staticmethod
    @critical_database_operation("count_visitor_requests")
    async def get_status_counts(
        db: AsyncSession,
        actor: User,
        department: Optional[str] = None,
    ) -> Dict[VisitorRequestStatus, int]:
        """Count requests per status, scoped like list_requests."""
        if not actor.is_active:
            raise AuthorizationError("User account is inactive")

        actor_id = actor.id
        scoped = not has_capability(actor, Capability.VIEW_ALL)

        await VisitorRequestService.expire_stale_requests(db)

        return await VisitorRequestRepository.count_by_status(
            db,
            requested_by_id=actor_id if scoped else None,
            department=department,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    @critical_database_operation("create_visitor_request")
    @log_database_operation("visitor request creation", level="debug")
    async def create_request(
        db: AsyncSession,
        request_data: VisitorRequestCreate,
        requester: User,
    ) -> VisitorRequest:
        """
        Submit a new visitor request.

        Args:
            db: Database session
            request_data: Candidate request
            requester: Submitting user

        Returns:
            Created request with status pending and no approval code

        Raises:
            AuthorizationError: If the requester cannot submit or is revoked
            ValidationError: With every failing rule
        """
        _require(requester, Capability.SUBMIT, "You are not allowed to submit visitor requests")

        requester_id = requester.id
        if await UserRepository.find_active_by_id(db, requester_id) is None:
            raise AuthorizationError("Requester account is not active")

        candidate = request_data
        if _clean(candidate.department) is None and requester.department:
            candidate = candidate.model_copy(update={"department": requester.department})

        validate_visitor_request(candidate, current_business_date()).raise_for_errors()

        values = _storage_values(candidate)
        values.update(
            requested_by_id=requester_id,
            status=VisitorRequestStatus.PENDING,
            approval_code=None,
        )
        request = await VisitorRequestRepository.create(db, obj_in=values)

        lifecycle_log.request_created(
            request.id, requester_id, request.department, request.scheduled_date
        )
        return request

    @staticmethod
    @critical_database_operation("update_visitor_request")
    @log_database_operation("visitor request update", level="debug")
    async def update_request(
        db: AsyncSession,
        request_id: UUID,
        changes: VisitorRequestUpdate,
        actor: User,
    ) -> VisitorRequest:
        """
        Modify a request while it is still pending.

        The merged request is validated again, including the rule that the
        scheduled date may not be in the past.

        Raises:
            NotFoundError: If the request does not exist
            AuthorizationError: If the actor is neither the requester nor an admin
            InvalidStateError: If the request is no longer pending
            ValidationError: If the merged request is invalid
            ConflictError: If the request changed while being modified
        """
        actor_id = actor.id
        request = await VisitorRequestService._load(db, request_id)

        is_owner = request.requested_by_id == actor_id and has_capability(actor, Capability.SUBMIT)
        is_admin = actor.is_active and actor.role == UserRole.ADMIN
        if not (is_owner or is_admin):
            raise AuthorizationError("Only the requester can modify this request")

        request = await VisitorRequestService.apply_expiry(db, request)
        if request.status != VisitorRequestStatus.PENDING:
            raise InvalidStateError(
                f"Only pending requests can be modified; this request is {request.status.value}",
                current_status=request.status.value,
            )

        updates = changes.model_dump(exclude_unset=True)
        cleared = [
            REQUIRED_UPDATE_FIELDS[field]
            for field in REQUIRED_UPDATE_FIELDS
            if field in updates and updates[field] is None
        ]
        if cleared:
            raise ValidationError(cleared)
        merged = VisitorRequestCreate.model_validate(
            {**_candidate_from(request).model_dump(), **updates}
        )
        validate_visitor_request(merged, current_business_date()).raise_for_errors()

        updated = await VisitorRequestRepository.conditional_update(
            db, request_id, VisitorRequestStatus.PENDING, _storage_values(merged)
        )
        if not updated:
            lifecycle_log.transition_lost(request_id, VisitorRequestStatus.PENDING.value, "modified")
            raise ConflictError("Request was changed by someone else; reload and try again")

        lifecycle_log.request_updated(request_id, actor_id, list(updates))
        return await VisitorRequestService._load(db, request_id)

    @staticmethod
    @critical_database_operation("review_visitor_request")
    @log_database_operation("visitor request review", level="info")
    async def review_request(
        db: AsyncSession,
        request_id: UUID,
        reviewer: User,
        decision: VisitorRequestStatus,
        comments: Optional[str] = None,
    ) -> VisitorRequest:
        """
        Approve or decline a pending request.

        Status, reviewer, review time, comments and (for approvals) the
        approval code are written in one conditional update. The code is
        only filled if the row has none, so it is never regenerated.

        Raises:
            AuthorizationError: If the reviewer lacks the review capability
            ValidationError: If the decision or comments are invalid
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not pending (including expired)
            ConflictError: If another writer changed the request first
        """
        _require(reviewer, Capability.REVIEW, "Security review access required")

        try:
            decision = VisitorRequestStatus(decision)
        except ValueError:
            decision = None
        if decision not in REVIEW_DECISIONS:
            raise ValidationError(["Status must be approved or declined"])
        validate_review_comments(comments).raise_for_errors()

        reviewer_id = reviewer.id
        request = await VisitorRequestService._load(db, request_id)
        request = await VisitorRequestService.apply_expiry(db, request)

        if not can_transition(request.status, decision):
            raise InvalidStateError(
                f"Request has already been {request.status.value}",
                current_status=request.status.value,
            )

        values: Dict[str, Any] = {
            "status": decision,
            "reviewed_by_id": reviewer_id,
            "reviewed_at": utc_now(),
            "review_comments": _clean(comments),
        }

        attempts = settings.visitor.approval_code_attempts if decision == VisitorRequestStatus.APPROVED else 1
        updated = False
        for attempt in range(1, attempts + 1):
            if decision == VisitorRequestStatus.APPROVED:
                values["approval_code"] = func.coalesce(
                    VisitorRequest.approval_code, generate_approval_code()
                )
            try:
                updated = await VisitorRequestRepository.conditional_update(
                    db, request_id, VisitorRequestStatus.PENDING, values
                )
                break
            except IntegrityError as exc:
                if decision != VisitorRequestStatus.APPROVED:
                    raise
                if attempt == attempts:
                    raise ConflictError(
                        "Could not allocate a unique approval code; try again"
                    ) from exc
                logger.warning(
                    f"Approval code collision for request {request_id} "
                    f"(attempt {attempt}/{attempts}), regenerating"
                )

        if not updated:
            lifecycle_log.transition_lost(
                request_id, VisitorRequestStatus.PENDING.value, decision.value
            )
            current = await VisitorRequestService._load(db, request_id)
            if current.status == VisitorRequestStatus.EXPIRED:
                raise InvalidStateError(
                    "Request expired before it could be reviewed",
                    current_status=current.status.value,
                )
            raise ConflictError(
                "Request was reviewed by someone else; reload and try again"
            )

        lifecycle_log.transitioned(
            request_id, VisitorRequestStatus.PENDING.value, decision.value, reviewer_id
        )
        return await VisitorRequestService._load(db, request_id)

    @staticmethod
    async def _gate_transition(
        db: AsyncSession,
        request_id: UUID,
        actor: User,
        from_status: VisitorRequestStatus,
        to_status: VisitorRequestStatus,
        stamp: Dict[str, str],
    ) -> VisitorRequest:
        _require(actor, Capability.GATE, "Gate access required")

        actor_id = actor.id
        request = await VisitorRequestService._load(db, request_id)
        request = await VisitorRequestService.apply_expiry(db, request)

        if request.status != from_status or not can_transition(from_status, to_status):
            raise InvalidStateError(
                f"Cannot move a {request.status.value} request to {to_status.value}; "
                f"it must be {from_status.value}",
                current_status=request.status.value,
            )

        updated = await VisitorRequestRepository.conditional_update(
            db,
            request_id,
            from_status,
            {
                "status": to_status,
                stamp["at"]: utc_now(),
                stamp["by"]: actor_id,
            },
        )
        if not updated:
            lifecycle_log.transition_lost(request_id, from_status.value, to_status.value)
            raise ConflictError("Request was changed by someone else; reload and try again")

        lifecycle_log.transitioned(request_id, from_status.value, to_status.value, actor_id)
        return await VisitorRequestService._load(db, request_id)

    @staticmethod
    @critical_database_operation("check_in_visitor")
    @log_database_operation("visitor check-in", level="debug")
    async def check_in(
        db: AsyncSession, request_id: UUID, gate_actor: User
    ) -> VisitorRequest:
        """
        Check a visitor in. Only approved requests can be checked in.

        Raises:
            AuthorizationError: If the actor is not a gate operator
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not approved
            ConflictError: If another gate operator moved it first
        """
        return await VisitorRequestService._gate_transition(
            db,
            request_id,
            gate_actor,
            VisitorRequestStatus.APPROVED,
            VisitorRequestStatus.CHECKED_IN,
            {"at": "checked_in_at", "by": "checked_in_by_id"},
        )

    @staticmethod
    @critical_database_operation("check_out_visitor")
    @log_database_operation("visitor check-out", level="debug")
    async def check_out(
        db: AsyncSession, request_id: UUID, gate_actor: User
    ) -> VisitorRequest:
        """
        Check a visitor out. Only checked-in requests can be checked out.

        Raises:
            AuthorizationError: If the actor is not a gate operator
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not checked in
            ConflictError: If another gate operator moved it first
        """
        return await VisitorRequestService._gate_transition(
            db,
            request_id,
            gate_actor,
            VisitorRequestStatus.CHECKED_IN,
            VisitorRequestStatus.CHECKED_OUT,
            {"at": "checked_out_at", "by": "checked_out_by_id"},
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @staticmethod
    @critical_database_operation("expire_stale_visitor_requests")
    async def expire_stale_requests(
        db: AsyncSession, today: Optional[date] = None
    ) -> int:
        """
        Expire every pending request scheduled before today.

        Returns:
            Number of requests expired
        """
        if today is None:
            today = current_business_date()

        count = await VisitorRequestRepository.expire_past_due(db, today)
        lifecycle_log.sweep_completed(count)
        return count
