"""
Integration tests for the visitor request lifecycle.

Tests:
- Submission (validation, department default, role checks)
- Edits while pending
- Review (approve issues a code, decline does not, no second review)
- Expiry applied on read and before transitions
- Gate check-in / check-out ordering
- Visibility and listing scope
- Racing writers: exactly one wins, the other gets a retryable conflict
- Approval code collisions
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from db.enums import VisitorRequestStatus
from db.models import User
from repositories.visitor_request_repository import VisitorRequestRepository
from schemas.visitor_request import VisitorRequestUpdate
from services.lifecycle import current_business_date
from services.visitor_request_service import VisitorRequestService
from tests.factories import (
    UserFactory,
    VisitorRequestFactory,
    VisitorRequestPayloadFactory,
)


async def _submit(db: AsyncSession, requester: User, **overrides):
    return await VisitorRequestService.create_request(
        db, VisitorRequestPayloadFactory.create(**overrides), requester
    )


async def _store(db: AsyncSession, request):
    db.add(request)
    await db.commit()
    await db.refresh(request)
    return request


# ============================================================================
# Submission
# ============================================================================

@pytest.mark.asyncio
async def test_create_request_starts_pending_without_code(
    db_session: AsyncSession, department_user: User
):
    request = await _submit(
        db_session,
        department_user,
        visitor_name="  Sara Ali  ",
        visitor_email="Sara.Ali@Example.com",
        items_brought=["Laptop", "  ", "Badge"],
    )

    assert request.status == VisitorRequestStatus.PENDING
    assert request.approval_code is None
    assert request.requested_by_id == department_user.id
    assert request.visitor_name == "Sara Ali"
    assert request.visitor_email == "sara.ali@example.com"
    assert request.items_brought == ["Laptop", "Badge"]
    assert request.reviewed_by_id is None


@pytest.mark.asyncio
async def test_create_request_defaults_department_to_requester(
    db_session: AsyncSession, department_user: User
):
    request = await _submit(db_session, department_user, department=None)
    assert request.department == "Engineering"


@pytest.mark.asyncio
async def test_create_request_reports_every_problem(
    db_session: AsyncSession, department_user: User
):
    with pytest.raises(ValidationError) as exc_info:
        await _submit(
            db_session,
            department_user,
            visitor_name="",
            visitor_phone="not-a-phone",
            scheduled_date=current_business_date() - timedelta(days=1),
        )

    assert exc_info.value.reasons == [
        "Visitor name is required",
        "Please enter a valid phone number",
        "Scheduled date cannot be in the past",
    ]
    total = await VisitorRequestRepository.count(db_session)
    assert total == 0


@pytest.mark.asyncio
async def test_security_cannot_submit(db_session: AsyncSession, security_user: User):
    with pytest.raises(AuthorizationError):
        await _submit(db_session, security_user)


@pytest.mark.asyncio
async def test_revoked_user_cannot_submit(db_session: AsyncSession):
    revoked = UserFactory.create(is_active=False)
    db_session.add(revoked)
    await db_session.commit()

    with pytest.raises(AuthorizationError):
        await _submit(db_session, revoked)


# ============================================================================
# Edits
# ============================================================================

@pytest.mark.asyncio
async def test_owner_can_update_pending_request(
    db_session: AsyncSession, department_user: User
):
    request = await _submit(db_session, department_user)
    new_date = current_business_date() + timedelta(days=5)

    updated = await VisitorRequestService.update_request(
        db_session,
        request.id,
        VisitorRequestUpdate(purpose="Contract signing", scheduled_date=new_date),
        department_user,
    )

    assert updated.purpose == "Contract signing"
    assert updated.scheduled_date == new_date
    assert updated.visitor_name == request.visitor_name
    assert updated.status == VisitorRequestStatus.PENDING


@pytest.mark.asyncio
async def test_update_revalidates_merged_request(
    db_session: AsyncSession, department_user: User
):
    request = await _submit(db_session, department_user)

    with pytest.raises(ValidationError) as exc_info:
        await VisitorRequestService.update_request(
            db_session,
            request.id,
            VisitorRequestUpdate(scheduled_date=current_business_date() - timedelta(days=2)),
            department_user,
        )
    assert exc_info.value.reasons == ["Scheduled date cannot be in the past"]


@pytest.mark.asyncio
async def test_other_user_cannot_update(
    db_session: AsyncSession, department_user: User, other_department_user: User
):
    request = await _submit(db_session, department_user)

    with pytest.raises(AuthorizationError):
        await VisitorRequestService.update_request(
            db_session, request.id, VisitorRequestUpdate(purpose="x"), other_department_user
        )


@pytest.mark.asyncio
async def test_reviewed_request_cannot_be_updated(
    db_session: AsyncSession, department_user: User, security_user: User
):
    request = await _submit(db_session, department_user)
    request_id = request.id
    await VisitorRequestService.review_request(
        db_session, request_id, security_user, VisitorRequestStatus.APPROVED
    )

    with pytest.raises(InvalidStateError) as exc_info:
        await VisitorRequestService.update_request(
            db_session, request_id, VisitorRequestUpdate(purpose="x"), department_user
        )
    assert exc_info.value.current_status == "approved"


# ============================================================================
# Review
# ============================================================================

@pytest.mark.asyncio
async def test_approve_issues_code_and_records_reviewer(
    db_session: AsyncSession, department_user: User, security_user: User
):
    request = await _submit(db_session, department_user)

    approved = await VisitorRequestService.review_request(
        db_session,
        request.id,
        security_user,
        VisitorRequestStatus.APPROVED,
        "  Escort required  ",
    )

    assert approved.status == VisitorRequestStatus.APPROVED
    assert approved.approval_code is not None
    assert approved.approval_code.startswith(settings.visitor.approval_code_prefix)
    assert approved.reviewed_by_id == security_user.id
    assert approved.reviewed_at is not None
    assert approved.review_comments == "Escort required"


@pytest.mark.asyncio
async def test_decline_sets_no_code(
    db_session: AsyncSession, department_user: User, security_user: User
):
    request = await _submit(db_session, department_user)

    declined = await VisitorRequestService.review_request(
        db_session, request.id, security_user, "declined", "Not expected"
    )

    assert declined.status == VisitorRequestStatus.DECLINED
    assert declined.approval_code is None
    assert declined.reviewed_by_id == security_user.id


@pytest.mark.asyncio
async def test_second_review_is_rejected_and_code_unchanged(
    db_session: AsyncSession, department_user: User, security_user: User
):
    request = await _submit(db_session, department_user)
    request_id = request.id
    approved = await VisitorRequestService.review_request(
        db_session, request_id, security_user, VisitorRequestStatus.APPROVED
    )
    code = approved.approval_code

    with pytest.raises(InvalidStateError):
        await VisitorRequestService.review_request(
            db_session, request_id, security_user, VisitorRequestStatus.APPROVED
        )
    with pytest.raises(InvalidStateError):
        await VisitorRequestService.review_request(
            db_session, request_id, security_user, VisitorRequestStatus.DECLINED
        )

    current = await VisitorRequestService.get_request(db_session, request_id, security_user)
    assert current.status == VisitorRequestStatus.APPROVED
    assert current.approval_code == code


@pytest.mark.asyncio
@pytest.mark.parametrize("decision", ["checked_in", "expired", "pending", "maybe"])
async def test_review_rejects_non_decisions(
    db_session: AsyncSession, department_user: User, security_user: User, decision
):
    request = await _submit(db_session, department_user)

    with pytest.raises(ValidationError) as exc_info:
        await VisitorRequestService.review_request(
            db_session, request.id, security_user, decision
        )
    assert exc_info.value.reasons == ["Status must be approved or declined"]


@pytest.mark.asyncio
async def test_review_requires_security_role(
    db_session: AsyncSession, department_user: User, gate_user: User
):
    request = await _submit(db_session, department_user)

    with pytest.raises(AuthorizationError):
        await VisitorRequestService.review_request(
            db_session, request.id, department_user, VisitorRequestStatus.APPROVED
        )
    with pytest.raises(AuthorizationError):
        await VisitorRequestService.review_request(
            db_session, request.id, gate_user, VisitorRequestStatus.APPROVED
        )


@pytest.mark.asyncio
async def test_review_unknown_request(db_session: AsyncSession, security_user: User):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await VisitorRequestService.review_request(
            db_session, uuid4(), security_user, VisitorRequestStatus.APPROVED
        )


@pytest.mark.asyncio
async def test_approval_codes_are_unique(
    db_session: AsyncSession, department_user: User, security_user: User
):
    codes = set()
    for _ in range(5):
        request = await _submit(db_session, department_user)
        approved = await VisitorRequestService.review_request(
            db_session, request.id, security_user, VisitorRequestStatus.APPROVED
        )
        codes.add(approved.approval_code)
    assert len(codes) == 5


@pytest.mark.asyncio
async def test_approval_code_collision_is_retried(
    db_session: AsyncSession, department_user: User, security_user: User, monkeypatch
):
    taken = await _store(
        db_session,
        VisitorRequestFactory.create(
            department_user,
            status=VisitorRequestStatus.APPROVED,
            approval_code="VIS000001AAA",
        ),
    )
    taken_id = taken.id
    request = await _submit(db_session, department_user)
    request_id = request.id
    reviewer_id = security_user.id

    codes = iter(["VIS000001AAA", "VIS000002BBB"])
    monkeypatch.setattr(
        "services.visitor_request_service.generate_approval_code", lambda: next(codes)
    )

    approved = await VisitorRequestService.review_request(
        db_session, request_id, security_user, VisitorRequestStatus.APPROVED
    )

    assert approved.approval_code == "VIS000002BBB"
    assert approved.reviewed_by_id == reviewer_id
    assert approved.id == request_id != taken_id


@pytest.mark.asyncio
async def test_exhausted_code_retries_raise_conflict(
    db_session: AsyncSession, department_user: User, security_user: User, monkeypatch
):
    await _store(
        db_session,
        VisitorRequestFactory.create(
            department_user,
            status=VisitorRequestStatus.APPROVED,
            approval_code="VIS000001AAA",
        ),
    )
    request = await _submit(db_session, department_user)
    request_id = request.id

    monkeypatch.setattr(settings.visitor, "approval_code_attempts", 2)
    monkeypatch.setattr(
        "services.visitor_request_service.generate_approval_code", lambda: "VIS000001AAA"
    )

    with pytest.raises(ConflictError) as exc_info:
        await VisitorRequestService.review_request(
            db_session, request_id, security_user, VisitorRequestStatus.APPROVED
        )
    assert exc_info.value.retryable is True

    current = await VisitorRequestRepository.find_by_id(db_session, request_id)
    assert current.status == VisitorRequestStatus.PENDING
    assert current.approval_code is None


# ============================================================================
# Expiry
# ============================================================================

@pytest.mark.asyncio
async def test_past_due_request_reads_as_expired(
    db_session: AsyncSession, department_user: User, security_user: User
):
    stale = await _store(
        db_session,
        VisitorRequestFactory.create(
            department_user, scheduled_date=current_business_date() - timedelta(days=1)
        ),
    )

    request = await VisitorRequestService.get_request(db_session, stale.id, security_user)

    assert request.status == VisitorRequestStatus.EXPIRED
    stored = await VisitorRequestRepository.find_by_id(db_session, stale.id)
    assert stored.status == VisitorRequestStatus.EXPIRED


@pytest.mark.asyncio
async def test_request_scheduled_today_does_not_expire(
    db_session: AsyncSession, department_user: User, security_user: User
):
    today = await _store(
        db_session,
        VisitorRequestFactory.create(department_user, scheduled_date=current_business_date()),
    )

    request = await VisitorRequestService.get_request(db_session, today.id, security_user)
    assert request.status == VisitorRequestStatus.PENDING


@pytest.mark.asyncio
async def test_expired_request_cannot_be_reviewed(
    db_session: AsyncSession, department_user: User, security_user: User
):
    stale = await _store(
        db_session,
        VisitorRequestFactory.create(
            department_user, scheduled_date=current_business_date() - timedelta(days=3)
        ),
    )
    stale_id = stale.id

    with pytest.raises(InvalidStateError) as exc_info:
        await VisitorRequestService.review_request(
            db_session, stale_id, security_user, VisitorRequestStatus.APPROVED
        )
    assert exc_info.value.current_status == "expired"

    stored = await VisitorRequestRepository.find_by_id(db_session, stale_id)
    assert stored.status == VisitorRequestStatus.EXPIRED
    assert stored.approval_code is None


@pytest.mark.asyncio
async def test_approved_request_never_expires(
    db_session: AsyncSession, department_user: User, gate_user: User
):
    old_approved = await _store(
        db_session,
        VisitorRequestFactory.create(
            department_user,
            scheduled_date=current_business_date() - timedelta(days=10),
            status=VisitorRequestStatus.APPROVED,
            approval_code="VIS123456XYZ",
        ),
    )

    request = await VisitorRequestService.get_request(db_session, old_approved.id, gate_user)
    assert request.status == VisitorRequestStatus.APPROVED


# ============================================================================
# Gate
# ============================================================================

@pytest.mark.asyncio
async def test_full_visit_lifecycle(
    db_session: AsyncSession, department_user: User, security_user: User, gate_user: User
):
    request = await _submit(db_session, department_user)
    request_id = request.id
    approved = await VisitorRequestService.review_request(
        db_session, request_id, security_user, VisitorRequestStatus.APPROVED
    )

    found = await VisitorRequestService.get_by_approval_code(
        db_session, f"  {approved.approval_code.lower()} ", gate_user
    )
    assert found.id == request_id

    checked_in = await VisitorRequestService.check_in(db_session, request_id, gate_user)
    assert checked_in.status == VisitorRequestStatus.CHECKED_IN
    assert checked_in.checked_in_by_id == gate_user.id
    assert checked_in.checked_in_at is not None

    checked_out = await VisitorRequestService.check_out(db_session, request_id, gate_user)
    assert checked_out.status == VisitorRequestStatus.CHECKED_OUT
    assert checked_out.checked_out_by_id == gate_user.id
    assert checked_out.checked_out_at >= checked_out.checked_in_at
    assert checked_out.approval_code == approved.approval_code


@pytest.mark.asyncio
async def test_pending_request_cannot_check_in(
    db_session: AsyncSession, department_user: User, gate_user: User
):
    request = await _submit(db_session, department_user)

    with pytest.raises(InvalidStateError) as exc_info:
        await VisitorRequestService.check_in(db_session, request.id, gate_user)
    assert exc_info.value.current_status == "pending"


@pytest.mark.asyncio
async def test_check_out_requires_check_in(
    db_session: AsyncSession, department_user: User, security_user: User, gate_user: User
):
    request = await _submit(db_session, department_user)
    request_id = request.id
    await VisitorRequestService.review_request(
        db_session, request_id, security_user, VisitorRequestStatus.APPROVED
    )

    with pytest.raises(InvalidStateError):
        await VisitorRequestService.check_out(db_session, request_id, gate_user)


@pytest.mark.asyncio
async def test_checked_out_request_is_terminal(
    db_session: AsyncSession, department_user: User, security_user: User, gate_user: User
):
    request = await _submit(db_session, department_user)
    request_id = request.id
    await VisitorRequestService.review_request(
        db_session, request_id, security_user, VisitorRequestStatus.APPROVED
    )
    await VisitorRequestService.check_in(db_session, request_id, gate_user)
    await VisitorRequestService.check_out(db_session, request_id, gate_user)

    with pytest.raises(InvalidStateError):
        await VisitorRequestService.check_in(db_session, request_id, gate_user)
    with pytest.raises(InvalidStateError):
        await VisitorRequestService.check_out(db_session, request_id, gate_user)


@pytest.mark.asyncio
async def test_security_cannot_check_in(
    db_session: AsyncSession, department_user: User, security_user: User
):
    request = await _submit(db_session, department_user)
    request_id = request.id
    await VisitorRequestService.review_request(
        db_session, request_id, security_user, VisitorRequestStatus.APPROVED
    )

    with pytest.raises(AuthorizationError):
        await VisitorRequestService.check_in(db_session, request_id, security_user)


@pytest.mark.asyncio
async def test_unknown_approval_code(db_session: AsyncSession, gate_user: User):
    with pytest.raises(NotFoundError):
        await VisitorRequestService.get_by_approval_code(db_session, "VIS000000ZZZ", gate_user)


# ============================================================================
# Visibility and listing
# ============================================================================

@pytest.mark.asyncio
async def test_department_user_cannot_read_others_requests(
    db_session: AsyncSession, department_user: User, other_department_user: User
):
    request = await _submit(db_session, department_user)

    with pytest.raises(AuthorizationError):
        await VisitorRequestService.get_request(db_session, request.id, other_department_user)


@pytest.mark.asyncio
async def test_listing_is_scoped_and_expires_first(
    db_session: AsyncSession,
    department_user: User,
    other_department_user: User,
    security_user: User,
):
    await _submit(db_session, department_user)
    await _submit(db_session, other_department_user, department="Finance")
    await _store(
        db_session,
        VisitorRequestFactory.create(
            department_user, scheduled_date=current_business_date() - timedelta(days=1)
        ),
    )

    own, own_total = await VisitorRequestService.list_requests(db_session, department_user)
    assert own_total == 2
    assert all(r.requested_by_id == department_user.id for r in own)

    pending, pending_total = await VisitorRequestService.list_requests(
        db_session, security_user, status=VisitorRequestStatus.PENDING
    )
    assert pending_total == 2
    assert all(r.status == VisitorRequestStatus.PENDING for r in pending)

    finance, finance_total = await VisitorRequestService.list_requests(
        db_session, security_user, department="Finance"
    )
    assert finance_total == 1
    assert finance[0].department == "Finance"


@pytest.mark.asyncio
async def test_listing_pages(db_session: AsyncSession, department_user: User):
    for offset in range(5):
        await _submit(
            db_session,
            department_user,
            scheduled_date=current_business_date() + timedelta(days=offset + 1),
        )

    first, total = await VisitorRequestService.list_requests(
        db_session, department_user, page=1, per_page=2
    )
    third, _ = await VisitorRequestService.list_requests(
        db_session, department_user, page=3, per_page=2
    )

    assert total == 5
    assert len(first) == 2
    assert len(third) == 1
    assert first[0].scheduled_date > first[1].scheduled_date
    assert third[0].scheduled_date == current_business_date() + timedelta(days=1)


@pytest.mark.asyncio
async def test_status_counts(
    db_session: AsyncSession, department_user: User, security_user: User
):
    first = await _submit(db_session, department_user)
    await _submit(db_session, department_user)
    await VisitorRequestService.review_request(
        db_session, first.id, security_user, VisitorRequestStatus.DECLINED
    )
    await _store(
        db_session,
        VisitorRequestFactory.create(
            department_user, scheduled_date=current_business_date() - timedelta(days=1)
        ),
    )

    counts = await VisitorRequestService.get_status_counts(db_session, security_user)

    assert counts[VisitorRequestStatus.PENDING] == 1
    assert counts[VisitorRequestStatus.DECLINED] == 1
    assert counts[VisitorRequestStatus.EXPIRED] == 1
    assert counts[VisitorRequestStatus.APPROVED] == 0
    assert set(counts) == set(VisitorRequestStatus)


# ============================================================================
# Concurrency
# ============================================================================

def _hold_writes_until(monkeypatch, writers: int):
    """Make conditional updates wait until `writers` callers have all read."""
    original = VisitorRequestRepository.conditional_update.__func__
    arrived = {"count": 0}
    all_read = asyncio.Event()

    async def gated(cls, db, request_id, expected_status, values):
        arrived["count"] += 1
        if arrived["count"] >= writers:
            all_read.set()
        await asyncio.wait_for(all_read.wait(), timeout=5)
        return await original(cls, db, request_id, expected_status, values)

    monkeypatch.setattr(VisitorRequestRepository, "conditional_update", classmethod(gated))


@pytest.mark.asyncio
async def test_concurrent_reviews_have_one_winner(
    db_session: AsyncSession,
    session_factory,
    department_user: User,
    security_user: User,
    second_security_user: User,
    monkeypatch,
):
    request = await _submit(db_session, department_user)
    request_id = request.id

    _hold_writes_until(monkeypatch, writers=2)

    async def review(reviewer: User, decision: VisitorRequestStatus):
        async with session_factory() as session:
            return await VisitorRequestService.review_request(
                session, request_id, reviewer, decision
            )

    results = await asyncio.gather(
        review(security_user, VisitorRequestStatus.APPROVED),
        review(second_security_user, VisitorRequestStatus.DECLINED),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConflictError)
    assert losers[0].retryable is True

    async with session_factory() as session:
        stored = await VisitorRequestRepository.find_by_id(session, request_id)
    assert stored.status == winners[0].status
    assert stored.reviewed_by_id == winners[0].reviewed_by_id
    if stored.status == VisitorRequestStatus.APPROVED:
        assert stored.approval_code is not None
    else:
        assert stored.approval_code is None


@pytest.mark.asyncio
async def test_concurrent_check_ins_have_one_winner(
    db_session: AsyncSession,
    session_factory,
    department_user: User,
    security_user: User,
    gate_user: User,
    monkeypatch,
):
    request = await _submit(db_session, department_user)
    request_id = request.id
    await VisitorRequestService.review_request(
        db_session, request_id, security_user, VisitorRequestStatus.APPROVED
    )

    _hold_writes_until(monkeypatch, writers=2)

    async def check_in():
        async with session_factory() as session:
            return await VisitorRequestService.check_in(session, request_id, gate_user)

    results = await asyncio.gather(check_in(), check_in(), return_exceptions=True)

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert sum(1 for r in results if isinstance(r, ConflictError)) == 1


@pytest.mark.asyncio
async def test_review_losing_to_expiry_reports_invalid_state(
    db_session: AsyncSession,
    session_factory,
    department_user: User,
    security_user: User,
    monkeypatch,
):
    request = await _submit(db_session, department_user)
    request_id = request.id

    original = VisitorRequestRepository.conditional_update.__func__

    async def expire_then_update(cls, db, rid, expected_status, values):
        # The sweep lands between the reviewer's read and write
        async with session_factory() as other:
            await VisitorRequestRepository.expire_past_due(
                other, current_business_date() + timedelta(days=2)
            )
        return await original(cls, db, rid, expected_status, values)

    monkeypatch.setattr(
        VisitorRequestRepository, "conditional_update", classmethod(expire_then_update)
    )

    with pytest.raises(InvalidStateError) as exc_info:
        await VisitorRequestService.review_request(
            db_session, request_id, security_user, VisitorRequestStatus.APPROVED
        )
    assert exc_info.value.current_status == "expired"
