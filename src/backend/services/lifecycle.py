"""
Visitor request state machine.

    pending -> approved | declined | expired
    approved -> checked_in
    checked_in -> checked_out

declined, checked_out and expired are terminal. Expiry is decided per
calendar day: a pending request expires once its scheduled date is before
today in the business timezone; the scheduled time is not considered.
"""

from datetime import date, datetime
from typing import Dict, FrozenSet, Optional
from zoneinfo import ZoneInfo

from core.config import settings
from db.enums import VisitorRequestStatus
from db.models import VisitorRequest

ALLOWED_TRANSITIONS: Dict[VisitorRequestStatus, FrozenSet[VisitorRequestStatus]] = {
    VisitorRequestStatus.PENDING: frozenset({
        VisitorRequestStatus.APPROVED,
        VisitorRequestStatus.DECLINED,
        VisitorRequestStatus.EXPIRED,
    }),
    VisitorRequestStatus.APPROVED: frozenset({VisitorRequestStatus.CHECKED_IN}),
    VisitorRequestStatus.CHECKED_IN: frozenset({VisitorRequestStatus.CHECKED_OUT}),
    VisitorRequestStatus.DECLINED: frozenset(),
    VisitorRequestStatus.CHECKED_OUT: frozenset(),
    VisitorRequestStatus.EXPIRED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[VisitorRequestStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

REVIEW_DECISIONS: FrozenSet[VisitorRequestStatus] = frozenset({
    VisitorRequestStatus.APPROVED,
    VisitorRequestStatus.DECLINED,
})


def can_transition(from_status: VisitorRequestStatus, to_status: VisitorRequestStatus) -> bool:
    """Return True if the state machine allows from_status -> to_status."""
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def current_business_date(now: Optional[datetime] = None) -> date:
    """
    Today's date in the configured business timezone.

    Args:
        now: Aware datetime to convert instead of the wall clock

    Returns:
        Calendar date used for scheduling and expiry decisions
    """
    tz = ZoneInfo(settings.visitor.business_timezone)
    if now is None:
        return datetime.now(tz).date()
    return now.astimezone(tz).date()


def is_past_due(request: VisitorRequest, today: date) -> bool:
    """A pending request whose scheduled date has passed must be expired."""
    return (
        request.status == VisitorRequestStatus.PENDING
        and request.scheduled_date < today
    )
