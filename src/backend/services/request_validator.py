"""
Domain validation for visitor requests.

The validator is a pure function: it never reads the clock or the database,
so "today" is passed in by the caller. It reports every failing rule at once
instead of stopping at the first one.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Tuple

from core.exceptions import ValidationError

MAX_VISITOR_NAME = 100
MAX_VISITOR_ID = 50
MAX_VISITOR_EMAIL = 254
MAX_PURPOSE = 500
MAX_DEPARTMENT = 100
MAX_ITEM = 100
MAX_REVIEW_COMMENTS = 500
MAX_DURATION_HOURS = 23
MAX_DURATION_DAYS = 30

PHONE_PATTERN = re.compile(r"^[+]?[1-9]\d{0,15}$")
EMAIL_PATTERN = re.compile(r"^\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*(?:\.\w{2,3})$")
TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a candidate request."""

    reasons: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.reasons

    @property
    def message(self) -> str:
        return ". ".join(self.reasons)

    def raise_for_errors(self) -> None:
        """Raise ValidationError carrying every reason, if any."""
        if self.reasons:
            raise ValidationError(self.reasons)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _check_length(reasons: List[str], value: Optional[str], limit: int, message: str) -> None:
    if value is not None and len(value) > limit:
        reasons.append(message)


def validate_visitor_request(candidate, today: date) -> ValidationResult:
    """
    Validate a candidate visitor request.

    Args:
        candidate: Object exposing the request fields (VisitorRequestCreate or
            any object with the same attributes)
        today: Current business date; scheduled_date may not be before it

    Returns:
        ValidationResult with reasons in check order: presence, length bounds,
        patterns, visit duration, schedule
    """
    reasons: List[str] = []

    visitor_name = _clean(candidate.visitor_name)
    visitor_id = _clean(candidate.visitor_id)
    visitor_phone = _clean(candidate.visitor_phone)
    visitor_email = _clean(candidate.visitor_email)
    purpose = _clean(candidate.purpose)
    department = _clean(candidate.department)
    scheduled_time = _clean(candidate.scheduled_time)
    scheduled_date = candidate.scheduled_date

    # Presence
    if visitor_name is None:
        reasons.append("Visitor name is required")
    if visitor_id is None:
        reasons.append("Visitor ID is required")
    if visitor_phone is None:
        reasons.append("Visitor phone is required")
    if purpose is None:
        reasons.append("Purpose of visit is required")
    if department is None:
        reasons.append("Department is required")
    if scheduled_date is None:
        reasons.append("Scheduled date is required")
    if scheduled_time is None:
        reasons.append("Scheduled time is required")

    # Length bounds
    _check_length(reasons, visitor_name, MAX_VISITOR_NAME,
                  f"Visitor name cannot exceed {MAX_VISITOR_NAME} characters")
    _check_length(reasons, visitor_id, MAX_VISITOR_ID,
                  f"Visitor ID cannot exceed {MAX_VISITOR_ID} characters")
    _check_length(reasons, visitor_email, MAX_VISITOR_EMAIL,
                  f"Visitor email cannot exceed {MAX_VISITOR_EMAIL} characters")
    _check_length(reasons, purpose, MAX_PURPOSE,
                  f"Purpose cannot exceed {MAX_PURPOSE} characters")
    _check_length(reasons, department, MAX_DEPARTMENT,
                  f"Department cannot exceed {MAX_DEPARTMENT} characters")
    for item in _iter_items(candidate.items_brought):
        if len(item) > MAX_ITEM:
            reasons.append(f"Item description cannot exceed {MAX_ITEM} characters")
            break

    # Patterns
    if visitor_phone is not None and not PHONE_PATTERN.match(visitor_phone):
        reasons.append("Please enter a valid phone number")
    if visitor_email is not None and len(visitor_email) <= MAX_VISITOR_EMAIL \
            and not EMAIL_PATTERN.match(visitor_email):
        reasons.append("Please enter a valid email")
    if scheduled_time is not None and not TIME_PATTERN.match(scheduled_time):
        reasons.append("Please enter time in HH:MM format")

    # Visit duration
    duration = candidate.visit_duration
    hours = duration.hours if duration is not None else 0
    days = duration.days if duration is not None else 0
    if hours < 0:
        reasons.append("Hours cannot be negative")
    elif hours > MAX_DURATION_HOURS:
        reasons.append(f"Hours cannot exceed {MAX_DURATION_HOURS}")
    if days < 0:
        reasons.append("Days cannot be negative")
    elif days > MAX_DURATION_DAYS:
        reasons.append(f"Days cannot exceed {MAX_DURATION_DAYS}")

    # Schedule
    if scheduled_date is not None and scheduled_date < today:
        reasons.append("Scheduled date cannot be in the past")

    return ValidationResult(tuple(reasons))


def validate_review_comments(comments: Optional[str]) -> ValidationResult:
    """Validate reviewer comments."""
    comments = _clean(comments)
    if comments is not None and len(comments) > MAX_REVIEW_COMMENTS:
        return ValidationResult(
            (f"Review comments cannot exceed {MAX_REVIEW_COMMENTS} characters",)
        )
    return ValidationResult()


def _iter_items(items: Optional[Iterable[str]]) -> Iterable[str]:
    for item in items or ():
        cleaned = _clean(item)
        if cleaned is not None:
            yield cleaned
