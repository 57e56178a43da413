"""
Domain exceptions raised by the visitor request lifecycle.

Each kind tells the caller what to do next:
- ValidationError: the submitter must correct the listed fields
- NotFoundError / InvalidStateError / AuthorizationError: terminal for the call
- ConflictError: a concurrent update won; re-read and try again
"""

from typing import List, Optional, Sequence


class VisitorRequestError(Exception):
    """Base exception for visitor request errors."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(VisitorRequestError):
    """Raised when a candidate request fails domain validation."""

    def __init__(self, reasons: Sequence[str]):
        self.reasons: List[str] = list(reasons)
        super().__init__(". ".join(self.reasons))


class NotFoundError(VisitorRequestError):
    """Raised when a visitor request does not exist."""

    pass


class InvalidStateError(VisitorRequestError):
    """Raised when a transition is attempted from a status that forbids it."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class ConflictError(VisitorRequestError):
    """Raised when a conditional update lost a race with another writer."""

    retryable = True


class AuthorizationError(VisitorRequestError):
    """Raised when the acting user lacks the capability for an action."""

    pass
