"""
Business logic services.
"""
from .visitor_request_service import VisitorRequestService

__all__ = [
    "VisitorRequestService",
]
