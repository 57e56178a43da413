"""
Schemas package for API validation and serialization.
"""
from .visitor_request import (ReviewRequest, VisitDuration,
                              VisitorRequestCreate, VisitorRequestListResponse,
                              VisitorRequestRead, VisitorRequestStatusCounts,
                              VisitorRequestUpdate)

__all__ = [
    "VisitDuration",
    "VisitorRequestCreate",
    "VisitorRequestUpdate",
    "ReviewRequest",
    "VisitorRequestRead",
    "VisitorRequestListResponse",
    "VisitorRequestStatusCounts",
]
