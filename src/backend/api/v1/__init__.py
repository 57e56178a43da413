"""
API v1 routes.
"""

from fastapi import APIRouter

from .endpoints.visitor import requests as visitor_requests

api_router = APIRouter()

api_router.include_router(
    visitor_requests.router,
    prefix="/visitor-requests",
    tags=["visitor-requests"],
)

__all__ = ["api_router"]
