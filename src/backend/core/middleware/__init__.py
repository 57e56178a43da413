"""
Middleware classes for FastAPI application.
"""

from .request_context import RequestContextMiddleware, get_request_id

__all__ = ["RequestContextMiddleware", "get_request_id"]
