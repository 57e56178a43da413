"""
Application factory for FastAPI.

This module provides the create_app() function that creates and configures
the FastAPI application instance.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1 import api_router
from app.routes import health_router, root_router
from core.config import settings
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    VisitorRequestError,
)
from core.lifespan import lifespan
from core.middleware import RequestContextMiddleware

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
ERROR_STATUS_CODES = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
)


def error_status_code(exc: VisitorRequestError) -> int:
    """HTTP status for a domain error."""
    for exc_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def visitor_request_error_handler(
    request: Request, exc: VisitorRequestError
) -> JSONResponse:
    """
    Render a domain error as JSON.

    Body: {"detail": str, "errorType": str, "retryable": bool} plus
    "reasons" for validation failures and "currentStatus" for state errors.
    """
    status_code = error_status_code(exc)
    body = {
        "detail": exc.message,
        "errorType": type(exc).__name__,
        "retryable": exc.retryable,
    }
    if isinstance(exc, ValidationError):
        body["reasons"] = list(exc.reasons)
    if isinstance(exc, InvalidStateError) and exc.current_status is not None:
        body["currentStatus"] = getattr(exc.current_status, "value", exc.current_status)

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(
            f"{request.method} {request.url.path} -> {status_code}: {exc.message}"
        )
    return JSONResponse(status_code=status_code, content=body)


def create_app() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application with middleware,
    error handlers and routes.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.api.app_name,
        version=settings.api.app_version,
        description="Visitor request lifecycle: submission, review, gate check-in and expiry",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_exception_handler(VisitorRequestError, visitor_request_error_handler)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    # Outermost, so the request ID covers CORS responses too
    app.add_middleware(RequestContextMiddleware)

    # Include routers
    app.include_router(root_router)
    app.include_router(health_router)
    app.include_router(api_router, prefix=settings.api.api_v1_prefix)

    return app
