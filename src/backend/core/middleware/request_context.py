"""
Request context middleware.

Tags every request with an X-Request-ID (taken from the client when supplied)
and logs method, path, status and duration once the response is ready.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("http")

REQUEST_ID_HEADER = "X-Request-ID"

# Request ID for the request being handled
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Request ID of the current request, or empty string outside one."""
    return request_id_var.get("")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Assign a request ID and log the outcome of each request.

    Health probes are logged at DEBUG so they do not flood app.log.
    """

    QUIET_PATHS = {"/health"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"[{request_id}] {request.method} {request.url.path} failed",
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)

        elapsed_ms = (time.perf_counter() - started) * 1000
        level = logging.DEBUG if request.url.path in self.QUIET_PATHS else logging.INFO
        logger.log(
            level,
            f"[{request_id}] {request.method} {request.url.path} "
            f"-> {response.status_code} ({elapsed_ms:.1f}ms)",
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
