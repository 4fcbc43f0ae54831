"""
Request context middleware for observability.

Injects request_id and correlation_id into every request so all log lines
of one webhook delivery can be found together.

Headers:
- X-Request-ID: Unique ID for this request (generated if not provided)
- X-Correlation-ID: ID spanning multiple services (passed through)
"""

import re
import time
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.context import (
    set_request_id,
    set_correlation_id,
    generate_request_id,
    clear_context,
)

logger = structlog.get_logger(__name__)

# Request ID validation to prevent log injection
MAX_ID_LENGTH = 64
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


def _validate_id(value: Optional[str]) -> Optional[str]:
    """
    Validate request/correlation IDs.

    Returns None if invalid (a generated ID is used instead). Rejects
    control characters, excessive length and anything outside [A-Za-z0-9_-].
    """
    if not value:
        return None
    if len(value) > MAX_ID_LENGTH:
        return None
    if not SAFE_ID_PATTERN.match(value):
        return None
    return value


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Binds request context to structlog for the duration of a request.

    - Extracts X-Request-ID from headers or generates one
    - Extracts X-Correlation-ID for distributed tracing
    - Adds request_id to response headers
    - Logs completion with status and duration
    - Cleans up context after the request completes
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _validate_id(request.headers.get("X-Request-ID")) or generate_request_id()
        set_request_id(request_id)
        request.state.request_id = request_id

        correlation_id = _validate_id(request.headers.get("X-Correlation-ID"))
        if correlation_id:
            set_correlation_id(correlation_id)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            correlation_id=correlation_id,
            path=request.url.path,
            method=request.method,
        )

        start_time = time.perf_counter()
        status_code = 500  # Default to error in case of exception

        try:
            response = await call_next(request)
            status_code = response.status_code

            response.headers["X-Request-ID"] = request_id
            if correlation_id:
                response.headers["X-Correlation-ID"] = correlation_id

            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            if not request.url.path.startswith("/health"):
                logger.info(
                    "Request completed",
                    status_code=status_code,
                    duration_ms=round(duration_ms, 1),
                )

            clear_context()
            structlog.contextvars.clear_contextvars()
