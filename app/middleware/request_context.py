"""
RequestContext Middleware - Adds request tracking to all requests.

Adds to every request:
- request_id: Unique ID for request tracing (reuses an inbound X-Request-ID)

The id is stored in request.state and bound into the structlog context, so
every log line emitted while handling a webhook carries it.
"""

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Add request context to all incoming requests.

    Also adds X-Request-ID header to responses for client-side tracing and
    logs each completed request with its duration.
    """

    async def dispatch(self, request: Request, call_next):
        """Process request and add context."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.time()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        duration_ms = round((time.time() - start_time) * 1000, 2)
        logger.info(
            "HTTP request completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )

        # Add request ID to response headers (for client-side tracing)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
