"""Request ID middleware — unique ID per HTTP request for tracing.

Learn: Every request gets a UUID, either from the incoming X-Request-ID
header (so the REST backend's publish calls can be correlated) or
auto-generated. The ID is bound to structlog's contextvars so it appears
in every log entry for that request, and returned in the response header.
Each request also logs one "http.request" line with status and duration.

WebSocket traffic doesn't pass through HTTP middleware; hub logs carry the
channel name instead.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response
