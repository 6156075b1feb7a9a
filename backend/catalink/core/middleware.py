"""FastAPI middleware for request/response handling."""

from __future__ import annotations

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from catalink.core.tracing import generate_trace_id, trace_context

logger = structlog.get_logger("catalink.middleware")

TRACE_HEADER = "X-Trace-ID"


class TracingMiddleware(BaseHTTPMiddleware):
    """Middleware to add trace IDs to all requests."""

    async def dispatch(self, request: Request, call_next):
        """Bind a trace ID for the duration of the request.

        Reuses the X-Trace-ID header when the caller sends one, otherwise
        generates a new ID. The ID is echoed back on the response.
        """
        trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()

        with trace_context(trace_id):
            logger.debug("Processing request", method=request.method, path=request.url.path)

            response = await call_next(request)
            response.headers[TRACE_HEADER] = trace_id

            logger.debug(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
