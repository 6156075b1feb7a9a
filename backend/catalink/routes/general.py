"""General API routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from catalink import __version__
from catalink.core.tracing import get_trace_id

router = APIRouter(prefix="/api")
logger = structlog.get_logger("catalink.routes.general")


@router.get("/health")
async def health() -> JSONResponse:
    """Health check endpoint."""
    trace_id = get_trace_id()
    logger.debug("Health check", trace_id=trace_id)
    return JSONResponse(
        {
            "status": "healthy",
            "version": __version__,
            "trace_id": trace_id,
        }
    )
