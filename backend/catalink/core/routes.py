"""Application routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import structlog
from fastapi import APIRouter, FastAPI
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.routes import general
from catalink.routes.candidates import create_candidates_router
from catalink.routes.matches import create_matches_router
from catalink.routes.products import create_products_router
from catalink.routes.rules import create_rules_router
from catalink.routes.sources import create_sources_router

logger = structlog.get_logger("catalink.routes")


def create_app_router(
    app: FastAPI | None = None,
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]] | None = None,
) -> APIRouter:
    """Create and configure main application router.

    Args:
        app: FastAPI app instance
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()

    router.include_router(general.router, tags=["general"])

    # Everything else needs a database session
    if app and get_db_session:
        router.include_router(create_products_router(get_db_session), tags=["products"])
        router.include_router(create_candidates_router(get_db_session), tags=["candidates"])
        router.include_router(create_matches_router(get_db_session), tags=["matches"])
        router.include_router(create_sources_router(get_db_session), tags=["sources"])
        router.include_router(create_rules_router(get_db_session), tags=["rules"])
        logger.debug("Included database routers in app_router")

    return router
