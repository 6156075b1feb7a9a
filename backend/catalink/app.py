"""Application entry point for Catalink."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink import __version__
from catalink.core.catalog.http import HttpExternalCatalog, RoutingExternalCatalog
from catalink.core.catalog.sql import SQLExternalCatalog
from catalink.core.config import get_settings
from catalink.core.database import create_database_engine, create_session_factory, init_database
from catalink.core.logging import setup_logging
from catalink.core.matching.store import SQLRuleStore
from catalink.core.metrics import setup_metrics
from catalink.core.middleware import TracingMiddleware
from catalink.core.routes import create_app_router

logger = structlog.get_logger("catalink.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "Starting Catalink application",
        version=__version__,
        env=settings.env,
        host=settings.host_bind_address,
        port=settings.host_port,
    )

    # Database is already created in create_app()
    engine = app.state.engine
    await init_database(engine)
    logger.info("Database schema ready", database=str(settings.database_file))

    async with app.state.async_session_factory() as session:
        default_rule = await SQLRuleStore(session).ensure_default()
    logger.info("Default matching rule", rule_id=default_rule.id, name=default_rule.name)

    yield

    logger.info("Shutting down Catalink application")
    await app.state.http_catalog.aclose()
    if getattr(app.state, "engine", None):
        await app.state.engine.dispose()
        logger.info("Database engine disposed")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    # Setup logging first
    setup_logging(debug=settings.is_debug, logs_dir=settings.logs_dir)

    app = FastAPI(
        title="Catalink",
        description="Match a product catalog against external marketplace listings",
        version=__version__,
        lifespan=lifespan,
    )

    engine = create_database_engine(settings.database_file, echo=settings.is_debug)
    async_session_factory = create_session_factory(engine)
    app.state.engine = engine
    app.state.async_session_factory = async_session_factory
    logger.info("Database engine and session factory created")

    table_catalog = SQLExternalCatalog(async_session_factory)
    http_catalog = HttpExternalCatalog(timeout=settings.http_catalog_timeout_seconds)
    app.state.table_catalog = table_catalog
    app.state.http_catalog = http_catalog
    app.state.external_catalog = RoutingExternalCatalog(
        {
            "table": table_catalog,
            "http": http_catalog,
        }
    )

    async def get_db_session() -> AsyncIterator[SQLModelAsyncSession]:
        """FastAPI dependency for database sessions."""
        async with async_session_factory() as session:
            yield session

    # Tracing first so every request carries a trace id
    app.add_middleware(TracingMiddleware)

    # Metrics before routes to instrument all of them
    setup_metrics(app, __version__)

    app.include_router(create_app_router(app, get_db_session))

    return app


def main() -> None:
    """Main entry point."""
    from catalink.core.config import reload_settings

    current_settings = reload_settings()
    app = create_app()

    import uvicorn

    logger.info(
        "Starting uvicorn server",
        host=current_settings.host_bind_address,
        port=current_settings.host_port,
    )
    uvicorn.run(
        app,
        host=current_settings.host_bind_address,
        port=current_settings.host_port,
        log_config=None,  # We use structlog
    )


if __name__ == "__main__":
    main()
