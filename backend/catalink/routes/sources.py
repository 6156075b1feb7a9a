"""Source registry API routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.catalog.models import MatchSource
from catalink.core.catalog.sql import SQLSourceRegistry
from catalink.core.dependencies import http_error
from catalink.core.errors import CatalinkError

logger = structlog.get_logger("catalink.routes.sources")


class SourceCreate(BaseModel):
    name: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=32, description="Short code, e.g. AMZ")
    config: dict[str, Any] = Field(
        default_factory=dict, description='Backend config, e.g. {"kind": "http", "base_url": ...}'
    )
    is_active: bool = True


class SourceUpdate(BaseModel):
    name: str | None = None
    config: dict[str, Any] | None = None
    is_active: bool | None = None


def create_sources_router(
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]],
) -> APIRouter:
    """Create sources router.

    Args:
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    logger.debug("Creating sources router")
    router_instance = APIRouter(prefix="/api")

    @router_instance.get("/sources", response_model=list[MatchSource])
    async def list_sources(
        include_inactive: bool = Query(True),
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> list[MatchSource]:
        """List registered sources."""
        return await SQLSourceRegistry(session).list_sources(include_inactive=include_inactive)

    @router_instance.post(
        "/sources", response_model=MatchSource, status_code=status.HTTP_201_CREATED
    )
    async def create_source(
        payload: SourceCreate,
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> MatchSource:
        """Register a new source."""
        try:
            return await SQLSourceRegistry(session).create_source(
                name=payload.name,
                code=payload.code,
                config=payload.config,
                is_active=payload.is_active,
            )
        except CatalinkError as e:
            raise http_error(e) from e

    @router_instance.patch("/sources/{code}", response_model=MatchSource)
    async def update_source(
        code: str,
        payload: SourceUpdate,
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> MatchSource:
        """Rename, reconfigure, activate or deactivate a source."""
        try:
            return await SQLSourceRegistry(session).update_source(
                code,
                name=payload.name,
                config=payload.config,
                is_active=payload.is_active,
            )
        except CatalinkError as e:
            raise http_error(e) from e

    return router_instance
