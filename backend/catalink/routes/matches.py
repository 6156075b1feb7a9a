"""Match decision API routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import structlog
from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.catalog.sql import SQLSourceRegistry
from catalink.core.context import RequestContext
from catalink.core.dependencies import get_request_context, get_reviewer_id, http_error
from catalink.core.errors import CatalinkError, NotFound
from catalink.core.matches.lifecycle import MAX_PAGE_SIZE, MatchLifecycle
from catalink.core.matches.models import (
    DecisionStatus,
    MatchFilters,
    MatchInput,
    MatchPage,
    MatchStatus,
    MatchView,
)
from catalink.core.matches.store import SQLMatchStore

logger = structlog.get_logger("catalink.routes.matches")


class MatchCreate(BaseModel):
    local_product_id: str = Field(..., min_length=1)
    external_key: str = Field(..., min_length=1, description="Listing key within its source")
    source_code: str = Field(..., min_length=1)
    score: float = Field(..., description="Overall score shown to the reviewer, in [0, 1]")
    price_delta_pct: float | None = Field(None, description="Listing price vs local price, in %")
    rule_id: str = Field(..., min_length=1, description="Rule that produced the score")
    session_id: str = Field(..., min_length=1, description="Review session of the decision")
    status: DecisionStatus = Field("matched", description="matched or not_matched")
    notes: str | None = None


def create_matches_router(
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]],
) -> APIRouter:
    """Create matches router.

    Args:
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    logger.debug("Creating matches router")
    router_instance = APIRouter(prefix="/api")

    def lifecycle_for(session: SQLModelAsyncSession) -> MatchLifecycle:
        return MatchLifecycle(SQLMatchStore(session), SQLSourceRegistry(session))

    @router_instance.post(
        "/matches",
        response_model=MatchView,
        status_code=status.HTTP_201_CREATED,
    )
    async def confirm_match(
        payload: MatchCreate,
        session: SQLModelAsyncSession = Depends(get_db_session),
        context: RequestContext = Depends(get_request_context),
        reviewer_id: str | None = Depends(get_reviewer_id),
    ) -> MatchView:
        """Record (or re-review) a decision for a product/listing pair."""
        try:
            return await lifecycle_for(session).confirm(
                context, MatchInput(**payload.model_dump()), reviewer_id
            )
        except CatalinkError as e:
            raise http_error(e) from e

    @router_instance.delete("/matches/{match_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def remove_match(
        match_id: str,
        session: SQLModelAsyncSession = Depends(get_db_session),
        context: RequestContext = Depends(get_request_context),
        reviewer_id: str | None = Depends(get_reviewer_id),
    ) -> Response:
        """Supersede a decision. The row stays available in the history."""
        try:
            await lifecycle_for(session).remove(context, match_id, reviewer_id)
        except CatalinkError as e:
            raise http_error(e) from e
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router_instance.get("/matches", response_model=MatchPage)
    async def list_matches(
        local_product_id: str | None = None,
        external_key: str | None = None,
        source_code: str | None = Query(None, description="Filter by source code"),
        reviewed_by: str | None = None,
        match_status: MatchStatus | None = Query(None, alias="status"),
        limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
        offset: int = Query(0, ge=0),
        session: SQLModelAsyncSession = Depends(get_db_session),
        context: RequestContext = Depends(get_request_context),
    ) -> MatchPage:
        """Decision history, newest first."""
        try:
            source_id = None
            if source_code:
                sources = await SQLSourceRegistry(session).list_sources()
                source_id = next((s.id for s in sources if s.code == source_code), None)
                if source_id is None:
                    raise NotFound(f"Source '{source_code}' not found", source_code=source_code)

            filters = MatchFilters(
                local_product_id=local_product_id,
                external_key=external_key,
                source_id=source_id,
                reviewed_by=reviewed_by,
                status=match_status,
            )
            return await lifecycle_for(session).list(context, filters, limit=limit, offset=offset)
        except CatalinkError as e:
            raise http_error(e) from e

    @router_instance.get("/products/{product_id}/matches", response_model=list[MatchView])
    async def list_product_matches(
        product_id: str,
        session: SQLModelAsyncSession = Depends(get_db_session),
        context: RequestContext = Depends(get_request_context),
    ) -> list[MatchView]:
        """Active matched decisions for a product, best score first."""
        return await lifecycle_for(session).list_active_by_local_product(context, product_id)

    return router_instance
