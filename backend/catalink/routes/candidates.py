"""Candidate API routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.candidates.audit import SQLCandidateAudit
from catalink.core.candidates.models import (
    Candidate,
    CandidateFilter,
    CandidateResult,
    CandidateSummary,
    SkippedSource,
)
from catalink.core.candidates.service import CandidateGenerator
from catalink.core.catalog.base import ExternalCatalog
from catalink.core.catalog.models import FilterOptions
from catalink.core.catalog.sql import SQLExternalCatalog, SQLLocalCatalog, SQLSourceRegistry
from catalink.core.config import get_settings
from catalink.core.context import RequestContext
from catalink.core.dependencies import (
    get_external_catalog,
    get_request_context,
    get_table_catalog,
    http_error,
)
from catalink.core.errors import CatalinkError, InvalidInput
from catalink.core.matches.lifecycle import MAX_PAGE_SIZE, MatchLifecycle
from catalink.core.matches.models import MatchFilters, ReviewItem, build_review_items
from catalink.core.matches.store import SQLMatchStore
from catalink.core.matching.rules import MatchingRule
from catalink.core.matching.store import SQLRuleStore
from catalink.core.tracing import get_trace_id
from catalink.db.models import MATCH_STATUS_NOT_MATCHED

logger = structlog.get_logger("catalink.routes.candidates")


class CandidatesResponse(BaseModel):
    """Ranked candidates for one product."""

    product_id: str
    rule_id: str
    candidates: list[Candidate]
    skipped_sources: list[SkippedSource] = Field(
        default_factory=list, description="Sources whose listings are missing from this result"
    )
    summary: CandidateSummary
    generated_at: int


class ReviewResponse(BaseModel):
    """Existing decisions followed by new proposals for one product."""

    product_id: str
    rule_id: str
    items: list[ReviewItem]
    skipped_sources: list[SkippedSource] = Field(default_factory=list)


async def resolve_rule(
    rule_store: SQLRuleStore,
    rule_id: str | None,
    use_default_rule: bool,
) -> MatchingRule:
    """Load the rule the caller asked for.

    Raises:
        InvalidInput: Neither rule_id nor use_default_rule was given
        NotFound: Unknown rule or no default configured
    """
    if rule_id:
        return await rule_store.get(rule_id)
    if use_default_rule:
        return await rule_store.get_default()
    raise InvalidInput("rule_id is required (or pass use_default_rule=true)", field="rule_id")


def create_candidates_router(
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]],
) -> APIRouter:
    """Create candidates router.

    Args:
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    logger.debug("Creating candidates router")
    router_instance = APIRouter(prefix="/api")

    async def generate(
        session: SQLModelAsyncSession,
        external_catalog: ExternalCatalog,
        context: RequestContext,
        product_id: str,
        candidate_filter: CandidateFilter,
        rule_id: str | None,
        use_default_rule: bool,
    ) -> CandidateResult:
        settings = get_settings()
        if candidate_filter.limit > settings.candidate_max_limit:
            raise InvalidInput(
                f"limit must not exceed {settings.candidate_max_limit}",
                field="limit",
                value=candidate_filter.limit,
            )

        rule = await resolve_rule(SQLRuleStore(session), rule_id, use_default_rule)
        generator = CandidateGenerator(
            source_registry=SQLSourceRegistry(session),
            external_catalog=external_catalog,
            local_catalog=SQLLocalCatalog(session),
            concurrency=settings.candidate_fetch_concurrency,
            fetch_timeout=settings.candidate_fetch_timeout_seconds,
        )
        result = await generator.get_candidates_for_product(product_id, candidate_filter, rule)

        if settings.candidate_audit_enabled and result.candidates:
            await SQLCandidateAudit(session).record(context.tenant_id, result)
        return result

    @router_instance.get(
        "/products/{product_id}/candidates",
        response_model=CandidatesResponse,
    )
    async def get_candidates(
        product_id: str,
        rule_id: str | None = Query(None, description="Rule used for scoring"),
        use_default_rule: bool = Query(False, description="Use the rule flagged as default"),
        sources: list[str] | None = Query(None, description="Source codes to query"),
        brand: str | None = Query(None),
        category_id: str | None = Query(None),
        price_band_pct: float | None = Query(None, ge=0),
        limit: int | None = Query(None, ge=1),
        session: SQLModelAsyncSession = Depends(get_db_session),
        external_catalog: ExternalCatalog = Depends(get_external_catalog),
        context: RequestContext = Depends(get_request_context),
    ) -> CandidatesResponse:
        """Ranked, explained candidates for a local product."""
        logger.debug(
            "Getting candidates",
            trace_id=get_trace_id(),
            product_id=product_id,
            rule_id=rule_id,
            sources=sources,
        )
        candidate_filter = CandidateFilter(
            sources=sources,
            brand=brand,
            category_id=category_id,
            price_band_pct=price_band_pct,
            limit=limit or get_settings().candidate_default_limit,
        )
        try:
            result = await generate(
                session,
                external_catalog,
                context,
                product_id,
                candidate_filter,
                rule_id,
                use_default_rule,
            )
        except CatalinkError as e:
            raise http_error(e) from e

        return CandidatesResponse(
            product_id=result.local_product_id,
            rule_id=result.rule_id,
            candidates=result.candidates,
            skipped_sources=result.skipped_sources,
            summary=result.summary,
            generated_at=result.generated_at,
        )

    @router_instance.get("/products/{product_id}/review", response_model=ReviewResponse)
    async def get_review_items(
        product_id: str,
        rule_id: str | None = Query(None),
        use_default_rule: bool = Query(False),
        limit: int | None = Query(None, ge=1),
        session: SQLModelAsyncSession = Depends(get_db_session),
        external_catalog: ExternalCatalog = Depends(get_external_catalog),
        context: RequestContext = Depends(get_request_context),
    ) -> ReviewResponse:
        """Active decisions for a product followed by candidates not yet decided."""
        candidate_filter = CandidateFilter(limit=limit or get_settings().candidate_default_limit)
        try:
            result = await generate(
                session,
                external_catalog,
                context,
                product_id,
                candidate_filter,
                rule_id,
                use_default_rule,
            )
            registry = SQLSourceRegistry(session)
            lifecycle = MatchLifecycle(SQLMatchStore(session), registry)
            active = await lifecycle.list_active_by_local_product(context, product_id)
            rejected = await lifecycle.list(
                context,
                MatchFilters(local_product_id=product_id, status=MATCH_STATUS_NOT_MATCHED),
                limit=MAX_PAGE_SIZE,
            )
            active.extend(rejected.items)
            source_codes = {source.id: source.code for source in await registry.list_sources()}
        except CatalinkError as e:
            raise http_error(e) from e

        return ReviewResponse(
            product_id=product_id,
            rule_id=result.rule_id,
            items=build_review_items(active, result.candidates, source_codes),
            skipped_sources=result.skipped_sources,
        )

    @router_instance.get("/candidates/filters", response_model=FilterOptions)
    async def get_filter_options(
        table_catalog: SQLExternalCatalog = Depends(get_table_catalog),
    ) -> FilterOptions:
        """Brands, categories and sources available for narrowing candidates."""
        return await table_catalog.filter_options()

    return router_instance
