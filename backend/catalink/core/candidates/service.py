"""Candidate generation across external sources."""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Iterator

import structlog

from catalink.core.candidates.models import (
    Candidate,
    CandidateFilter,
    CandidateResult,
    SkippedSource,
    summarize_candidates,
)
from catalink.core.catalog.base import ExternalCatalog, LocalCatalog, SourceRegistry
from catalink.core.catalog.models import ExternalListing, MatchSource, Product
from catalink.core.errors import NotFound, SourceFetchFailed
from catalink.core.matching.rules import MatchingRule
from catalink.core.matching.similarity import candidate_tier, price_delta_pct, product_similarity
from catalink.core.metrics import (
    candidate_generation_duration_seconds,
    candidate_requests_total,
    candidate_source_fetch_total,
    candidates_returned,
)

logger = structlog.get_logger("catalink.candidates.service")

DEFAULT_FETCH_CONCURRENCY = 4
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0


def within_price_band(
    local_price: float | None,
    listing_price: float | None,
    band_pct: float,
) -> bool:
    """True when the listing price is within ±band_pct% of the local price.

    Always True when either price is unknown or not positive, matching how
    the price score treats such values as missing.
    """
    if local_price is None or listing_price is None or local_price <= 0 or listing_price <= 0:
        return True
    return abs(listing_price - local_price) <= abs(local_price) * band_pct / 100.0


def _ranking_key(candidate: Candidate, local_price: float | None) -> tuple[float, float, str, str]:
    if local_price is None or candidate.price is None:
        price_gap = math.inf
    else:
        price_gap = abs(candidate.price - local_price)
    return (-candidate.overall, price_gap, candidate.source_code, candidate.external_key)


class CandidateGenerator:
    """Produces a ranked, explained shortlist of external listings for a local product.

    Sources are fetched by a fixed pool of workers (``concurrency``), each fetch
    bounded by its own timeout. A failed or timed-out source is reported in
    ``skipped_sources`` and never fails the call. Nothing is cached between calls.
    """

    def __init__(
        self,
        source_registry: SourceRegistry,
        external_catalog: ExternalCatalog,
        local_catalog: LocalCatalog,
        concurrency: int = DEFAULT_FETCH_CONCURRENCY,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize candidate generator.

        Args:
            source_registry: Registry resolving active sources
            external_catalog: Provider of listings per source
            local_catalog: Local product lookup used by get_candidates_for_product
            concurrency: Number of sources fetched at the same time
            fetch_timeout: Timeout in seconds applied to each source fetch
        """
        self.source_registry = source_registry
        self.external_catalog = external_catalog
        self.local_catalog = local_catalog
        self.concurrency = max(1, concurrency)
        self.fetch_timeout = fetch_timeout
        self.logger = logger

    async def get_candidates_for_product(
        self,
        local_product_id: str,
        candidate_filter: CandidateFilter,
        rule: MatchingRule,
    ) -> CandidateResult:
        """Resolve the local product, then generate its candidates.

        Raises:
            NotFound: The local product does not exist
        """
        product = await self.local_catalog.get_product(local_product_id)
        if product is None:
            raise NotFound(f"Product '{local_product_id}' not found", product_id=local_product_id)
        return await self.get_candidates(product, candidate_filter, rule)

    async def get_candidates(
        self,
        local_product: Product,
        candidate_filter: CandidateFilter,
        rule: MatchingRule,
    ) -> CandidateResult:
        """Fetch, pre-filter, score, rank and truncate candidates.

        Args:
            local_product: Product to find counterparts for
            candidate_filter: Sources, brand, category, price band and limit
            rule: Weights, min_score and algorithm used for scoring

        Returns:
            CandidateResult ordered by overall score descending, ties broken by
            absolute price difference, then source code
        """
        started = time.perf_counter()
        log = self.logger.bind(product_id=local_product.id, rule_id=rule.id)

        sources, skipped = await self._resolve_sources(candidate_filter.sources)
        try:
            listings, failed = await self._fetch_all(sources, candidate_filter)
        except asyncio.CancelledError:
            candidate_requests_total.labels(outcome="cancelled").inc()
            log.info("Candidate generation cancelled", sources=[s.code for s in sources])
            raise
        skipped.extend(failed)

        band_pct = (
            candidate_filter.price_band_pct
            if candidate_filter.price_band_pct is not None
            else rule.price_band_pct
        )
        in_band = [
            listing
            for listing in listings
            if within_price_band(local_product.price, listing.price, band_pct)
        ]

        generated_at = int(time.time())
        candidates: list[Candidate] = []
        for listing in in_band:
            candidate = self._score(local_product, listing, rule, generated_at)
            if candidate.overall >= rule.min_score:
                candidates.append(candidate)

        candidates.sort(key=lambda c: _ranking_key(c, local_product.price))
        candidates = candidates[: candidate_filter.limit]

        duration = time.perf_counter() - started
        candidate_generation_duration_seconds.observe(duration)
        candidates_returned.observe(len(candidates))
        candidate_requests_total.labels(outcome="partial" if skipped else "ok").inc()

        log.info(
            "Candidates generated",
            sources=[s.code for s in sources],
            skipped=[s.code for s in skipped],
            listings=len(listings),
            in_band=len(in_band),
            returned=len(candidates),
            duration_ms=round(duration * 1000, 1),
        )

        return CandidateResult(
            local_product_id=local_product.id,
            rule_id=rule.id,
            candidates=candidates,
            skipped_sources=skipped,
            queried_sources=[s.code for s in sources],
            summary=summarize_candidates(candidates),
            generated_at=generated_at,
        )

    async def _resolve_sources(
        self, requested: list[str] | None
    ) -> tuple[list[MatchSource], list[SkippedSource]]:
        active = await self.source_registry.list_active_sources()
        if requested is None:
            return active, []

        wanted = set(requested)
        resolved = [source for source in active if source.code in wanted]
        active_codes = {source.code for source in active}
        skipped = [
            SkippedSource(code=code, reason="unknown or inactive source")
            for code in sorted(wanted - active_codes)
        ]
        return resolved, skipped

    async def _fetch_all(
        self,
        sources: list[MatchSource],
        candidate_filter: CandidateFilter,
    ) -> tuple[list[ExternalListing], list[SkippedSource]]:
        """Fetch every source with a fixed worker budget.

        Results are aggregated only once all workers are done. If the caller
        cancels, in-flight fetches are cancelled and awaited before the
        cancellation propagates.
        """
        listings_by_source: dict[str, list[ExternalListing]] = {}
        skipped: list[SkippedSource] = []
        pending: Iterator[MatchSource] = iter(sources)

        async def worker() -> None:
            for source in pending:
                outcome = await self._fetch_source(source, candidate_filter)
                if isinstance(outcome, SkippedSource):
                    skipped.append(outcome)
                else:
                    listings_by_source[source.code] = outcome

        workers = [
            asyncio.create_task(worker(), name=f"candidate-fetch-{i}")
            for i in range(min(self.concurrency, len(sources)))
        ]
        try:
            await asyncio.gather(*workers)
        except asyncio.CancelledError:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        listings = [
            listing for source in sources for listing in listings_by_source.get(source.code, [])
        ]
        skipped.sort(key=lambda s: s.code)
        return listings, skipped

    async def _fetch_source(
        self,
        source: MatchSource,
        candidate_filter: CandidateFilter,
    ) -> list[ExternalListing] | SkippedSource:
        try:
            listings = await asyncio.wait_for(
                self.external_catalog.list_by_source(
                    source,
                    brand=candidate_filter.brand,
                    category_id=candidate_filter.category_id,
                ),
                timeout=self.fetch_timeout,
            )
        except TimeoutError:
            candidate_source_fetch_total.labels(source=source.code, outcome="timeout").inc()
            self.logger.warning(
                "Source fetch timed out", source=source.code, timeout=self.fetch_timeout
            )
            return SkippedSource(code=source.code, reason=f"timed out after {self.fetch_timeout}s")
        except SourceFetchFailed as e:
            candidate_source_fetch_total.labels(source=source.code, outcome="failed").inc()
            self.logger.warning("Source fetch failed", source=source.code, reason=e.reason)
            return SkippedSource(code=source.code, reason=e.reason)
        except Exception as e:
            candidate_source_fetch_total.labels(source=source.code, outcome="failed").inc()
            self.logger.error(
                "Source fetch raised unexpectedly",
                source=source.code,
                error=str(e),
                exc_info=True,
            )
            return SkippedSource(code=source.code, reason=f"{type(e).__name__}: {e}")

        candidate_source_fetch_total.labels(source=source.code, outcome="ok").inc()
        return listings

    def _score(
        self,
        local_product: Product,
        listing: ExternalListing,
        rule: MatchingRule,
        generated_at: int,
    ) -> Candidate:
        similarity = product_similarity(local_product, listing, rule)
        return Candidate(
            local_product_id=local_product.id,
            external_key=listing.external_key,
            source_code=listing.source_code,
            title=listing.title,
            brand=listing.brand,
            price=listing.price,
            url=listing.url,
            overall=similarity.overall,
            breakdown=similarity.breakdown,
            explanation=similarity.explanation,
            tier=candidate_tier(similarity.overall),
            rule_id=rule.id,
            price_delta_pct=price_delta_pct(local_product.price, listing.price),
            generated_at=generated_at,
        )
