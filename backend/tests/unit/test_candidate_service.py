"""Tests for candidate generation."""

from __future__ import annotations

import asyncio

import pytest

from catalink.core.candidates.models import CandidateFilter
from catalink.core.candidates.service import CandidateGenerator, within_price_band
from catalink.core.catalog.base import ExternalCatalog, LocalCatalog, SourceRegistry
from catalink.core.catalog.models import ExternalListing, MatchSource, Product
from catalink.core.errors import NotFound, SourceFetchFailed
from catalink.core.matching.rules import MatchingRule

LOCAL = Product(
    id="local-1",
    title="UPPAbaby Vista V2 Stroller - Black",
    brand="UPPAbaby",
    price=899.99,
    gtin="810030040051",
)

RULE = MatchingRule(id="rule-1", min_score=0.65)


def listing(source: str, key: str, title: str, price: float | None, **extra) -> ExternalListing:
    return ExternalListing(source_code=source, external_key=key, title=title, price=price, **extra)


class FakeRegistry(SourceRegistry):
    def __init__(self, *codes: str) -> None:
        self.sources = [MatchSource(id=f"id-{code}", name=code, code=code) for code in codes]

    async def list_active_sources(self) -> list[MatchSource]:
        return sorted(self.sources, key=lambda s: s.code)

    async def get_by_code(self, code: str) -> MatchSource | None:
        return next((s for s in self.sources if s.code == code), None)


class FakeLocalCatalog(LocalCatalog):
    async def get_product(self, product_id: str) -> Product | None:
        return LOCAL if product_id == LOCAL.id else None


class FakeCatalog(ExternalCatalog):
    """Serves listings per source; sources in ``failing`` raise, ``slow`` never return."""

    def __init__(
        self,
        listings: dict[str, list[ExternalListing]],
        failing: set[str] | None = None,
        slow: set[str] | None = None,
        crashing: set[str] | None = None,
    ) -> None:
        super().__init__("fake")
        self.listings = listings
        self.failing = failing or set()
        self.slow = slow or set()
        self.crashing = crashing or set()
        self.calls: list[tuple[str, str | None, str | None]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.started = asyncio.Event()
        self.cancelled: list[str] = []

    async def list_by_source(
        self,
        source: MatchSource,
        brand: str | None = None,
        category_id: str | None = None,
    ) -> list[ExternalListing]:
        self.calls.append((source.code, brand, category_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        try:
            await asyncio.sleep(0)
            if source.code in self.failing:
                raise SourceFetchFailed(source.code, "HTTP 503")
            if source.code in self.crashing:
                raise RuntimeError("boom")
            if source.code in self.slow:
                try:
                    await asyncio.sleep(3600)
                except asyncio.CancelledError:
                    self.cancelled.append(source.code)
                    raise
            return list(self.listings.get(source.code, []))
        finally:
            self.in_flight -= 1


VISTA_AMZ = listing(
    "AMZ",
    "B0VISTA",
    "UPPAbaby Vista V2 Complete Stroller Black",
    849.99,
    brand="UPPAbaby",
    gtin="810030040051",
)
VISTA_EBY = listing(
    "EBY",
    "eby-1",
    "UPPAbaby Vista V2 Stroller Black",
    905.00,
    brand="UPPAbaby",
    gtin="810030040051",
)
CYBEX_EBY = listing("EBY", "eby-2", "Cybex Priam Frame Chrome", 880.00, brand="Cybex")
CHEAP_AMZ = listing(
    "AMZ", "B0CHEAP", "UPPAbaby Vista V2 Stroller Black", 500.00, brand="UPPAbaby"
)


def make_generator(catalog: FakeCatalog, *codes: str, **kwargs) -> CandidateGenerator:
    return CandidateGenerator(
        source_registry=FakeRegistry(*codes),
        external_catalog=catalog,
        local_catalog=FakeLocalCatalog(),
        **kwargs,
    )


class TestPriceBand:
    def test_within(self) -> None:
        assert within_price_band(100.0, 115.0, 15.0)
        assert within_price_band(100.0, 85.0, 15.0)

    def test_outside(self) -> None:
        assert not within_price_band(100.0, 116.0, 15.0)

    def test_unknown_price_passes(self) -> None:
        assert within_price_band(None, 10.0, 15.0)
        assert within_price_band(10.0, None, 15.0)

    def test_non_positive_price_counts_as_unknown(self) -> None:
        assert within_price_band(0.0, 100.0, 15.0)
        assert within_price_band(-5.0, 100.0, 15.0)
        assert within_price_band(100.0, 0.0, 15.0)


class TestCandidateGenerator:
    @pytest.mark.asyncio
    async def test_min_score_and_ordering(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ], "EBY": [CYBEX_EBY, VISTA_EBY]})
        generator = make_generator(catalog, "AMZ", "EBY")

        result = await generator.get_candidates(LOCAL, CandidateFilter(), RULE)

        # eby-1 carries the exact local title
        assert [c.external_key for c in result.candidates] == ["eby-1", "B0VISTA"]
        assert all(c.overall >= RULE.min_score for c in result.candidates)
        overalls = [c.overall for c in result.candidates]
        assert overalls == sorted(overalls, reverse=True)
        assert "eby-2" not in {c.external_key for c in result.candidates}
        assert result.skipped_sources == []
        assert result.queried_sources == ["AMZ", "EBY"]

    @pytest.mark.asyncio
    async def test_ties_broken_by_price_gap(self) -> None:
        near = listing("AMZ", "near", "UPPAbaby Vista V2 Stroller - Black", 900.0, brand="UPPAbaby")
        far = listing("EBY", "far", "UPPAbaby Vista V2 Stroller - Black", 950.0, brand="UPPAbaby")
        catalog = FakeCatalog({"AMZ": [near], "EBY": [far]})

        result = await make_generator(catalog, "AMZ", "EBY").get_candidates(
            LOCAL, CandidateFilter(), RULE
        )

        assert result.candidates[0].overall == result.candidates[1].overall
        assert [c.external_key for c in result.candidates] == ["near", "far"]

    @pytest.mark.asyncio
    async def test_price_band_prefilter(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ, CHEAP_AMZ]})
        generator = make_generator(catalog, "AMZ")

        default_band = await generator.get_candidates(LOCAL, CandidateFilter(), RULE)
        wide_band = await generator.get_candidates(
            LOCAL, CandidateFilter(price_band_pct=60), MatchingRule(id="loose", min_score=0.0)
        )

        assert [c.external_key for c in default_band.candidates] == ["B0VISTA"]
        assert "B0CHEAP" in {c.external_key for c in wide_band.candidates}

    @pytest.mark.asyncio
    async def test_placeholder_local_price_skips_band(self) -> None:
        """A local price of 0 is a placeholder, so no listing is priced out."""
        unpriced = LOCAL.model_copy(update={"price": 0.0})
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ, CHEAP_AMZ]})

        result = await make_generator(catalog, "AMZ").get_candidates(
            unpriced, CandidateFilter(), RULE
        )

        assert {c.external_key for c in result.candidates} == {"B0VISTA", "B0CHEAP"}
        assert all("price:missing" in c.explanation for c in result.candidates)

    @pytest.mark.asyncio
    async def test_limit(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ], "EBY": [VISTA_EBY]})
        result = await make_generator(catalog, "AMZ", "EBY").get_candidates(
            LOCAL, CandidateFilter(limit=1), RULE
        )
        assert len(result.candidates) == 1

    @pytest.mark.asyncio
    async def test_failing_source_is_skipped(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ], "EBY": [VISTA_EBY]}, failing={"EBY"})

        result = await make_generator(catalog, "AMZ", "EBY").get_candidates(
            LOCAL, CandidateFilter(), RULE
        )

        assert [c.source_code for c in result.candidates] == ["AMZ"]
        assert [s.code for s in result.skipped_sources] == ["EBY"]
        assert result.skipped_sources[0].reason == "HTTP 503"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_skipped(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ]}, crashing={"EBY"})

        result = await make_generator(catalog, "AMZ", "EBY").get_candidates(
            LOCAL, CandidateFilter(), RULE
        )

        assert [c.source_code for c in result.candidates] == ["AMZ"]
        assert result.skipped_sources[0].code == "EBY"
        assert "RuntimeError" in result.skipped_sources[0].reason

    @pytest.mark.asyncio
    async def test_slow_source_times_out(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ]}, slow={"EBY"})
        generator = make_generator(catalog, "AMZ", "EBY", fetch_timeout=0.05)

        result = await generator.get_candidates(LOCAL, CandidateFilter(), RULE)

        assert [c.source_code for c in result.candidates] == ["AMZ"]
        assert result.skipped_sources[0].code == "EBY"
        assert "timed out" in result.skipped_sources[0].reason

    @pytest.mark.asyncio
    async def test_requested_sources(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ], "EBY": [VISTA_EBY]})

        result = await make_generator(catalog, "AMZ", "EBY").get_candidates(
            LOCAL, CandidateFilter(sources=["EBY", "ZZZ"]), RULE
        )

        assert [call[0] for call in catalog.calls] == ["EBY"]
        assert [c.source_code for c in result.candidates] == ["EBY"]
        assert [s.code for s in result.skipped_sources] == ["ZZZ"]

    @pytest.mark.asyncio
    async def test_brand_and_category_passed_to_catalog(self) -> None:
        catalog = FakeCatalog({"AMZ": []})

        await make_generator(catalog, "AMZ").get_candidates(
            LOCAL, CandidateFilter(brand="UPPAbaby", category_id="strollers"), RULE
        )

        assert catalog.calls == [("AMZ", "UPPAbaby", "strollers")]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        codes = [f"S{i}" for i in range(6)]
        catalog = FakeCatalog({code: [] for code in codes})

        await make_generator(catalog, *codes, concurrency=2).get_candidates(
            LOCAL, CandidateFilter(), RULE
        )

        assert len(catalog.calls) == 6
        assert catalog.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_cancellation_cancels_in_flight_fetches(self) -> None:
        catalog = FakeCatalog({}, slow={"AMZ", "EBY"})
        generator = make_generator(catalog, "AMZ", "EBY", fetch_timeout=3600)

        task = asyncio.create_task(generator.get_candidates(LOCAL, CandidateFilter(), RULE))
        await catalog.started.wait()
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert sorted(catalog.cancelled) == ["AMZ", "EBY"]
        assert catalog.in_flight == 0

    @pytest.mark.asyncio
    async def test_candidate_fields(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ]})

        result = await make_generator(catalog, "AMZ").get_candidates(
            LOCAL, CandidateFilter(), RULE
        )
        candidate = result.candidates[0]

        assert candidate.rule_id == RULE.id
        assert candidate.tier == "high"
        assert candidate.price_delta_pct == pytest.approx(-5.56, abs=0.01)
        assert candidate.breakdown.gtin == 1.0
        assert result.summary.total == 1
        assert result.summary.high == 1

    @pytest.mark.asyncio
    async def test_no_sources(self) -> None:
        result = await make_generator(FakeCatalog({})).get_candidates(
            LOCAL, CandidateFilter(), RULE
        )
        assert result.candidates == []
        assert result.skipped_sources == []

    @pytest.mark.asyncio
    async def test_unknown_local_product(self) -> None:
        generator = make_generator(FakeCatalog({}), "AMZ")
        with pytest.raises(NotFound):
            await generator.get_candidates_for_product("missing", CandidateFilter(), RULE)

    @pytest.mark.asyncio
    async def test_for_product_resolves_local_product(self) -> None:
        catalog = FakeCatalog({"AMZ": [VISTA_AMZ]})
        result = await make_generator(catalog, "AMZ").get_candidates_for_product(
            LOCAL.id, CandidateFilter(), RULE
        )
        assert result.local_product_id == LOCAL.id
        assert len(result.candidates) == 1

    def test_local_catalog_is_required(self) -> None:
        with pytest.raises(TypeError):
            CandidateGenerator(  # type: ignore[call-arg]
                source_registry=FakeRegistry("AMZ"),
                external_catalog=FakeCatalog({}),
            )
