"""Tests for the SQL catalog collaborators."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.candidates.audit import SQLCandidateAudit
from catalink.core.candidates.models import CandidateFilter
from catalink.core.candidates.service import CandidateGenerator
from catalink.core.catalog.sql import SQLExternalCatalog, SQLLocalCatalog, SQLSourceRegistry
from catalink.core.errors import Conflict, InvalidInput, NotFound
from catalink.core.matching.rules import MatchingRule
from catalink.db.models import ExternalProduct, LocalProduct


@pytest.fixture
async def seeded(session: SQLModelAsyncSession) -> SQLModelAsyncSession:
    registry = SQLSourceRegistry(session)
    await registry.create_source(name="Amazon", code="AMZ")
    await registry.create_source(name="eBay", code="EBY")
    await registry.create_source(name="Retired", code="OLD", is_active=False)

    session.add(
        LocalProduct(
            id="local-1",
            title="UPPAbaby Vista V2 Stroller - Black",
            brand="UPPAbaby",
            category_id="strollers",
            price=899.99,
            gtin="810030040051",
        )
    )
    session.add_all(
        [
            ExternalProduct(
                source_code="AMZ",
                external_key="B0VISTA",
                title="UPPAbaby Vista V2 Complete Stroller Black",
                brand="UPPAbaby",
                category_id="strollers",
                price=849.99,
                gtin="810030040051",
            ),
            ExternalProduct(
                source_code="AMZ",
                external_key="B0CYBEX",
                title="Cybex Priam Frame",
                brand="Cybex",
                category_id="strollers",
                price=880.0,
            ),
            ExternalProduct(
                source_code="EBY",
                external_key="eby-1",
                title="uppababy vista v2 stroller black",
                brand="uppababy",
                category_id="strollers",
                price=905.0,
            ),
            ExternalProduct(
                source_code="OLD",
                external_key="old-1",
                title="UPPAbaby Vista V2 Stroller",
                brand="Joolz",
                category_id="car-seats",
                price=899.0,
            ),
        ]
    )
    await session.commit()
    return session


class TestSQLSourceRegistry:
    @pytest.mark.asyncio
    async def test_active_sources_ordered(self, seeded: SQLModelAsyncSession) -> None:
        registry = SQLSourceRegistry(seeded)
        assert [s.code for s in await registry.list_active_sources()] == ["AMZ", "EBY"]
        assert [s.code for s in await registry.list_sources()] == ["AMZ", "EBY", "OLD"]

    @pytest.mark.asyncio
    async def test_get_by_code_ignores_inactive(self, seeded: SQLModelAsyncSession) -> None:
        registry = SQLSourceRegistry(seeded)
        assert (await registry.get_by_code("AMZ")).name == "Amazon"  # type: ignore[union-attr]
        assert await registry.get_by_code("OLD") is None
        assert await registry.get_by_code("ZZZ") is None

    @pytest.mark.asyncio
    async def test_duplicate_code(self, seeded: SQLModelAsyncSession) -> None:
        with pytest.raises(Conflict):
            await SQLSourceRegistry(seeded).create_source(name="Amazon 2", code="AMZ")

    @pytest.mark.asyncio
    async def test_update_source(self, seeded: SQLModelAsyncSession) -> None:
        registry = SQLSourceRegistry(seeded)

        updated = await registry.update_source(
            "OLD", is_active=True, config={"kind": "http", "base_url": "https://old.example"}
        )

        assert updated.is_active is True
        assert updated.kind == "http"
        assert await registry.get_by_code("OLD") is not None

    @pytest.mark.asyncio
    async def test_update_unknown(self, seeded: SQLModelAsyncSession) -> None:
        with pytest.raises(NotFound):
            await SQLSourceRegistry(seeded).update_source("ZZZ", name="x")


class TestSQLCatalogs:
    @pytest.mark.asyncio
    async def test_local_catalog(self, seeded: SQLModelAsyncSession) -> None:
        catalog = SQLLocalCatalog(seeded)
        product = await catalog.get_product("local-1")

        assert product is not None
        assert product.brand == "UPPAbaby"
        assert await catalog.get_product("missing") is None

    @pytest.mark.asyncio
    async def test_listings_filtered_by_brand_case_insensitively(
        self,
        seeded: SQLModelAsyncSession,
        session_factory: async_sessionmaker[SQLModelAsyncSession],
    ) -> None:
        registry = SQLSourceRegistry(seeded)
        catalog = SQLExternalCatalog(session_factory)
        amz = await registry.get_by_code("AMZ")
        eby = await registry.get_by_code("EBY")
        assert amz is not None and eby is not None

        all_amz = await catalog.list_by_source(amz)
        upp_amz = await catalog.list_by_source(amz, brand="UPPABABY")
        upp_eby = await catalog.list_by_source(eby, brand="UPPAbaby", category_id="strollers")
        none_eby = await catalog.list_by_source(eby, category_id="car-seats")

        assert [item.external_key for item in all_amz] == ["B0CYBEX", "B0VISTA"]
        assert [item.external_key for item in upp_amz] == ["B0VISTA"]
        assert [item.external_key for item in upp_eby] == ["eby-1"]
        assert none_eby == []

    @pytest.mark.asyncio
    async def test_filter_options_cover_active_sources(
        self,
        seeded: SQLModelAsyncSession,
        session_factory: async_sessionmaker[SQLModelAsyncSession],
    ) -> None:
        options = await SQLExternalCatalog(session_factory).filter_options()

        assert options.sources == ["AMZ", "EBY"]
        assert "Joolz" not in options.brands
        assert {"Cybex", "UPPAbaby", "uppababy"} <= set(options.brands)
        assert options.categories == ["strollers"]

    @pytest.mark.asyncio
    async def test_generation_end_to_end_with_audit(
        self,
        seeded: SQLModelAsyncSession,
        session_factory: async_sessionmaker[SQLModelAsyncSession],
    ) -> None:
        generator = CandidateGenerator(
            source_registry=SQLSourceRegistry(seeded),
            external_catalog=SQLExternalCatalog(session_factory),
            local_catalog=SQLLocalCatalog(seeded),
        )

        result = await generator.get_candidates_for_product(
            "local-1", CandidateFilter(), MatchingRule(id="rule-1")
        )
        audit = SQLCandidateAudit(seeded)
        written = await audit.record("default", result)
        rows = await audit.list_for_product("default", "local-1")

        assert {c.external_key for c in result.candidates} == {"B0VISTA", "eby-1"}
        assert written == len(result.candidates)
        assert {row.external_key for row in rows} == {"B0VISTA", "eby-1"}
        assert all(row.breakdown["brand"] == 1.0 for row in rows)


@pytest.fixture
async def catalog_products(session: SQLModelAsyncSession) -> SQLModelAsyncSession:
    session.add_all(
        [
            LocalProduct(
                id="p-vista",
                title="UPPAbaby Vista V2 Stroller",
                brand="UPPAbaby",
                category_id="strollers",
                price=899.99,
                gtin="810030040051",
                code="UPB-VISTA-V2",
            ),
            LocalProduct(
                id="p-cruz",
                title="UPPAbaby Cruz V2 Stroller",
                brand="UPPAbaby",
                category_id="strollers",
                price=699.99,
                code="UPB-CRUZ-V2",
            ),
            LocalProduct(
                id="p-fox",
                title="Bugaboo Fox 3 Complete",
                brand="Bugaboo",
                category_id="strollers",
                price=1299.0,
                gtin="8717447130104",
            ),
            LocalProduct(
                id="p-aton",
                title="Cybex Aton M i-Size",
                brand="Cybex",
                category_id="car-seats",
                price=249.95,
            ),
        ]
    )
    await session.commit()
    return session


class TestSQLLocalCatalogListing:
    @pytest.mark.asyncio
    async def test_default_order_is_title(self, catalog_products: SQLModelAsyncSession) -> None:
        page = await SQLLocalCatalog(catalog_products).list_products()

        assert [p.id for p in page.items] == ["p-fox", "p-aton", "p-cruz", "p-vista"]
        assert page.total == 4
        assert (page.limit, page.offset) == (50, 0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("q", "expected"),
        [
            ("vista", ["p-vista"]),
            ("BUGABOO", ["p-fox"]),
            ("8717447130104", ["p-fox"]),
            ("upb-cruz", ["p-cruz"]),
            ("v2", ["p-cruz", "p-vista"]),
            ("100%", []),
        ],
    )
    async def test_search(
        self, catalog_products: SQLModelAsyncSession, q: str, expected: list[str]
    ) -> None:
        page = await SQLLocalCatalog(catalog_products).list_products(q=q)

        assert [p.id for p in page.items] == expected
        assert page.total == len(expected)

    @pytest.mark.asyncio
    async def test_brand_and_category_filters(
        self, catalog_products: SQLModelAsyncSession
    ) -> None:
        catalog = SQLLocalCatalog(catalog_products)

        by_brand = await catalog.list_products(brand="uppababy")
        by_category = await catalog.list_products(category_id="car-seats")

        assert {p.id for p in by_brand.items} == {"p-vista", "p-cruz"}
        assert [p.id for p in by_category.items] == ["p-aton"]

    @pytest.mark.asyncio
    async def test_sort_and_paginate(self, catalog_products: SQLModelAsyncSession) -> None:
        catalog = SQLLocalCatalog(catalog_products)

        first = await catalog.list_products(sort_by="price", sort_dir="desc", limit=2)
        second = await catalog.list_products(sort_by="price", sort_dir="desc", limit=2, offset=2)

        assert [p.id for p in first.items] == ["p-fox", "p-vista"]
        assert [p.id for p in second.items] == ["p-cruz", "p-aton"]
        assert first.total == second.total == 4
        assert first.items[1].code == "UPB-VISTA-V2"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [{"limit": 0}, {"limit": 251}, {"offset": -1}, {"sort_by": "gtin"}, {"sort_dir": "up"}],
    )
    async def test_invalid_paging_and_sorting(
        self, catalog_products: SQLModelAsyncSession, kwargs: dict
    ) -> None:
        with pytest.raises(InvalidInput):
            await SQLLocalCatalog(catalog_products).list_products(**kwargs)
