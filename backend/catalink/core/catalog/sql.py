"""SQL-backed catalog collaborators."""

from __future__ import annotations

import time
from typing import Any, Literal

import structlog
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.catalog.base import ExternalCatalog, LocalCatalog, SourceRegistry
from catalink.core.catalog.models import (
    ExternalListing,
    FilterOptions,
    MatchSource,
    Product,
    ProductPage,
)
from catalink.core.errors import Conflict, InvalidInput, NotFound, SourceFetchFailed
from catalink.db.models import ExternalProduct, LocalProduct, ProductMatchSource

logger = structlog.get_logger("catalink.catalog.sql")

MAX_PRODUCT_PAGE_SIZE = 250

ProductSortField = Literal["title", "brand", "price"]
SortDirection = Literal["asc", "desc"]

_PRODUCT_SORT_COLUMNS = {
    "title": LocalProduct.title,
    "brand": LocalProduct.brand,
    "price": LocalProduct.price,
}


class SQLLocalCatalog(LocalCatalog):
    """Local products stored in the local_products table."""

    def __init__(self, session: SQLModelAsyncSession) -> None:
        self.session = session

    async def get_product(self, product_id: str) -> Product | None:
        row = await self.session.get(LocalProduct, product_id)
        return Product.model_validate(row) if row else None

    async def list_products(
        self,
        q: str | None = None,
        brand: str | None = None,
        category_id: str | None = None,
        sort_by: ProductSortField | None = None,
        sort_dir: SortDirection = "asc",
        limit: int = 50,
        offset: int = 0,
    ) -> ProductPage:
        """Browse local products.

        ``q`` matches title, brand, GTIN or product code (case-insensitive
        substring). Brand matches case-insensitively, category exactly.
        Without ``sort_by`` products come in title order.

        Raises:
            InvalidInput: Unknown sort field or direction, or out-of-range paging
        """
        if not 1 <= limit <= MAX_PRODUCT_PAGE_SIZE:
            raise InvalidInput(
                f"limit must be within [1, {MAX_PRODUCT_PAGE_SIZE}]", field="limit", value=limit
            )
        if offset < 0:
            raise InvalidInput("offset must not be negative", field="offset", value=offset)
        if sort_by is not None and sort_by not in _PRODUCT_SORT_COLUMNS:
            raise InvalidInput(f"Cannot sort by '{sort_by}'", field="sort_by", value=sort_by)
        if sort_dir not in ("asc", "desc"):
            raise InvalidInput("sort_dir must be asc or desc", field="sort_dir", value=sort_dir)

        conditions = []
        if q and q.strip():
            term = q.strip().lower()
            conditions.append(
                or_(
                    *(
                        func.lower(col(column)).contains(term, autoescape=True)
                        for column in (
                            LocalProduct.title,
                            LocalProduct.brand,
                            LocalProduct.gtin,
                            LocalProduct.code,
                        )
                    )
                )
            )
        if brand:
            conditions.append(func.lower(col(LocalProduct.brand)) == brand.lower())
        if category_id:
            conditions.append(col(LocalProduct.category_id) == category_id)

        sort_column = col(_PRODUCT_SORT_COLUMNS[sort_by or "title"])
        order = sort_column.desc() if sort_dir == "desc" else sort_column.asc()

        statement = select(LocalProduct)
        count_statement = select(func.count()).select_from(LocalProduct)
        for condition in conditions:
            statement = statement.where(condition)
            count_statement = count_statement.where(condition)

        result = await self.session.exec(
            statement.order_by(order, col(LocalProduct.id)).offset(offset).limit(limit)
        )
        total = await self.session.exec(count_statement)

        return ProductPage(
            items=[Product.model_validate(row) for row in result.all()],
            total=int(total.one()),
            limit=limit,
            offset=offset,
        )


class SQLSourceRegistry(SourceRegistry):
    """Sources stored in product_match_sources, managed by administrators."""

    def __init__(self, session: SQLModelAsyncSession) -> None:
        self.session = session

    async def list_active_sources(self) -> list[MatchSource]:
        result = await self.session.exec(
            select(ProductMatchSource)
            .where(col(ProductMatchSource.is_active).is_(True))
            .order_by(col(ProductMatchSource.code))
        )
        return [MatchSource.model_validate(row) for row in result.all()]

    async def get_by_code(self, code: str) -> MatchSource | None:
        row = await self._get_row(code)
        if row is None or not row.is_active:
            return None
        return MatchSource.model_validate(row)

    async def list_sources(self, include_inactive: bool = True) -> list[MatchSource]:
        """List registered sources, optionally including deactivated ones."""
        query = select(ProductMatchSource).order_by(col(ProductMatchSource.code))
        if not include_inactive:
            query = query.where(col(ProductMatchSource.is_active).is_(True))
        result = await self.session.exec(query)
        return [MatchSource.model_validate(row) for row in result.all()]

    async def create_source(
        self,
        name: str,
        code: str,
        config: dict[str, Any] | None = None,
        is_active: bool = True,
    ) -> MatchSource:
        """Register a new source.

        Raises:
            Conflict: A source with this code already exists
        """
        row = ProductMatchSource(name=name, code=code, config=config or {}, is_active=is_active)
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise Conflict(f"Source code '{code}' already registered", code=code) from e
        await self.session.refresh(row)
        logger.info("Source registered", code=code, name=name, is_active=is_active)
        return MatchSource.model_validate(row)

    async def update_source(
        self,
        code: str,
        name: str | None = None,
        config: dict[str, Any] | None = None,
        is_active: bool | None = None,
    ) -> MatchSource:
        """Update a source in place.

        Raises:
            NotFound: No source has this code
        """
        row = await self._get_row(code)
        if row is None:
            raise NotFound(f"Source '{code}' not found", code=code)

        if name is not None:
            row.name = name
        if config is not None:
            row.config = config
        if is_active is not None:
            row.is_active = is_active
        row.updated_at = int(time.time())

        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        logger.info("Source updated", code=code, is_active=row.is_active)
        return MatchSource.model_validate(row)

    async def _get_row(self, code: str) -> ProductMatchSource | None:
        result = await self.session.exec(
            select(ProductMatchSource).where(ProductMatchSource.code == code)
        )
        return result.first()


class SQLExternalCatalog(ExternalCatalog):
    """Listings stored in the external_products table.

    Each call opens its own session so several sources can be read concurrently.
    """

    def __init__(self, session_factory: async_sessionmaker[SQLModelAsyncSession]) -> None:
        super().__init__("table")
        self.session_factory = session_factory

    async def list_by_source(
        self,
        source: MatchSource,
        brand: str | None = None,
        category_id: str | None = None,
    ) -> list[ExternalListing]:
        query = select(ExternalProduct).where(ExternalProduct.source_code == source.code)
        if brand:
            query = query.where(func.lower(ExternalProduct.brand) == brand.lower())
        if category_id:
            query = query.where(ExternalProduct.category_id == category_id)

        try:
            async with self.session_factory() as session:
                result = await session.exec(query.order_by(col(ExternalProduct.external_key)))
                rows = result.all()
        except SQLAlchemyError as e:
            raise SourceFetchFailed(source.code, str(e)) from e

        self.logger.debug("Listings loaded", source=source.code, count=len(rows))
        return [ExternalListing.model_validate(row) for row in rows]

    async def filter_options(self) -> FilterOptions:
        """Distinct brands and categories across active sources."""
        async with self.session_factory() as session:
            active_codes = select(ProductMatchSource.code).where(
                col(ProductMatchSource.is_active).is_(True)
            )
            brands = await session.exec(
                select(ExternalProduct.brand)
                .where(col(ExternalProduct.source_code).in_(active_codes))
                .where(col(ExternalProduct.brand).is_not(None))
                .distinct()
                .order_by(col(ExternalProduct.brand))
            )
            categories = await session.exec(
                select(ExternalProduct.category_id)
                .where(col(ExternalProduct.source_code).in_(active_codes))
                .where(col(ExternalProduct.category_id).is_not(None))
                .distinct()
                .order_by(col(ExternalProduct.category_id))
            )
            sources = await session.exec(active_codes.order_by(col(ProductMatchSource.code)))

            return FilterOptions(
                brands=[b for b in brands.all() if b],
                categories=[c for c in categories.all() if c],
                sources=list(sources.all()),
            )
