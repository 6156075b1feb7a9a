"""Local product catalog API routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import structlog
from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.catalog.models import Product, ProductPage
from catalink.core.catalog.sql import (
    MAX_PRODUCT_PAGE_SIZE,
    ProductSortField,
    SortDirection,
    SQLLocalCatalog,
)
from catalink.core.dependencies import http_error
from catalink.core.errors import CatalinkError, NotFound

logger = structlog.get_logger("catalink.routes.products")


def create_products_router(
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]],
) -> APIRouter:
    """Create products router.

    Args:
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    logger.debug("Creating products router")
    router_instance = APIRouter(prefix="/api")

    @router_instance.get("/products", response_model=ProductPage)
    async def list_products(
        q: str | None = Query(None, description="Search title, brand, GTIN or product code"),
        brand: str | None = Query(None),
        category_id: str | None = Query(None),
        sort_by: ProductSortField | None = Query(None),
        sort_dir: SortDirection = Query("asc"),
        limit: int = Query(50, ge=1, le=MAX_PRODUCT_PAGE_SIZE),
        offset: int = Query(0, ge=0),
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> ProductPage:
        """Browse the local catalog to pick a product to match."""
        try:
            return await SQLLocalCatalog(session).list_products(
                q=q,
                brand=brand,
                category_id=category_id,
                sort_by=sort_by,
                sort_dir=sort_dir,
                limit=limit,
                offset=offset,
            )
        except CatalinkError as e:
            raise http_error(e) from e

    @router_instance.get("/products/{product_id}", response_model=Product)
    async def get_product(
        product_id: str,
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> Product:
        product = await SQLLocalCatalog(session).get_product(product_id)
        if product is None:
            error = NotFound(f"Product '{product_id}' not found", product_id=product_id)
            raise http_error(error)
        return product

    return router_instance
