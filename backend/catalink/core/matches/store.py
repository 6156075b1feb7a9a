"""Persistence of match decisions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.errors import Conflict
from catalink.core.matches.models import MatchFilters
from catalink.db.models import ACTIVE_MATCH_STATUSES, ProductMatch

logger = structlog.get_logger("catalink.matches.store")

MatchOrder = Literal["created_desc", "score_desc"]


class MatchStore(ABC):
    """Durable storage for ProductMatch rows.

    Implementations must reject a second active row for the same
    (tenant, external key, source) by raising Conflict.
    """

    @abstractmethod
    async def get(self, match_id: str) -> ProductMatch | None:
        """Return the row with this id, whatever its status."""

    @abstractmethod
    async def find_active(
        self, tenant_id: str, external_key: str, source_id: str
    ) -> ProductMatch | None:
        """Return the matched/not_matched row for the pair, if any."""

    @abstractmethod
    async def insert(self, match: ProductMatch) -> ProductMatch:
        """Persist a new row. Raises Conflict on a uniqueness violation."""

    @abstractmethod
    async def update(self, match: ProductMatch) -> ProductMatch:
        """Persist changes to an existing row. Raises Conflict on a uniqueness violation."""

    @abstractmethod
    async def query(
        self,
        tenant_id: str,
        filters: MatchFilters,
        limit: int,
        offset: int = 0,
        order: MatchOrder = "created_desc",
    ) -> list[ProductMatch]:
        """Filtered, ordered, paginated rows of one tenant."""

    @abstractmethod
    async def count(self, tenant_id: str, filters: MatchFilters) -> int:
        """Number of rows matching the filters."""


class SQLMatchStore(MatchStore):
    """MatchStore over the product_matches table.

    Uniqueness of active rows is enforced by the partial unique index
    ``uq_product_matches_active_pair``.
    """

    def __init__(self, session: SQLModelAsyncSession) -> None:
        self.session = session

    async def get(self, match_id: str) -> ProductMatch | None:
        return await self.session.get(ProductMatch, match_id)

    async def find_active(
        self, tenant_id: str, external_key: str, source_id: str
    ) -> ProductMatch | None:
        result = await self.session.exec(
            select(ProductMatch)
            .where(ProductMatch.tenant_id == tenant_id)
            .where(ProductMatch.external_key == external_key)
            .where(ProductMatch.source_id == source_id)
            .where(col(ProductMatch.status).in_(ACTIVE_MATCH_STATUSES))
        )
        return result.first()

    async def insert(self, match: ProductMatch) -> ProductMatch:
        return await self._write(match, "insert")

    async def update(self, match: ProductMatch) -> ProductMatch:
        return await self._write(match, "update")

    async def query(
        self,
        tenant_id: str,
        filters: MatchFilters,
        limit: int,
        offset: int = 0,
        order: MatchOrder = "created_desc",
    ) -> list[ProductMatch]:
        statement = self._apply_filters(select(ProductMatch), tenant_id, filters)
        if order == "score_desc":
            statement = statement.order_by(
                col(ProductMatch.score).desc(), col(ProductMatch.created_at).desc()
            )
        else:
            statement = statement.order_by(
                col(ProductMatch.created_at).desc(), col(ProductMatch.id).desc()
            )
        result = await self.session.exec(statement.offset(offset).limit(limit))
        return list(result.all())

    async def count(self, tenant_id: str, filters: MatchFilters) -> int:
        statement = self._apply_filters(
            select(func.count()).select_from(ProductMatch), tenant_id, filters
        )
        result = await self.session.exec(statement)
        return int(result.one())

    async def _write(self, match: ProductMatch, operation: str) -> ProductMatch:
        # Rollback expires loaded attributes, so keep the pair for error reporting
        pair = {
            "tenant_id": match.tenant_id,
            "external_key": match.external_key,
            "source_id": match.source_id,
        }
        self.session.add(match)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning("Active match uniqueness violated", operation=operation, **pair)
            raise Conflict("An active match already exists for this pair", **pair) from e
        await self.session.refresh(match)
        return match

    @staticmethod
    def _apply_filters(statement, tenant_id: str, filters: MatchFilters):
        statement = statement.where(ProductMatch.tenant_id == tenant_id)
        if filters.local_product_id:
            statement = statement.where(ProductMatch.local_product_id == filters.local_product_id)
        if filters.external_key:
            statement = statement.where(ProductMatch.external_key == filters.external_key)
        if filters.source_id:
            statement = statement.where(ProductMatch.source_id == filters.source_id)
        if filters.reviewed_by:
            statement = statement.where(ProductMatch.reviewed_by == filters.reviewed_by)
        if filters.status:
            statement = statement.where(ProductMatch.status == filters.status)
        return statement
