"""Persistence of matching rules."""

from __future__ import annotations

import structlog
from sqlalchemy import update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.errors import NotFound
from catalink.db.models import ProductMatchRule

from .rules import FieldWeights, MatchingRule

logger = structlog.get_logger("catalink.matching.store")


def rule_from_record(record: ProductMatchRule) -> MatchingRule:
    """Build an immutable MatchingRule from its table row."""
    return MatchingRule(
        id=record.id,
        name=record.name,
        weights=FieldWeights(
            name=record.weight_name,
            brand=record.weight_brand,
            gtin=record.weight_gtin,
            price=record.weight_price,
        ),
        price_band_pct=record.price_band_pct,
        min_score=record.min_score,
        algorithm=record.algorithm,  # type: ignore[arg-type]
        is_default=record.is_default,
    )


class SQLRuleStore:
    """Rules stored in product_match_rules.

    Rows are never edited: a referenced rule must keep producing the same scores.
    """

    def __init__(self, session: SQLModelAsyncSession) -> None:
        self.session = session

    async def get(self, rule_id: str) -> MatchingRule:
        """Raises NotFound when the rule does not exist."""
        record = await self.session.get(ProductMatchRule, rule_id)
        if record is None:
            raise NotFound(f"Rule '{rule_id}' not found", rule_id=rule_id)
        return rule_from_record(record)

    async def get_default(self) -> MatchingRule:
        """The rule flagged as default. Raises NotFound when none is flagged."""
        result = await self.session.exec(
            select(ProductMatchRule)
            .where(col(ProductMatchRule.is_default).is_(True))
            .order_by(col(ProductMatchRule.created_at).desc())
        )
        record = result.first()
        if record is None:
            raise NotFound("No default rule configured")
        return rule_from_record(record)

    async def list(self) -> list[MatchingRule]:
        result = await self.session.exec(
            select(ProductMatchRule).order_by(col(ProductMatchRule.name))
        )
        return [rule_from_record(record) for record in result.all()]

    async def create(
        self,
        name: str,
        weights: FieldWeights | None = None,
        price_band_pct: float = 15.0,
        min_score: float = 0.65,
        algorithm: str = "jarowinkler",
        is_default: bool = False,
    ) -> MatchingRule:
        """Validate and store a new rule.

        Flagging a rule as default clears the flag on every other rule.

        Raises:
            InvalidInput: Weights or thresholds are out of range
        """
        weights = weights or FieldWeights()
        record = ProductMatchRule(
            name=name,
            weight_name=weights.name,
            weight_brand=weights.brand,
            weight_gtin=weights.gtin,
            weight_price=weights.price,
            price_band_pct=price_band_pct,
            min_score=min_score,
            algorithm=algorithm,
            is_default=is_default,
        )
        # Validates before anything is written
        rule_from_record(record)

        if is_default:
            await self.session.execute(
                update(ProductMatchRule)
                .where(col(ProductMatchRule.is_default).is_(True))
                .values(is_default=False)
            )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)

        logger.info("Rule created", rule_id=record.id, name=name, is_default=is_default)
        return rule_from_record(record)

    async def ensure_default(self) -> MatchingRule:
        """Return the default rule, creating one with stock weights on an empty table."""
        try:
            return await self.get_default()
        except NotFound:
            logger.info("No default rule found, creating one with stock weights")
        return await self.create(name="Default", is_default=True)
