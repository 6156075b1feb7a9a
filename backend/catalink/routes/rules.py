"""Matching rule API routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.dependencies import http_error
from catalink.core.errors import CatalinkError
from catalink.core.matching.rules import Algorithm, FieldWeights, MatchingRule
from catalink.core.matching.store import SQLRuleStore

logger = structlog.get_logger("catalink.routes.rules")


class WeightsPayload(BaseModel):
    name: float = 0.4
    brand: float = 0.3
    gtin: float = 0.2
    price: float = 0.1


class RuleCreate(BaseModel):
    name: str = Field(..., min_length=1)
    weights: WeightsPayload = Field(default_factory=WeightsPayload)
    price_band_pct: float = Field(15.0, description="Pre-filter band around the local price, in %")
    min_score: float = Field(0.65, description="Candidates scoring below are dropped")
    algorithm: Algorithm = "jarowinkler"
    is_default: bool = False


class RuleResponse(BaseModel):
    id: str
    name: str
    weights: WeightsPayload
    price_band_pct: float
    min_score: float
    algorithm: str
    is_default: bool

    @classmethod
    def from_rule(cls, rule: MatchingRule) -> RuleResponse:
        return cls(
            id=rule.id,
            name=rule.name,
            weights=WeightsPayload(**rule.weights.as_dict()),
            price_band_pct=rule.price_band_pct,
            min_score=rule.min_score,
            algorithm=rule.algorithm,
            is_default=rule.is_default,
        )


def create_rules_router(
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]],
) -> APIRouter:
    """Create rules router.

    Args:
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    logger.debug("Creating rules router")
    router_instance = APIRouter(prefix="/api")

    @router_instance.get("/rules", response_model=list[RuleResponse])
    async def list_rules(
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> list[RuleResponse]:
        return [RuleResponse.from_rule(rule) for rule in await SQLRuleStore(session).list()]

    @router_instance.post("/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
    async def create_rule(
        payload: RuleCreate,
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> RuleResponse:
        """Create a rule. Rules are immutable once created."""
        try:
            rule = await SQLRuleStore(session).create(
                name=payload.name,
                weights=FieldWeights(**payload.weights.model_dump()),
                price_band_pct=payload.price_band_pct,
                min_score=payload.min_score,
                algorithm=payload.algorithm,
                is_default=payload.is_default,
            )
        except CatalinkError as e:
            raise http_error(e) from e
        return RuleResponse.from_rule(rule)

    @router_instance.get("/rules/{rule_id}", response_model=RuleResponse)
    async def get_rule(
        rule_id: str,
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> RuleResponse:
        try:
            return RuleResponse.from_rule(await SQLRuleStore(session).get(rule_id))
        except CatalinkError as e:
            raise http_error(e) from e

    return router_instance
