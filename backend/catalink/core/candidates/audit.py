"""Optional audit trail of candidates shown to operators."""

from __future__ import annotations

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.candidates.models import CandidateResult
from catalink.db.models import ProductMatchCandidate

logger = structlog.get_logger("catalink.candidates.audit")


class SQLCandidateAudit:
    """Persists candidate snapshots to product_match_candidates."""

    def __init__(self, session: SQLModelAsyncSession) -> None:
        self.session = session

    async def record(self, tenant_id: str, result: CandidateResult) -> int:
        """Store every candidate of ``result``. Returns the number of rows written."""
        for candidate in result.candidates:
            self.session.add(
                ProductMatchCandidate(
                    tenant_id=tenant_id,
                    local_product_id=candidate.local_product_id,
                    external_key=candidate.external_key,
                    source_code=candidate.source_code,
                    rule_id=candidate.rule_id,
                    score=candidate.overall,
                    tier=candidate.tier,
                    breakdown=candidate.breakdown.model_dump(),
                    explanation=list(candidate.explanation),
                    generated_at=candidate.generated_at,
                )
            )
        await self.session.commit()

        logger.debug(
            "Candidates recorded",
            tenant_id=tenant_id,
            product_id=result.local_product_id,
            count=len(result.candidates),
        )
        return len(result.candidates)

    async def list_for_product(
        self, tenant_id: str, local_product_id: str, limit: int = 100
    ) -> list[ProductMatchCandidate]:
        """Most recent audit rows for a product."""
        result = await self.session.exec(
            select(ProductMatchCandidate)
            .where(ProductMatchCandidate.tenant_id == tenant_id)
            .where(ProductMatchCandidate.local_product_id == local_product_id)
            .order_by(col(ProductMatchCandidate.generated_at).desc(), col(ProductMatchCandidate.score).desc())
            .limit(limit)
        )
        return list(result.all())
