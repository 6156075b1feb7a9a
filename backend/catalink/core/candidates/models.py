"""Candidate generation inputs and outputs."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from catalink.core.matching.similarity import SimilarityBreakdown

Tier = Literal["high", "review", "low"]


class CandidateFilter(BaseModel):
    """Narrowing options for one candidate generation call."""

    sources: list[str] | None = Field(
        None, description="Source codes to query (intersected with active sources)"
    )
    brand: str | None = Field(None, description="Only listings of this brand")
    category_id: str | None = Field(None, description="Only listings in this category")
    price_band_pct: float | None = Field(
        None,
        ge=0,
        description="Allowed price deviation in percent (rule's band, 15 by default, when unset)",
    )
    limit: int = Field(25, ge=1, description="Maximum number of candidates returned")


class Candidate(BaseModel):
    """Scored, unconfirmed pairing of a local product and an external listing."""

    local_product_id: str
    external_key: str
    source_code: str
    title: str
    brand: str | None = None
    price: float | None = None
    url: str | None = None
    overall: float = Field(..., ge=0.0, le=1.0)
    breakdown: SimilarityBreakdown
    explanation: list[str] = Field(default_factory=list)
    tier: Tier
    rule_id: str
    price_delta_pct: float | None = Field(
        None, description="Signed percentage difference of the listing price vs the local price"
    )
    generated_at: int


class SkippedSource(BaseModel):
    """Source whose listings are absent from the result."""

    code: str
    reason: str


class CandidateSummary(BaseModel):
    """Candidate counts per tier."""

    total: int = 0
    high: int = 0
    review: int = 0
    low: int = 0


class CandidateResult(BaseModel):
    """Ranked shortlist for one local product."""

    local_product_id: str
    rule_id: str
    candidates: list[Candidate] = Field(default_factory=list)
    skipped_sources: list[SkippedSource] = Field(default_factory=list)
    queried_sources: list[str] = Field(default_factory=list)
    summary: CandidateSummary = Field(default_factory=CandidateSummary)
    generated_at: int


def summarize_candidates(candidates: list[Candidate]) -> CandidateSummary:
    """Count candidates per tier."""
    summary = CandidateSummary(total=len(candidates))
    for candidate in candidates:
        setattr(summary, candidate.tier, getattr(summary, candidate.tier) + 1)
    return summary
