"""Candidate generation: fetch, pre-filter, score and rank external listings."""

from .models import (
    Candidate,
    CandidateFilter,
    CandidateResult,
    CandidateSummary,
    SkippedSource,
    summarize_candidates,
)
from .service import CandidateGenerator, within_price_band

__all__ = [
    "Candidate",
    "CandidateFilter",
    "CandidateResult",
    "CandidateSummary",
    "SkippedSource",
    "summarize_candidates",
    "CandidateGenerator",
    "within_price_band",
]
