"""Similarity scoring for product matching.

Pure functions comparing a local product with an external listing across
name, brand, GTIN and price, plus the rules that weight them.
"""

from .normalize import normalize_brand, normalize_gtin, normalize_text
from .rules import DEFAULT_RULE, FieldWeights, MatchingRule, validate_rule
from .similarity import (
    SimilarityBreakdown,
    SimilarityResult,
    brand_similarity,
    candidate_tier,
    gtin_similarity,
    name_similarity,
    price_delta_pct,
    price_similarity,
    product_similarity,
)

__all__ = [
    "normalize_text",
    "normalize_brand",
    "normalize_gtin",
    "MatchingRule",
    "FieldWeights",
    "DEFAULT_RULE",
    "validate_rule",
    "SimilarityBreakdown",
    "SimilarityResult",
    "name_similarity",
    "brand_similarity",
    "gtin_similarity",
    "price_similarity",
    "price_delta_pct",
    "product_similarity",
    "candidate_tier",
]
