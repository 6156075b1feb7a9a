"""Multi-field similarity between a local product and an external listing.

All functions are pure and deterministic and return values in [0, 1].

Field scores:
- name: token-set overlap (word-order insensitive) blended with a
  character-level metric on the compacted strings, so "Fox 3" ~ "Fox3"
- brand: exact after normalization, fuzzy above a floor, otherwise exactly 0
- gtin: 1 when both identifiers are present and equal, else 0
- price: decreasing with the relative price gap, neutral when unknown
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import BaseModel, Field
from rapidfuzz import fuzz
from rapidfuzz.distance import Indel, JaroWinkler, Levenshtein

from .normalize import compact, normalize_brand, normalize_gtin, normalize_text
from .rules import DEFAULT_RULE, MatchingRule

# Name blend
NAME_TOKEN_WEIGHT = 0.6
NAME_CHAR_WEIGHT = 0.4

# Below this fuzzy score two brands are considered different
BRAND_FUZZY_FLOOR = 0.85

# Price curve (relative difference against the mean of both prices)
PRICE_PERFECT_PCT = 0.10
PRICE_GOOD_PCT = 0.30
PRICE_GOOD_FLOOR_SCORE = 0.4
PRICE_POOR_SCORE = 0.2
PRICE_MISSING_SCORE = 0.5

# Tiers shown to operators
HIGH_CONFIDENCE_THRESHOLD = 0.85
REVIEW_THRESHOLD = 0.70

ACCESSORY_TERMS = frozenset(
    {"cover", "case", "strap", "belt", "adapter", "charger", "cable", "insert", "footmuff"}
)

# Gear where a differing model number means a different product
CORE_GEAR_TERMS = ("stroller", "car seat", "crib", "highchair")

_PACK_RE = re.compile(r"\b(\d+)\s*(?:pack|count|pcs|pieces)\b")
_MODEL_RE = re.compile(r"[A-Z]\d{2,}")

_CHAR_METRICS: dict[str, Callable[[str, str], float]] = {
    "jarowinkler": JaroWinkler.normalized_similarity,
    "levenshtein": Levenshtein.normalized_similarity,
    "ratio": Indel.normalized_similarity,
}


class ProductLike(Protocol):
    """Anything exposing the comparable product fields."""

    title: str
    brand: str | None
    gtin: str | None
    price: float | None


class SimilarityBreakdown(BaseModel):
    """Per-field similarity scores."""

    name: float = Field(..., ge=0.0, le=1.0, description="Title similarity")
    brand: float = Field(..., ge=0.0, le=1.0, description="Brand similarity")
    gtin: float = Field(..., ge=0.0, le=1.0, description="1 when identifiers are equal")
    price: float = Field(..., ge=0.0, le=1.0, description="Price proximity")


@dataclass
class SimilarityResult:
    """Outcome of comparing two products."""

    breakdown: SimilarityBreakdown
    overall: float
    drivers: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)

    @property
    def explanation(self) -> list[str]:
        """Fields that drove the score, strongest first, followed by reasons."""
        return [f"driver:{name}" for name in self.drivers] + self.reasons


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def name_similarity(a: str | None, b: str | None, algorithm: str = "jarowinkler") -> float:
    """Similarity between two product titles.

    Returns 0 when either title is empty after normalization.
    """
    left = normalize_text(a)
    right = normalize_text(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0

    token_score = fuzz.token_set_ratio(left, right) / 100.0
    char_metric = _CHAR_METRICS.get(algorithm, JaroWinkler.normalized_similarity)
    char_score = char_metric(compact(left), compact(right))

    return _clamp(NAME_TOKEN_WEIGHT * token_score + NAME_CHAR_WEIGHT * char_score)


def brand_similarity(a: str | None, b: str | None, floor: float = BRAND_FUZZY_FLOOR) -> float:
    """Similarity between two brand names.

    Brand is treated as a near-binary disambiguator: anything below ``floor``
    scores exactly 0.
    """
    left = normalize_brand(a)
    right = normalize_brand(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0

    score = JaroWinkler.normalized_similarity(left, right)
    return score if score >= floor else 0.0


def gtin_similarity(a: str | None, b: str | None) -> float:
    """1.0 when both GTINs are present and equal after normalization, else 0.0."""
    left = normalize_gtin(a)
    right = normalize_gtin(b)
    if left is None or right is None:
        return 0.0
    return 1.0 if left == right else 0.0


def relative_price_difference(a: float | None, b: float | None) -> float | None:
    """Relative gap |a - b| / mean(a, b), or None when a price is unknown."""
    if a is None or b is None or a <= 0 or b <= 0:
        return None
    return abs(a - b) / ((a + b) / 2.0)


def price_similarity(a: float | None, b: float | None) -> float:
    """Price proximity score.

    1.0 within 10%, linear down to 0.4 at 30%, 0.2 beyond that.
    Missing or non-positive prices are neutral (0.5).
    """
    diff = relative_price_difference(a, b)
    if diff is None:
        return PRICE_MISSING_SCORE
    if diff <= PRICE_PERFECT_PCT:
        return 1.0
    if diff <= PRICE_GOOD_PCT:
        span = (diff - PRICE_PERFECT_PCT) / (PRICE_GOOD_PCT - PRICE_PERFECT_PCT)
        return 1.0 - span * (1.0 - PRICE_GOOD_FLOOR_SCORE)
    return PRICE_POOR_SCORE


def price_delta_pct(local_price: float | None, external_price: float | None) -> float | None:
    """Signed percentage by which the external price differs from the local price."""
    if local_price is None or external_price is None or local_price <= 0:
        return None
    return round((external_price - local_price) / local_price * 100.0, 2)


def has_accessory_mismatch(a: str | None, b: str | None) -> bool:
    """True when exactly one title names an accessory (cover, case, adapter...)."""
    left = ACCESSORY_TERMS.intersection(normalize_text(a).split())
    right = ACCESSORY_TERMS.intersection(normalize_text(b).split())
    return bool(left) != bool(right)


def pack_size(title: str | None) -> int | None:
    """Quantity named in a title ("2 Pack", "24 count", "3pcs"), if any."""
    found = _PACK_RE.search(normalize_text(title))
    return int(found.group(1)) if found else None


def has_pack_mismatch(a: str | None, b: str | None) -> bool:
    """True when the titles name different pack sizes, or only one names a size."""
    return pack_size(a) != pack_size(b)


def has_model_mismatch(a: str | None, b: str | None) -> bool:
    """True when core gear titles both carry model numbers and none are shared.

    Model numbers are an uppercase letter followed by two or more digits
    ("G360", "V2025"). Titles outside core gear never mismatch.
    """
    text = f"{normalize_text(a)} {normalize_text(b)}"
    if not any(term in text for term in CORE_GEAR_TERMS):
        return False

    left = set(_MODEL_RE.findall(a or ""))
    right = set(_MODEL_RE.findall(b or ""))
    return bool(left) and bool(right) and not left & right


def candidate_tier(overall: float) -> str:
    """Bucket a score into high / review / low."""
    if overall >= HIGH_CONFIDENCE_THRESHOLD:
        return "high"
    if overall >= REVIEW_THRESHOLD:
        return "review"
    return "low"


def _brand_reason(p1: ProductLike, p2: ProductLike, score: float) -> str:
    if not p1.brand or not p2.brand:
        return "brand:missing"
    if score == 1.0:
        return "brand:exact"
    if score > 0.0:
        return f"brand:fuzzy-{score:.2f}"
    return "brand:mismatch"


def _gtin_reason(p1: ProductLike, p2: ProductLike, score: float) -> str:
    if score == 1.0:
        return "gtin:match"
    if normalize_gtin(p1.gtin) is None or normalize_gtin(p2.gtin) is None:
        return "gtin:missing"
    return "gtin:mismatch"


def _price_reason(p1: ProductLike, p2: ProductLike) -> str:
    diff = relative_price_difference(p1.price, p2.price)
    if diff is None:
        return "price:missing"
    pct = round(diff * 100)
    if diff <= PRICE_GOOD_PCT:
        return f"price:within-{pct}%"
    return f"price:diff-{pct}%"


def product_similarity(
    p1: ProductLike,
    p2: ProductLike,
    rule: MatchingRule | None = None,
) -> SimilarityResult:
    """Compare two products field by field and combine the scores.

    ``overall`` is the weighted sum of the breakdown normalized by the rule's
    weight total and clamped to [0, 1]. Absent brand or GTIN contributes 0;
    absent price contributes the neutral price score, so a matching title
    alone still yields a non-trivial overall score.

    Args:
        p1: Local product
        p2: External listing (or any other product)
        rule: Matching rule; defaults to DEFAULT_RULE (0.4/0.3/0.2/0.1)

    Returns:
        SimilarityResult with breakdown, overall score and explanation
    """
    rule = rule or DEFAULT_RULE

    breakdown = SimilarityBreakdown(
        name=name_similarity(p1.title, p2.title, rule.algorithm),
        brand=brand_similarity(p1.brand, p2.brand),
        gtin=gtin_similarity(p1.gtin, p2.gtin),
        price=price_similarity(p1.price, p2.price),
    )

    weights = rule.weights.as_dict()
    scores = breakdown.model_dump()
    contributions = {name: weights[name] * scores[name] for name in weights}
    overall = _clamp(sum(contributions.values()) / rule.weights.total)

    drivers = [
        name
        for name, value in sorted(contributions.items(), key=lambda item: (-item[1], item[0]))
        if value > 0
    ]
    reasons = [
        f"name:{breakdown.name:.2f}",
        _brand_reason(p1, p2, breakdown.brand),
        _gtin_reason(p1, p2, breakdown.gtin),
        _price_reason(p1, p2),
    ]
    if has_accessory_mismatch(p1.title, p2.title):
        reasons.append("accessory:mismatch")
    if has_pack_mismatch(p1.title, p2.title):
        reasons.append("pack:mismatch")
    if has_model_mismatch(p1.title, p2.title):
        reasons.append("model:mismatch")

    return SimilarityResult(
        breakdown=breakdown,
        overall=overall,
        drivers=drivers,
        reasons=reasons,
    )
