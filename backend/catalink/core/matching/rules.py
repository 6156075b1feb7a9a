"""Matching rules - scoring weights and thresholds."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from catalink.core.errors import InvalidInput

Algorithm = Literal["jarowinkler", "levenshtein", "ratio"]
ALGORITHMS: tuple[str, ...] = ("jarowinkler", "levenshtein", "ratio")

DEFAULT_RULE_ID = "default"


@dataclass(frozen=True)
class FieldWeights:
    """Per-field weights. The overall score is normalized by their sum."""

    name: float = 0.4
    brand: float = 0.3
    gtin: float = 0.2
    price: float = 0.1

    @property
    def total(self) -> float:
        return self.name + self.brand + self.gtin + self.price

    def as_dict(self) -> dict[str, float]:
        return {"name": self.name, "brand": self.brand, "gtin": self.gtin, "price": self.price}


@dataclass(frozen=True)
class MatchingRule:
    """Named configuration applied when scoring and filtering candidates.

    A rule is immutable: once a persisted match references it, changing the
    weights means creating a new rule.
    """

    id: str
    name: str = "Default"
    weights: FieldWeights = field(default_factory=FieldWeights)
    price_band_pct: float = 15.0
    min_score: float = 0.65
    algorithm: Algorithm = "jarowinkler"
    is_default: bool = False

    def __post_init__(self) -> None:
        validate_rule(self)


def validate_rule(rule: MatchingRule) -> None:
    """Raise InvalidInput when a rule cannot produce scores in [0, 1]."""
    weights = rule.weights.as_dict()
    negative = [name for name, value in weights.items() if value < 0]
    if negative:
        raise InvalidInput("Rule weights must not be negative", rule_id=rule.id, fields=negative)
    if rule.weights.total <= 0:
        raise InvalidInput("Rule weights must sum to a positive total", rule_id=rule.id)
    if not 0.0 <= rule.min_score <= 1.0:
        raise InvalidInput(
            "Rule min_score must be within [0, 1]", rule_id=rule.id, min_score=rule.min_score
        )
    if rule.price_band_pct < 0:
        raise InvalidInput(
            "Rule price_band_pct must not be negative",
            rule_id=rule.id,
            price_band_pct=rule.price_band_pct,
        )
    if rule.algorithm not in ALGORITHMS:
        raise InvalidInput(
            f"Unknown algorithm '{rule.algorithm}'", rule_id=rule.id, allowed=list(ALGORITHMS)
        )


DEFAULT_RULE = MatchingRule(id=DEFAULT_RULE_ID, is_default=True)
