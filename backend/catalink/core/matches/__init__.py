"""Match decisions: confirm, re-review and supersede operator links."""

from .lifecycle import MatchLifecycle, validate_match_input
from .models import (
    ExistingMatch,
    MatchFilters,
    MatchInput,
    MatchPage,
    MatchView,
    ProposedCandidate,
    ReviewItem,
    build_review_items,
)
from .store import MatchStore, SQLMatchStore

__all__ = [
    "MatchLifecycle",
    "validate_match_input",
    "ExistingMatch",
    "MatchFilters",
    "MatchInput",
    "MatchPage",
    "MatchView",
    "ProposedCandidate",
    "ReviewItem",
    "build_review_items",
    "MatchStore",
    "SQLMatchStore",
]
