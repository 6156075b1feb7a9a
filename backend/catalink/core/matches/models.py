"""Match decision inputs, views and the review list variant."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from catalink.core.candidates.models import Candidate

DecisionStatus = Literal["matched", "not_matched"]
MatchStatus = Literal["matched", "not_matched", "superseded"]


class MatchInput(BaseModel):
    """Operator decision about one candidate.

    Values are checked by MatchLifecycle, which raises InvalidInput, so this
    model stays permissive on ranges.
    """

    local_product_id: str
    external_key: str
    source_code: str
    score: float
    price_delta_pct: float | None = None
    rule_id: str
    session_id: str
    status: str = "matched"
    notes: str | None = None


class MatchFilters(BaseModel):
    """Optional filters for match listings. The tenant always comes from the context."""

    local_product_id: str | None = None
    external_key: str | None = None
    source_id: str | None = None
    reviewed_by: str | None = None
    status: MatchStatus | None = None


class MatchView(BaseModel):
    """Read-only view of a ProductMatch row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    local_product_id: str
    external_key: str
    source_id: str
    score: float
    price_delta_pct: float | None = None
    rule_id: str
    session_id: str
    status: MatchStatus
    reviewed_by: str | None = None
    reviewed_at: int | None = None
    notes: str | None = None
    version: int
    created_at: int
    updated_at: int


class MatchPage(BaseModel):
    """One page of match rows, newest first."""

    items: list[MatchView]
    total: int
    limit: int
    offset: int


class ExistingMatch(BaseModel):
    """Review list entry backed by a recorded decision."""

    kind: Literal["existing"] = "existing"
    source_code: str | None = None
    match: MatchView


class ProposedCandidate(BaseModel):
    """Review list entry backed by a fresh candidate."""

    kind: Literal["proposed"] = "proposed"
    candidate: Candidate


ReviewItem = Annotated[Union[ExistingMatch, ProposedCandidate], Field(discriminator="kind")]


def build_review_items(
    active_matches: list[MatchView],
    candidates: list[Candidate],
    source_codes: dict[str, str],
) -> list[ExistingMatch | ProposedCandidate]:
    """Blend recorded decisions and new candidates into one review list.

    Existing matches come first (in the given order). Candidates whose
    (source, external key) pair already has a decision are left out.

    Args:
        active_matches: Active decisions for the product
        candidates: Ranked candidates for the product
        source_codes: Mapping of source id to source code
    """
    items: list[ExistingMatch | ProposedCandidate] = []
    decided: set[tuple[str, str]] = set()

    for match in active_matches:
        code = source_codes.get(match.source_id)
        items.append(ExistingMatch(source_code=code, match=match))
        if code is not None:
            decided.add((code, match.external_key))

    for candidate in candidates:
        if (candidate.source_code, candidate.external_key) in decided:
            continue
        items.append(ProposedCandidate(candidate=candidate))

    return items
