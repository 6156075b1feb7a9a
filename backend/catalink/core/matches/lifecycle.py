"""Match decision lifecycle.

Per (tenant, external key, source) pair:

    unset -> matched | not_matched  (active, updated in place on re-review)
    matched | not_matched -> superseded  (terminal, row kept as history)

A confirm after a remove starts a new active row; the superseded row stays
as a separate record.
"""

from __future__ import annotations

import math
import time

import structlog

from catalink.core.catalog.base import SourceRegistry
from catalink.core.context import RequestContext
from catalink.core.errors import Conflict, InvalidInput, NotFound, Unauthorized
from catalink.core.matches.models import MatchFilters, MatchInput, MatchPage, MatchView
from catalink.core.matches.store import MatchStore
from catalink.core.metrics import match_conflicts_total, match_decisions_total
from catalink.db.models import (
    ACTIVE_MATCH_STATUSES,
    MATCH_STATUS_MATCHED,
    MATCH_STATUS_SUPERSEDED,
    ProductMatch,
)

logger = structlog.get_logger("catalink.matches.lifecycle")

MAX_PAGE_SIZE = 500


def validate_match_input(match_input: MatchInput) -> None:
    """Reject malformed decisions before anything is written.

    Raises:
        InvalidInput: A field is missing, malformed or out of range
    """
    for field_name in ("local_product_id", "external_key", "source_code", "rule_id", "session_id"):
        value = getattr(match_input, field_name)
        if not value or not value.strip():
            raise InvalidInput(f"{field_name} is required", field=field_name)

    if not math.isfinite(match_input.score) or not 0.0 <= match_input.score <= 1.0:
        raise InvalidInput(
            "score must be within [0, 1]", field="score", value=match_input.score
        )

    if match_input.price_delta_pct is not None and not math.isfinite(match_input.price_delta_pct):
        raise InvalidInput("price_delta_pct must be a finite number", field="price_delta_pct")

    if match_input.status not in ACTIVE_MATCH_STATUSES:
        raise InvalidInput(
            f"status must be one of {', '.join(ACTIVE_MATCH_STATUSES)}",
            field="status",
            value=match_input.status,
        )


def _require_reviewer(reviewer_id: str | None) -> str:
    if not reviewer_id or not reviewer_id.strip():
        raise Unauthorized("A reviewer identity is required to record decisions")
    return reviewer_id


class MatchLifecycle:
    """Creates, re-reviews and supersedes match decisions."""

    def __init__(self, store: MatchStore, source_registry: SourceRegistry) -> None:
        self.store = store
        self.source_registry = source_registry

    async def confirm(
        self,
        context: RequestContext,
        match_input: MatchInput,
        reviewer_id: str | None,
    ) -> MatchView:
        """Record a matched/not_matched decision for a pair.

        Updates the active row in place (version + 1) when one exists,
        otherwise inserts a row with version 1. If a concurrent confirm wins
        the insert, the decision is applied once as an update to that row.

        Raises:
            Unauthorized: No reviewer identity
            InvalidInput: Malformed input
            NotFound: Unknown or inactive source
            Conflict: The update fallback failed as well
        """
        reviewer_id = _require_reviewer(reviewer_id)
        validate_match_input(match_input)

        source = await self.source_registry.get_by_code(match_input.source_code)
        if source is None:
            raise NotFound(
                f"Source '{match_input.source_code}' not found", source_code=match_input.source_code
            )

        log = logger.bind(
            tenant_id=context.tenant_id,
            external_key=match_input.external_key,
            source=source.code,
            status=match_input.status,
            reviewer_id=reviewer_id,
        )

        existing = await self.store.find_active(
            context.tenant_id, match_input.external_key, source.id
        )
        if existing is not None:
            updated = await self._apply_update(existing, match_input, reviewer_id)
            log.info("Match decision updated", match_id=updated.id, version=updated.version)
            return MatchView.model_validate(updated)

        now = int(time.time())
        row = ProductMatch(
            tenant_id=context.tenant_id,
            local_product_id=match_input.local_product_id,
            external_key=match_input.external_key,
            source_id=source.id,
            score=match_input.score,
            price_delta_pct=match_input.price_delta_pct,
            rule_id=match_input.rule_id,
            session_id=match_input.session_id,
            status=match_input.status,
            reviewed_by=reviewer_id,
            reviewed_at=now,
            notes=match_input.notes,
            version=1,
            created_at=now,
            updated_at=now,
        )
        try:
            inserted = await self.store.insert(row)
        except Conflict:
            return MatchView.model_validate(
                await self._recover_from_conflict(context, match_input, source.id, reviewer_id)
            )

        match_decisions_total.labels(status=inserted.status, action="created").inc()
        log.info("Match decision created", match_id=inserted.id)
        return MatchView.model_validate(inserted)

    async def remove(
        self,
        context: RequestContext,
        match_id: str,
        reviewer_id: str | None,
    ) -> None:
        """Supersede a decision. The row is kept and can never become active again.

        Raises:
            Unauthorized: No reviewer identity
            NotFound: Unknown match id (or another tenant's)
            InvalidInput: The match is already superseded
        """
        reviewer_id = _require_reviewer(reviewer_id)

        row = await self.store.get(match_id)
        if row is None or row.tenant_id != context.tenant_id:
            raise NotFound(f"Match '{match_id}' not found", match_id=match_id)
        if row.status == MATCH_STATUS_SUPERSEDED:
            raise InvalidInput("Match is already superseded", match_id=match_id)

        row.status = MATCH_STATUS_SUPERSEDED
        row.version += 1
        row.updated_at = int(time.time())
        await self.store.update(row)

        match_decisions_total.labels(status=MATCH_STATUS_SUPERSEDED, action="superseded").inc()
        logger.info(
            "Match superseded",
            match_id=match_id,
            tenant_id=context.tenant_id,
            removed_by=reviewer_id,
        )

    async def list_active_by_local_product(
        self,
        context: RequestContext,
        local_product_id: str,
    ) -> list[MatchView]:
        """Matched rows for a product, best score first."""
        filters = MatchFilters(local_product_id=local_product_id, status=MATCH_STATUS_MATCHED)
        rows = await self.store.query(
            context.tenant_id, filters, limit=MAX_PAGE_SIZE, order="score_desc"
        )
        return [MatchView.model_validate(row) for row in rows]

    async def list(
        self,
        context: RequestContext,
        filters: MatchFilters,
        limit: int = 50,
        offset: int = 0,
    ) -> MatchPage:
        """Filtered, paginated history, newest first.

        Raises:
            InvalidInput: limit outside [1, 500] or negative offset
        """
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise InvalidInput(f"limit must be within [1, {MAX_PAGE_SIZE}]", limit=limit)
        if offset < 0:
            raise InvalidInput("offset must not be negative", offset=offset)

        rows = await self.store.query(context.tenant_id, filters, limit=limit, offset=offset)
        total = await self.store.count(context.tenant_id, filters)
        return MatchPage(
            items=[MatchView.model_validate(row) for row in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def _apply_update(
        self,
        row: ProductMatch,
        match_input: MatchInput,
        reviewer_id: str,
    ) -> ProductMatch:
        now = int(time.time())
        row.score = match_input.score
        row.price_delta_pct = match_input.price_delta_pct
        row.rule_id = match_input.rule_id
        row.session_id = match_input.session_id
        row.status = match_input.status
        row.reviewed_by = reviewer_id
        row.reviewed_at = now
        row.notes = match_input.notes
        row.local_product_id = match_input.local_product_id
        row.version += 1
        row.updated_at = now

        updated = await self.store.update(row)
        match_decisions_total.labels(status=updated.status, action="updated").inc()
        return updated

    async def _recover_from_conflict(
        self,
        context: RequestContext,
        match_input: MatchInput,
        source_id: str,
        reviewer_id: str,
    ) -> ProductMatch:
        """Apply the decision as an update after losing an insert race."""
        existing = await self.store.find_active(context.tenant_id, match_input.external_key, source_id)
        if existing is None:
            match_conflicts_total.labels(outcome="fatal").inc()
            raise Conflict(
                "Active match conflict could not be resolved",
                external_key=match_input.external_key,
                source_code=match_input.source_code,
            )
        try:
            updated = await self._apply_update(existing, match_input, reviewer_id)
        except Conflict:
            match_conflicts_total.labels(outcome="fatal").inc()
            raise

        match_conflicts_total.labels(outcome="recovered").inc()
        logger.info(
            "Match conflict recovered as update",
            match_id=updated.id,
            tenant_id=context.tenant_id,
            external_key=match_input.external_key,
            version=updated.version,
        )
        return updated
