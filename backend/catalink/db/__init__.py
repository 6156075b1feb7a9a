"""Database models and utilities.

This module exports all database models and provides database-related utilities.
"""

from __future__ import annotations

from catalink.db.models import (
    ACTIVE_MATCH_STATUSES,
    MATCH_STATUS_MATCHED,
    MATCH_STATUS_NOT_MATCHED,
    MATCH_STATUS_SUPERSEDED,
    ExternalProduct,
    LocalProduct,
    ProductMatch,
    ProductMatchCandidate,
    ProductMatchRule,
    ProductMatchSource,
    metadata,
)

__all__ = [
    "metadata",
    "ACTIVE_MATCH_STATUSES",
    "MATCH_STATUS_MATCHED",
    "MATCH_STATUS_NOT_MATCHED",
    "MATCH_STATUS_SUPERSEDED",
    "ProductMatchSource",
    "ProductMatchRule",
    "ProductMatch",
    "ProductMatchCandidate",
    "LocalProduct",
    "ExternalProduct",
]
