"""Database models for Catalink.

All SQLModel models should be defined here and exported in db/__init__.py.

Models follow these patterns:
- Use singular nouns: ProductMatch, ProductMatchSource
- Table names use plural, snake_case: product_matches, product_match_sources
- Use uuid.uuid4().hex for IDs (32 character hex strings)
- Include created_at and updated_at timestamps (unix seconds)
- Use proper indexes on foreign keys and frequently queried fields
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from sqlalchemy import JSON, Column, Index, Text, UniqueConstraint, text
from sqlmodel import Field, SQLModel

metadata = SQLModel.metadata

MATCH_STATUS_MATCHED = "matched"
MATCH_STATUS_NOT_MATCHED = "not_matched"
MATCH_STATUS_SUPERSEDED = "superseded"
ACTIVE_MATCH_STATUSES = (MATCH_STATUS_MATCHED, MATCH_STATUS_NOT_MATCHED)

_ACTIVE_ROW_PREDICATE = text("status != 'superseded'")


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> int:
    return int(time.time())


class ProductMatchSource(SQLModel, table=True):
    """External source (marketplace, competitor site) registered by an administrator."""

    __tablename__ = "product_match_sources"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    code: str = Field(unique=True)  # Short code, e.g. "AMZ"

    # Source-specific configuration stored as JSON
    # For table sources: {"kind": "table"}
    # For http sources: {"kind": "http", "base_url": "...", "api_key": "...", "listings_path": "/listings"}
    config: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    is_active: bool = True

    created_at: int = Field(default_factory=_now)
    updated_at: int = Field(default_factory=_now)

    __table_args__ = (Index("idx_product_match_sources_active", "is_active"),)


class ProductMatchRule(SQLModel, table=True):
    """Named scoring configuration: field weights and thresholds."""

    __tablename__ = "product_match_rules"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    weight_name: float = 0.4
    weight_brand: float = 0.3
    weight_gtin: float = 0.2
    weight_price: float = 0.1
    price_band_pct: float = 15.0
    min_score: float = 0.65
    algorithm: str = "jarowinkler"
    is_default: bool = False

    created_at: int = Field(default_factory=_now)
    updated_at: int = Field(default_factory=_now)

    __table_args__ = (Index("idx_product_match_rules_default", "is_default"),)


class ProductMatch(SQLModel, table=True):
    """Durable operator decision linking a local product to an external listing.

    At most one row per (tenant_id, external_key, source_id) may hold an active
    status (matched or not_matched). Superseded rows are history and exempt.
    """

    __tablename__ = "product_matches"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str
    local_product_id: str
    external_key: str
    source_id: str = Field(foreign_key="product_match_sources.id")
    score: float
    price_delta_pct: float | None = None
    rule_id: str
    session_id: str
    status: str  # "matched", "not_matched", "superseded"
    reviewed_by: str | None = None
    reviewed_at: int | None = None
    notes: str | None = Field(default=None, sa_column=Column(Text))
    version: int = 1

    created_at: int = Field(default_factory=_now)
    updated_at: int = Field(default_factory=_now)

    __table_args__ = (
        Index(
            "uq_product_matches_active_pair",
            "tenant_id",
            "external_key",
            "source_id",
            unique=True,
            sqlite_where=_ACTIVE_ROW_PREDICATE,
            postgresql_where=_ACTIVE_ROW_PREDICATE,
        ),
        Index("idx_product_matches_local_product", "tenant_id", "local_product_id"),
        Index("idx_product_matches_status", "status"),
        Index("idx_product_matches_created", "created_at"),
    )


class ProductMatchCandidate(SQLModel, table=True):
    """Audit snapshot of a candidate shown to an operator."""

    __tablename__ = "product_match_candidates"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    tenant_id: str
    local_product_id: str
    external_key: str
    source_code: str
    rule_id: str
    score: float
    tier: str
    breakdown: dict[str, float] = Field(default_factory=dict, sa_column=Column(JSON))
    explanation: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    generated_at: int = Field(default_factory=_now)

    __table_args__ = (
        Index("idx_product_match_candidates_product", "tenant_id", "local_product_id"),
        Index("idx_product_match_candidates_generated", "generated_at"),
    )


class LocalProduct(SQLModel, table=True):
    """Product from the merchant's own catalog."""

    __tablename__ = "local_products"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    title: str
    brand: str | None = None
    category_id: str | None = None
    price: float | None = None
    gtin: str | None = None
    code: str | None = None  # Merchant SKU / product code

    created_at: int = Field(default_factory=_now)
    updated_at: int = Field(default_factory=_now)

    __table_args__ = (
        Index("idx_local_products_brand", "brand"),
        Index("idx_local_products_category", "category_id"),
    )


class ExternalProduct(SQLModel, table=True):
    """Listing held for a table-backed external source."""

    __tablename__ = "external_products"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    source_code: str
    external_key: str
    title: str
    brand: str | None = None
    category_id: str | None = None
    price: float | None = None
    gtin: str | None = None
    url: str | None = None

    created_at: int = Field(default_factory=_now)
    updated_at: int = Field(default_factory=_now)

    __table_args__ = (
        UniqueConstraint("source_code", "external_key", name="uq_external_products_key"),
        Index("idx_external_products_source", "source_code"),
        Index("idx_external_products_brand", "brand"),
        Index("idx_external_products_category", "category_id"),
    )
