"""Catalog data passed between collaborators and the matching engine."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Product(BaseModel):
    """Product from the merchant's own catalog (read-only to the engine)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    brand: str | None = None
    category_id: str | None = None
    price: float | None = None
    gtin: str | None = Field(None, description="GTIN/EAN/UPC identifier")
    code: str | None = Field(None, description="Merchant product code")


class ProductPage(BaseModel):
    """One page of local products."""

    items: list[Product] = Field(default_factory=list)
    total: int = 0
    limit: int
    offset: int


class ExternalListing(BaseModel):
    """Listing on an external source, supplied per request."""

    model_config = ConfigDict(from_attributes=True)

    source_code: str
    external_key: str = Field(..., min_length=1, description="Unique within the source")
    title: str
    brand: str | None = None
    category_id: str | None = None
    price: float | None = None
    gtin: str | None = None
    url: str | None = None


class MatchSource(BaseModel):
    """Registered external source."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    code: str
    config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    @property
    def kind(self) -> str:
        """Catalog backend serving this source ("table" or "http")."""
        return str(self.config.get("kind", "table"))


class FilterOptions(BaseModel):
    """Distinct values operators can filter candidates by."""

    brands: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
