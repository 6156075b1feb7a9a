"""Abstract catalog collaborators used by candidate generation."""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from catalink.core.catalog.models import ExternalListing, MatchSource, Product


class LocalCatalog(ABC):
    """Read access to the merchant's own products."""

    @abstractmethod
    async def get_product(self, product_id: str) -> Product | None:
        """Return the product, or None when it does not exist."""


class SourceRegistry(ABC):
    """Administrator-managed list of external sources."""

    @abstractmethod
    async def list_active_sources(self) -> list[MatchSource]:
        """Return every active source, ordered by code."""

    @abstractmethod
    async def get_by_code(self, code: str) -> MatchSource | None:
        """Return the active source with this code, or None."""


class ExternalCatalog(ABC):
    """Provider of external listings for a source."""

    def __init__(self, name: str) -> None:
        """Initialize external catalog.

        Args:
            name: Name of the catalog backend (for logging)
        """
        self.name = name
        self.logger = structlog.get_logger(f"catalink.catalog.{name.lower()}")

    @abstractmethod
    async def list_by_source(
        self,
        source: MatchSource,
        brand: str | None = None,
        category_id: str | None = None,
    ) -> list[ExternalListing]:
        """List a source's listings, narrowed by brand/category when given.

        An empty list means the source has no matching listings.

        Raises:
            SourceFetchFailed: The source could not be read
        """
