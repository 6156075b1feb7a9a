"""Catalog collaborators: local products, external listings and the source registry."""

from .base import ExternalCatalog, LocalCatalog, SourceRegistry
from .models import ExternalListing, FilterOptions, MatchSource, Product, ProductPage

__all__ = [
    "ExternalCatalog",
    "LocalCatalog",
    "SourceRegistry",
    "ExternalListing",
    "FilterOptions",
    "MatchSource",
    "Product",
    "ProductPage",
]
