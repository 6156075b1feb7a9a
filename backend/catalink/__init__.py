"""Catalink - link a product catalog to external marketplace listings."""

__version__ = "0.1.0"
