"""Storefront order ingestion: identity resolution, deduplication and action dispatch."""

__version__ = "0.1.0"
