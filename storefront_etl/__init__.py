"""Storefront crawler: category → product → seller pages into deduplicated listings."""

__version__ = "0.1.0"
