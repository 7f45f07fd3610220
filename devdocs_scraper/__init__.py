"""Crawl DevDocs documentation sets into a local content store."""

__version__ = "0.1.0"
