"""
Batch enrichment of listed folders.
"""

from .batch_enricher import BatchEnricher, THUMBNAIL_NAMES

__all__ = ["BatchEnricher", "THUMBNAIL_NAMES"]
