"""
Domain utilities for the content proxy.

Records exchanged between adapters and services, year-folder helpers,
excerpt derivation and HTTP cache validation. Nothing here performs I/O.
"""

from .conditional import CachePolicy, ConditionalResult, evaluate
from .excerpt import make_excerpt
from .models import Article, ArticleDetail, Enrichment, GalleryImage, ImageContent, ImagePage, ListingItem

__all__ = [
    "Article",
    "ArticleDetail",
    "CachePolicy",
    "ConditionalResult",
    "Enrichment",
    "GalleryImage",
    "ImageContent",
    "ImagePage",
    "ListingItem",
    "evaluate",
    "make_excerpt",
]
