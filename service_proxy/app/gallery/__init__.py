"""
Gallery service layer for the content proxy.
"""

from .service import GalleryService

__all__ = ["GalleryService"]
