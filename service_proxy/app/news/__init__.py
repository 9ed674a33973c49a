"""
News service layer for the content proxy.
"""

from .service import ArticleService

__all__ = ["ArticleService"]
