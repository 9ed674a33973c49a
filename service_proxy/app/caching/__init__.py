"""
Proxy caching package.

Provides the file-backed cache primitives used to shield the remote store.
Entries expire lazily on read; there is no explicit invalidation.
"""

from .locator_cache import LocatorCache
from .result_cache import MISS, ResultCache
from .store import CacheEntry, FileStore

__all__ = [
    "CacheEntry",
    "FileStore",
    "LocatorCache",
    "MISS",
    "ResultCache",
]
