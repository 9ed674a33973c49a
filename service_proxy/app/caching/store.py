"""
File-backed storage for cache entries.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import diskcache

from shared.errors import CacheCorruptionError
from shared.logging import get_logger


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its lifetime."""

    key: str
    value: Any
    expires_at: float
    created_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "expires_at": self.expires_at,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "CacheEntry":
        if not isinstance(payload, dict):
            raise CacheCorruptionError("Cache entry is not a mapping")
        try:
            return cls(
                key=str(payload["key"]),
                value=payload["value"],
                expires_at=float(payload["expires_at"]),
                created_at=float(payload["created_at"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheCorruptionError("Cache entry is malformed", details={"error": str(exc)}) from exc


class FileStore:
    """
    Persistent key/value store for ``CacheEntry`` records.

    Expiry is decided lazily by readers from ``expires_at``; the store never
    evicts on its own. Entries are overwritten, last writer wins.
    """

    def __init__(self, directory: Union[str, Path], *, clock=time.time):
        self.directory = Path(directory)
        self.logger = get_logger("proxy.cache.store")
        self._clock = clock
        self._cache = diskcache.Cache(str(self.directory))

    def now(self) -> float:
        return self._clock()

    def read(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry, or None when absent. Corruption raises."""
        try:
            raw = self._cache.get(key)
        except Exception as exc:
            raise CacheCorruptionError("Cache read failed", details={"key": key, "error": str(exc)}) from exc
        if raw is None:
            return None
        entry = CacheEntry.from_dict(raw)
        if entry.key != key:
            raise CacheCorruptionError("Cache entry key mismatch", details={"key": key})
        return entry

    def write(self, key: str, value: Any, ttl: float) -> CacheEntry:
        """Persist ``value`` under ``key`` for ``ttl`` seconds."""
        now = self.now()
        entry = CacheEntry(key=key, value=value, expires_at=now + ttl, created_at=now)
        self._cache.set(key, entry.to_dict())
        return entry

    def check(self) -> bool:
        """Round-trip a marker entry; used by health checks."""
        marker = "__health__"
        try:
            self._cache.set(marker, self.now())
            return self._cache.get(marker) is not None
        except Exception as exc:
            self.logger.error("Cache store health check failed", error=str(exc))
            return False

    def close(self) -> None:
        self._cache.close()
