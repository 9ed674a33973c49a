"""
TTL-keyed read-through cache for listing and content results.
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Any, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .store import FileStore


class _Miss:
    """Sentinel returned by ``ResultCache.get`` when nothing usable is cached."""

    _instance: Optional["_Miss"] = None

    def __new__(cls) -> "_Miss":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


class ResultCache:
    """
    Named cache of results on top of a ``FileStore``.

    Keys are namespaced by the cache name. ``was_hit`` reports the outcome
    of the most recent ``get`` made in the current request context.
    Storage failures of any kind are logged and reported as a miss.
    """

    def __init__(self, name: str, store: FileStore, metrics: Optional[MetricsCollector] = None):
        self.name = name
        self.store = store
        self.metrics = metrics
        self.logger = get_logger(f"proxy.cache.{name}")
        self._hit_var: ContextVar[bool] = ContextVar(f"result_cache_{name}_hit", default=False)

    @property
    def was_hit(self) -> bool:
        return self._hit_var.get()

    def _namespaced(self, key: str) -> str:
        return f"{self.name}:{key}"

    def get(self, key: str) -> Any:
        """Return the cached value for ``key`` or ``MISS``."""
        value = self._lookup(key)
        hit = value is not MISS
        self._hit_var.set(hit)
        if self.metrics:
            self.metrics.increment_counter(
                "cache_hits_total" if hit else "cache_misses_total",
                cache=self.name,
            )
        return value

    def _lookup(self, key: str) -> Any:
        try:
            entry = self.store.read(self._namespaced(key))
        except Exception as exc:
            self.logger.warning("Cache read failed", key=key, error=str(exc))
            return MISS

        if entry is None:
            return MISS
        if entry.is_expired(self.store.now()):
            self.logger.debug("Cache entry expired", key=key)
            return MISS
        return entry.value

    def put(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds; failures are logged."""
        try:
            self.store.write(self._namespaced(key), value, ttl)
        except Exception as exc:
            self.logger.warning("Cache write failed", key=key, error=str(exc))
