"""
Long-lived cache of remote collection root identifiers.
"""

from typing import Optional

from shared.errors import TransportError
from shared.logging import get_logger

from ..adapters.remote_store_client import DriveEndpoints, RemoteStoreClient
from .result_cache import MISS, ResultCache


class LocatorCache:
    """Resolves a site (host, path) to its stable id, caching it for a day."""

    def __init__(
        self,
        cache: ResultCache,
        client: RemoteStoreClient,
        endpoints: DriveEndpoints,
        ttl: int = 86400,
    ):
        self.cache = cache
        self.client = client
        self.endpoints = endpoints
        self.ttl = ttl
        self.logger = get_logger("proxy.cache.locator")

    async def get_locator(self, host: str, path: str) -> str:
        key = f"{host.lower()}:{path.strip('/')}"
        cached = self.cache.get(key)
        if cached is not MISS:
            return cached

        locator = await self._resolve(host, path)
        self.cache.put(key, locator, self.ttl)
        return locator

    async def _resolve(self, host: str, path: str) -> str:
        payload = await self.client.call(self.endpoints.site(host, path))
        locator: Optional[str] = payload.get("id")
        if not locator:
            raise TransportError("Site lookup returned no id", details={"host": host, "path": path})
        self.logger.info("Site resolved", host=host, path=path)
        return locator
