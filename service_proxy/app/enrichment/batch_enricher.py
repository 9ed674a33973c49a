"""
Concurrent resolution of derived artifacts (thumbnail, excerpt) for folders.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..adapters.remote_store_client import DriveEndpoints, RemoteStoreClient
from ..domain.excerpt import make_excerpt
from ..domain.models import Enrichment, ListingItem


THUMBNAIL_NAMES = ("thumbnail.jpg", "thumbnail.jpeg", "thumbnail.png")
CHILD_FIELDS = ("id", "name", "file", "size", "createdDateTime", "lastModifiedDateTime")
DOWNLOAD_URL_FIELD = "@microsoft.graph.downloadUrl"


class BatchEnricher:
    """
    Resolves a thumbnail URL and a text excerpt for each resource folder.

    Work happens in two rounds separated by a barrier: first every folder's
    children are listed, then one request is issued per discovered artifact.
    Both rounds share a semaphore that caps in-flight remote requests.
    A failure only nulls the affected field and marks the entry degraded;
    ``enrich`` never raises for remote errors.
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        endpoints: DriveEndpoints,
        site_resolver: Callable[[], Awaitable[str]],
        *,
        concurrency: int = 8,
        excerpt_max_length: int = 220,
        thumbnail_names: Sequence[str] = THUMBNAIL_NAMES,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.client = client
        self.endpoints = endpoints
        self.site_resolver = site_resolver
        self.concurrency = max(1, concurrency)
        self.excerpt_max_length = excerpt_max_length
        self.thumbnail_names = {name.lower() for name in thumbnail_names}
        self.metrics = metrics
        self.logger = get_logger("proxy.enrichment")

    async def enrich(self, resources: Sequence[ListingItem]) -> Dict[str, Enrichment]:
        """Return an ``Enrichment`` for every resource id."""
        results = {resource.id: Enrichment() for resource in resources}
        if not resources:
            return results

        try:
            site_id = await self.site_resolver()
        except Exception as e:
            self.logger.warning("Enrichment skipped, site unavailable", error=str(e))
            self._count_failure("site", len(resources))
            return {resource.id: Enrichment(degraded=True) for resource in resources}

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(coro: Awaitable[Any]) -> Any:
            async with semaphore:
                return await coro

        # Round 1: child listings
        listings = await asyncio.gather(
            *(bounded(self._list_children(site_id, resource.id)) for resource in resources),
            return_exceptions=True,
        )

        tasks: List[Tuple[str, str, Awaitable[Optional[str]]]] = []
        for resource, children in zip(resources, listings):
            if isinstance(children, Exception):
                self.logger.warning("Child listing failed", resource_id=resource.id, error=str(children))
                self._count_failure("children")
                results[resource.id] = Enrichment(degraded=True)
                continue

            thumbnail, primary = self._select_artifacts(children)
            if thumbnail is not None:
                tasks.append((resource.id, "thumbnail", self._thumbnail_url(site_id, thumbnail)))
            if primary is not None:
                tasks.append((resource.id, "excerpt", self._excerpt(site_id, primary)))

        if not tasks:
            return results

        # Round 2: one request per artifact
        outcomes = await asyncio.gather(
            *(bounded(coro) for _, _, coro in tasks),
            return_exceptions=True,
        )

        fields: Dict[str, Dict[str, Optional[str]]] = {}
        failed = set()
        for (resource_id, field_name, _), outcome in zip(tasks, outcomes):
            if isinstance(outcome, Exception):
                self.logger.warning(
                    "Artifact resolution failed",
                    resource_id=resource_id,
                    artifact=field_name,
                    error=str(outcome),
                )
                self._count_failure("artifacts")
                failed.add(resource_id)
                outcome = None
            fields.setdefault(resource_id, {})[field_name] = outcome

        for resource_id, values in fields.items():
            results[resource_id] = Enrichment(
                thumbnail=values.get("thumbnail"),
                excerpt=values.get("excerpt"),
                degraded=resource_id in failed,
            )
        return results

    async def _list_children(self, site_id: str, item_id: str) -> List[ListingItem]:
        url = self.endpoints.children_by_id(site_id, item_id, select=CHILD_FIELDS)
        return [ListingItem.from_api(raw) for raw in await self.client.call_paged(url)]

    def _select_artifacts(
        self, children: Sequence[ListingItem]
    ) -> Tuple[Optional[ListingItem], Optional[ListingItem]]:
        """Pick at most one thumbnail file and one primary markdown file."""
        thumbnail = None
        primary = None
        for child in children:
            if not child.is_file:
                continue
            if thumbnail is None and child.name.lower() in self.thumbnail_names:
                thumbnail = child
            elif primary is None and child.is_markdown:
                primary = child
        return thumbnail, primary

    async def _thumbnail_url(self, site_id: str, item: ListingItem) -> Optional[str]:
        metadata = await self.client.call(
            self.endpoints.item(site_id, item.id, select=(DOWNLOAD_URL_FIELD,))
        )
        return metadata.get(DOWNLOAD_URL_FIELD)

    async def _excerpt(self, site_id: str, item: ListingItem) -> Optional[str]:
        data, _ = await self.client.fetch_content(self.endpoints.content(site_id, item.id))
        text = data.decode("utf-8", errors="replace")
        return make_excerpt(text, self.excerpt_max_length) or None

    def _count_failure(self, round_name: str, count: int = 1) -> None:
        if not self.metrics:
            return
        for _ in range(count):
            self.metrics.increment_counter("enrichment_failures_total", round=round_name)
