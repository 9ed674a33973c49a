"""
Unit tests for the two-round batch enricher.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from service_proxy.app.adapters.remote_store_client import DriveEndpoints
from service_proxy.app.domain.models import Enrichment, ListingItem
from service_proxy.app.enrichment.batch_enricher import BatchEnricher
from shared.errors import TransportError


BASE = "https://graph.example.test/v1.0"
ENDPOINTS = DriveEndpoints(BASE)


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))


def _folder(item_id):
    return ListingItem(id=item_id, name=f"Article {item_id}", mime_class="folder")


def _file(item_id, name, mime_type):
    return {"id": item_id, "name": name, "file": {"mimeType": mime_type}}


class FakeRemote:
    """Remote store stand-in keyed by folder / item id."""

    def __init__(self, children, download_urls=None, bodies=None):
        self.children = children
        self.download_urls = download_urls or {}
        self.bodies = bodies or {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.call_paged = AsyncMock(side_effect=self._call_paged)
        self.call = AsyncMock(side_effect=self._call)
        self.fetch_content = AsyncMock(side_effect=self._fetch_content)

    async def _track(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1

    async def _call_paged(self, url):
        await self._track()
        folder_id = url.split("/items/")[1].split("/")[0]
        result = self.children[folder_id]
        if isinstance(result, Exception):
            raise result
        return result

    async def _call(self, url):
        await self._track()
        item_id = url.split("/items/")[1].split("?")[0]
        result = self.download_urls[item_id]
        if isinstance(result, Exception):
            raise result
        return {"@microsoft.graph.downloadUrl": result}

    async def _fetch_content(self, url):
        await self._track()
        item_id = url.split("/items/")[1].split("/")[0]
        result = self.bodies[item_id]
        if isinstance(result, Exception):
            raise result
        return result.encode(), "text/markdown"


def _enricher(remote, **kwargs):
    return BatchEnricher(remote, ENDPOINTS, AsyncMock(return_value="site-1"), **kwargs)


class TestBatchEnricher:
    """BatchEnricher behaviour."""

    @pytest.mark.asyncio
    async def test_resolves_thumbnail_and_excerpt(self):
        remote = FakeRemote(
            children={"a": [_file("t1", "Thumbnail.JPG", "image/jpeg"), _file("m1", "post.md", "text/markdown")]},
            download_urls={"t1": "https://files.example.test/t1"},
            bodies={"m1": "# Hello\n\nThis is **the** body."},
        )

        result = await _enricher(remote).enrich([_folder("a")])

        assert result == {"a": Enrichment(thumbnail="https://files.example.test/t1", excerpt="Hello This is the body.")}

    @pytest.mark.asyncio
    async def test_resource_without_children_yields_nulls(self):
        remote = FakeRemote(children={"empty": []})

        result = await _enricher(remote).enrich([_folder("empty")])

        assert result == {"empty": Enrichment(thumbnail=None, excerpt=None)}
        remote.call.assert_not_awaited()
        remote.fetch_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_input(self):
        remote = FakeRemote(children={})

        assert await _enricher(remote).enrich([]) == {}

    @pytest.mark.asyncio
    async def test_listing_failure_degrades_only_that_resource(self):
        metrics = DummyMetrics()
        remote = FakeRemote(
            children={
                "bad": TransportError(status_code=500),
                "good": [_file("m1", "post.md", "text/markdown")],
            },
            bodies={"m1": "Body"},
        )

        result = await _enricher(remote, metrics=metrics).enrich([_folder("bad"), _folder("good")])

        assert result["bad"] == Enrichment(degraded=True)
        assert result["good"].degraded is False
        assert result["good"].excerpt == "Body"
        assert ("enrichment_failures_total", {"round": "children"}) in metrics.counters

    @pytest.mark.asyncio
    async def test_artifact_failure_nulls_only_that_field(self):
        metrics = DummyMetrics()
        remote = FakeRemote(
            children={"a": [_file("t1", "thumbnail.png", "image/png"), _file("m1", "post.md", "text/markdown")]},
            download_urls={"t1": TransportError(status_code=404)},
            bodies={"m1": "Still here"},
        )

        result = await _enricher(remote, metrics=metrics).enrich([_folder("a")])

        assert result["a"] == Enrichment(thumbnail=None, excerpt="Still here", degraded=True)
        assert ("enrichment_failures_total", {"round": "artifacts"}) in metrics.counters

    @pytest.mark.asyncio
    async def test_site_failure_degrades_whole_batch(self):
        remote = FakeRemote(children={})
        enricher = BatchEnricher(remote, ENDPOINTS, AsyncMock(side_effect=TransportError()))

        result = await enricher.enrich([_folder("a"), _folder("b")])

        assert result == {"a": Enrichment(degraded=True), "b": Enrichment(degraded=True)}

    @pytest.mark.asyncio
    async def test_picks_one_artifact_of_each_kind(self):
        remote = FakeRemote(
            children={
                "a": [
                    _file("x", "photo.jpg", "image/jpeg"),
                    _file("m1", "first.md", "text/markdown"),
                    _file("m2", "second.md", "text/markdown"),
                    _file("t1", "thumbnail.jpeg", "image/jpeg"),
                    _file("t2", "thumbnail.jpg", "image/jpeg"),
                ]
            },
            download_urls={"t1": "https://files.example.test/t1"},
            bodies={"m1": "First"},
        )

        result = await _enricher(remote).enrich([_folder("a")])

        assert result["a"] == Enrichment(thumbnail="https://files.example.test/t1", excerpt="First")
        assert remote.call.await_count == 1
        assert remote.fetch_content.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        children = {str(i): [_file(f"m{i}", "post.md", "text/markdown")] for i in range(10)}
        bodies = {f"m{i}": f"Body {i}" for i in range(10)}
        remote = FakeRemote(children=children, bodies=bodies)

        result = await _enricher(remote, concurrency=3).enrich([_folder(str(i)) for i in range(10)])

        assert remote.max_in_flight <= 3
        assert result["7"].excerpt == "Body 7"

    @pytest.mark.asyncio
    async def test_rounds_are_separated_by_a_barrier(self):
        remote = FakeRemote(
            children={"a": [_file("m1", "a.md", "text/markdown")], "b": [_file("m2", "b.md", "text/markdown")]},
            bodies={"m1": "A", "m2": "B"},
        )
        order = []
        listing = remote.call_paged.side_effect
        fetching = remote.fetch_content.side_effect

        async def record_listing(url):
            order.append("list")
            return await listing(url)

        async def record_fetch(url):
            order.append("fetch")
            return await fetching(url)

        remote.call_paged.side_effect = record_listing
        remote.fetch_content.side_effect = record_fetch

        await _enricher(remote).enrich([_folder("a"), _folder("b")])

        assert order == ["list", "list", "fetch", "fetch"]
