"""
Unit tests for the news (article) service.
"""

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import unquote

import pytest

from service_proxy.app.adapters.remote_store_client import DriveEndpoints
from service_proxy.app.caching.result_cache import ResultCache
from service_proxy.app.caching.store import FileStore
from service_proxy.app.domain.models import Enrichment
from service_proxy.app.news.service import ArticleService
from shared.errors import TransportError, ValidationError


BASE = "https://graph.example.test/v1.0"


def _folder(item_id, name, created):
    return {
        "id": item_id,
        "name": name,
        "folder": {"childCount": 2},
        "createdDateTime": created,
        "lastModifiedDateTime": created,
    }


def _file(item_id, name, mime_type, **extra):
    payload = {
        "id": item_id,
        "name": name,
        "file": {"mimeType": mime_type},
        "createdDateTime": "2024-05-01T10:00:00Z",
        "lastModifiedDateTime": "2024-05-02T10:00:00Z",
    }
    payload.update(extra)
    return payload


LISTINGS = {
    "public/news": [_folder("y2024", "2024", None), _folder("y2023", "2023", None), _folder("x", "drafts", None)],
    "public/news/2024": [
        _folder("a1", "Spring Regatta", "2024-04-01T00:00:00Z"),
        _folder("a2", "Summer Camp", "2024-06-01T00:00:00Z"),
        _file("stray", "notes.txt", "text/plain"),
    ],
    "public/news/2023": [_folder("a3", "Winter Works", "2023-12-01T00:00:00Z")],
}

ARTICLE_FILES = {
    "a1": [
        _file("md1", "index.md", "text/markdown", **{"@microsoft.graph.downloadUrl": "https://files.example.test/md1"}),
        _file("img1", "boat.jpg", "image/jpeg"),
        _file("thumb", "thumbnail.jpg", "image/jpeg"),
    ],
    "a2": [_file("img2", "camp.jpg", "image/jpeg")],
}


class FakeRemote:
    """Remote store stand-in serving listings by folder path or folder id."""

    def __init__(self, listings=None, article_files=None):
        self.listings = listings if listings is not None else LISTINGS
        self.article_files = article_files if article_files is not None else ARTICLE_FILES
        self.call_paged = AsyncMock(side_effect=self._call_paged)
        self.call = AsyncMock(return_value={"id": "news-folder"})
        self.fetch_content = AsyncMock(return_value=(b"# Spring Regatta\n\nWe sailed **fast**.", "text/plain"))

    async def _call_paged(self, url):
        if "/root:/" in url:
            path = unquote(url.split("/root:/")[1].split(":/children")[0])
            result = self.listings.get(path, TransportError(status_code=404))
        else:
            folder_id = url.split("/items/")[1].split("/")[0]
            result = self.article_files.get(folder_id, TransportError(status_code=404))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def store(tmp_path):
    file_store = FileStore(tmp_path)
    yield file_store
    file_store.close()


@pytest.fixture
def enricher():
    batch = MagicMock()

    async def enrich(resources):
        return {item.id: Enrichment(thumbnail=f"https://t/{item.id}", excerpt=None) for item in resources}

    batch.enrich = AsyncMock(side_effect=enrich)
    return batch


def _service(remote, store, enricher, site_resolver=None):
    return ArticleService(
        remote,
        DriveEndpoints(BASE),
        site_resolver or AsyncMock(return_value="site-1"),
        enricher,
        ResultCache("news", store),
        ResultCache("article", store),
        root_path="public/news",
    )


class TestListArticles:
    """Article listings."""

    @pytest.mark.asyncio
    async def test_single_year(self, store, enricher):
        articles = await _service(FakeRemote(), store, enricher).list_articles("2024")

        assert [article.title for article in articles] == ["Summer Camp", "Spring Regatta"]
        assert all(article.year == "2024" for article in articles)
        assert articles[0].thumbnail == "https://t/a2"

    @pytest.mark.asyncio
    async def test_all_years(self, store, enricher):
        articles = await _service(FakeRemote(), store, enricher).list_articles()

        assert [article.id for article in articles] == ["a2", "a1", "a3"]
        assert [article.year for article in articles] == ["2024", "2024", "2023"]
        enricher.enrich.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_keys_include_year(self, store, enricher):
        remote = FakeRemote()
        service = _service(remote, store, enricher)

        first_2024 = await service.list_articles("2024")
        first_2023 = await service.list_articles("2023")
        everything = await service.list_articles(None)

        assert service.listing_cache.was_hit is False
        assert [a.id for a in first_2024] != [a.id for a in first_2023]
        assert len(everything) == 3

        again = await service.list_articles("2024")
        assert service.listing_cache.was_hit is True
        assert again == first_2024

    @pytest.mark.asyncio
    async def test_failing_year_is_skipped_and_not_cached(self, store, enricher):
        listings = dict(LISTINGS)
        listings["public/news/2023"] = TransportError(status_code=500)
        service = _service(FakeRemote(listings), store, enricher)

        articles = await service.list_articles()
        await service.list_articles()

        assert [article.id for article in articles] == ["a2", "a1"]
        assert service.listing_cache.was_hit is False

    @pytest.mark.asyncio
    async def test_missing_year_is_empty(self, store, enricher):
        assert await _service(FakeRemote(), store, enricher).list_articles("1999") == []

    @pytest.mark.asyncio
    async def test_site_lookup_failure_propagates_and_is_not_cached(self, store, enricher):
        resolver = AsyncMock(side_effect=[TransportError(status_code=404), "site-1"])
        service = _service(FakeRemote(), store, enricher, site_resolver=resolver)

        with pytest.raises(TransportError):
            await service.list_articles("2024")
        articles = await service.list_articles("2024")

        assert [article.id for article in articles] == ["a2", "a1"]

    @pytest.mark.asyncio
    async def test_expired_continuation_link_is_not_cached(self, store, enricher):
        listings = dict(LISTINGS)
        listings["public/news/2024"] = TransportError(status_code=404, details={"continuation_page": 3})
        remote = FakeRemote(listings)
        service = _service(remote, store, enricher)

        assert await service.list_articles("2024") == []
        await service.list_articles("2024")

        assert service.listing_cache.was_hit is False
        assert enricher.enrich.await_count == 2

    @pytest.mark.asyncio
    async def test_degraded_enrichment_is_not_cached(self, store, enricher):
        async def enrich(resources):
            return {item.id: Enrichment(degraded=item.id == "a1") for item in resources}

        enricher.enrich.side_effect = enrich
        service = _service(FakeRemote(), store, enricher)

        articles = await service.list_articles("2024")
        await service.list_articles("2024")

        assert [article.thumbnail for article in articles] == [None, None]
        assert service.listing_cache.was_hit is False
        assert enricher.enrich.await_count == 2


class TestGetArticle:
    """Single article fetches."""

    @pytest.mark.asyncio
    async def test_exact_match(self, store, enricher):
        remote = FakeRemote()

        article = await _service(remote, store, enricher).get_article("Spring Regatta", "2024")

        assert article.id == "md1"
        assert article.title == "Spring Regatta"
        assert article.content.startswith("# Spring Regatta")
        assert [image.id for image in article.images] == ["img1", "thumb"]
        remote.fetch_content.assert_awaited_once_with("https://files.example.test/md1", authenticated=False)

    @pytest.mark.asyncio
    async def test_case_insensitive_match(self, store, enricher):
        article = await _service(FakeRemote(), store, enricher).get_article("spring regatta", "2024")

        assert article.title == "Spring Regatta"

    @pytest.mark.asyncio
    async def test_exact_match_wins_over_case_insensitive(self, store, enricher):
        listings = dict(LISTINGS)
        listings["public/news/2024"] = [
            _folder("lower", "regatta", "2024-01-01T00:00:00Z"),
            _folder("a1", "Regatta", "2024-01-02T00:00:00Z"),
        ]
        remote = FakeRemote(listings)

        await _service(remote, store, enricher).get_article("Regatta", "2024")

        assert "/items/a1/" in remote.call_paged.await_args_list[-1].args[0]

    @pytest.mark.asyncio
    async def test_missing_folder_or_markdown(self, store, enricher):
        service = _service(FakeRemote(), store, enricher)

        assert await service.get_article("Nope", "2024") is None
        assert await service.get_article("Summer Camp", "2024") is None
        assert await service.get_article("Anything", "1999") is None

    @pytest.mark.asyncio
    async def test_body_without_download_url_uses_content_endpoint(self, store, enricher):
        files = dict(ARTICLE_FILES)
        files["a1"] = [_file("md1", "index.md", "text/markdown")]
        remote = FakeRemote(article_files=files)

        await _service(remote, store, enricher).get_article("Spring Regatta", "2024")

        remote.fetch_content.assert_awaited_once_with(f"{BASE}/sites/site-1/drive/items/md1/content")

    @pytest.mark.asyncio
    async def test_article_is_cached(self, store, enricher):
        remote = FakeRemote()
        service = _service(remote, store, enricher)

        await service.get_article("Spring Regatta", "2024")
        cached = await service.get_article("Spring Regatta", "2024")

        assert service.article_cache.was_hit is True
        assert cached.title == "Spring Regatta"
        assert remote.fetch_content.await_count == 1

    @pytest.mark.asyncio
    async def test_body_not_found_is_none(self, store, enricher):
        remote = FakeRemote()
        remote.fetch_content.side_effect = TransportError(status_code=404)

        assert await _service(remote, store, enricher).get_article("Spring Regatta", "2024") is None

    @pytest.mark.asyncio
    async def test_other_failures_propagate(self, store, enricher):
        remote = FakeRemote()
        remote.fetch_content.side_effect = TransportError(status_code=503)

        with pytest.raises(TransportError):
            await _service(remote, store, enricher).get_article("Spring Regatta", "2024")

    @pytest.mark.asyncio
    async def test_parameters_are_validated(self, store, enricher):
        service = _service(FakeRemote(), store, enricher)

        with pytest.raises(ValidationError):
            await service.get_article("", "2024")
        with pytest.raises(ValidationError):
            await service.get_article("Spring Regatta", "24")


@pytest.mark.asyncio
async def test_article_excerpt(store, enricher):
    service = _service(FakeRemote(), store, enricher)

    assert await service.get_article_excerpt("2024", "Spring Regatta") == "Spring Regatta We sailed fast ."
    assert await service.get_article_excerpt("2024", "Nope") is None


@pytest.mark.asyncio
async def test_available_years_degrade_to_empty(store, enricher):
    assert await _service(FakeRemote(), store, enricher).get_available_years() == ["2024", "2023"]
    assert await _service(FakeRemote(listings={}), store, enricher).get_available_years() == []


@pytest.mark.asyncio
async def test_describe_structure(store, enricher):
    result = await _service(FakeRemote(), store, enricher).describe_structure()

    assert result["news_folder_exists"] is True
    assert result["news_folder_id"] == "news-folder"
    assert {"name": "drafts", "id": "x", "is_folder": True} in result["years"]
    assert result["sample_year"]["name"] == "2024"


@pytest.mark.asyncio
async def test_describe_structure_reports_errors(store, enricher):
    remote = FakeRemote()
    remote.call.side_effect = TransportError(status_code=404)

    result = await _service(remote, store, enricher).describe_structure()

    assert result["news_folder_exists"] is False
    assert "error" in result
