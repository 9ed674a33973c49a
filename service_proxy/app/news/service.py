"""
News domain service: article listings, article bodies and excerpts.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from shared.errors import TransportError, ValidationError
from shared.logging import get_logger

from ..adapters.remote_store_client import DriveEndpoints, RemoteStoreClient, is_missing_listing
from ..caching.result_cache import MISS, ResultCache
from ..domain.excerpt import make_excerpt
from ..domain.models import Article, ArticleDetail, ListingItem, newest_first
from ..domain.years import is_year_folder_name, year_folders
from ..enrichment.batch_enricher import BatchEnricher


ALL_YEARS = "all"

_FOLDER_FIELDS = ("id", "name", "folder", "createdDateTime", "lastModifiedDateTime")
_ARTICLE_FILE_FIELDS = (
    "id",
    "name",
    "file",
    "size",
    "createdDateTime",
    "lastModifiedDateTime",
    "@microsoft.graph.downloadUrl",
)


class ArticleService:
    """
    Articles live one per folder under year folders; each folder holds a
    markdown body, optional images and an optional ``thumbnail.jpg``.
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        endpoints: DriveEndpoints,
        site_resolver: Callable[[], Awaitable[str]],
        enricher: BatchEnricher,
        listing_cache: ResultCache,
        article_cache: ResultCache,
        *,
        root_path: str,
        listing_ttl: int = 600,
        article_ttl: int = 600,
        excerpt_max_length: int = 220,
    ):
        self.client = client
        self.endpoints = endpoints
        self.site_resolver = site_resolver
        self.enricher = enricher
        self.listing_cache = listing_cache
        self.article_cache = article_cache
        self.root_path = root_path.strip("/")
        self.listing_ttl = listing_ttl
        self.article_ttl = article_ttl
        self.excerpt_max_length = excerpt_max_length
        self.logger = get_logger("proxy.news")

    async def _children(self, site_id: str, path: str, fields=_FOLDER_FIELDS) -> List[ListingItem]:
        url = self.endpoints.children_by_path(site_id, path, select=fields, expand_thumbnails=False)
        return [ListingItem.from_api(raw) for raw in await self.client.call_paged(url)]

    async def get_available_years(self) -> List[str]:
        """Year folder names, newest first; an unreachable store yields []."""
        try:
            site_id = await self.site_resolver()
            folders = year_folders(await self._children(site_id, self.root_path))
        except TransportError as e:
            self.logger.warning("News years unavailable", error=str(e))
            return []
        return [folder.name for folder in folders]

    async def list_articles(self, year: Optional[str] = None) -> List[Article]:
        """Enriched articles for ``year`` (all years when None), newest first."""
        key = year or ALL_YEARS
        cached = self.listing_cache.get(key)
        if cached is not MISS:
            return [Article.from_dict(item) for item in cached]

        # Locator failures propagate; only folder listings degrade
        site_id = await self.site_resolver()
        if year:
            folders, complete = await self._collect_year(site_id, year)
        else:
            folders, complete = await self._collect_all_years(site_id)

        enrichments = await self.enricher.enrich([item for item, _ in folders])
        articles = [
            Article.from_folder(item, folder_year).enriched(enrichments[item.id])
            for item, folder_year in folders
        ]

        if complete and not any(enrichment.degraded for enrichment in enrichments.values()):
            self.listing_cache.put(key, [article.to_dict() for article in articles], self.listing_ttl)
        else:
            self.logger.info("Degraded article listing not cached", year=key)
        return articles

    async def _article_folders(self, site_id: str, year: str) -> List[ListingItem]:
        items = await self._children(site_id, f"{self.root_path}/{year}")
        return newest_first([item for item in items if item.is_folder])

    async def _collect_year(self, site_id: str, year: str) -> Tuple[List[Tuple[ListingItem, str]], bool]:
        try:
            return [(item, year) for item in await self._article_folders(site_id, year)], True
        except TransportError as e:
            self.logger.warning("Year folder skipped", year=year, error=str(e))
            return [], is_missing_listing(e)

    async def _collect_all_years(self, site_id: str) -> Tuple[List[Tuple[ListingItem, str]], bool]:
        try:
            years = year_folders(await self._children(site_id, self.root_path))
        except TransportError as e:
            self.logger.warning("News root listing failed", error=str(e))
            return [], False

        folders: List[Tuple[ListingItem, str]] = []
        complete = True
        for year_folder in years:
            try:
                folders.extend(
                    (item, year_folder.name) for item in await self._article_folders(site_id, year_folder.name)
                )
            except TransportError as e:
                self.logger.warning("Year folder skipped", year=year_folder.name, error=str(e))
                complete = False
        return folders, complete

    async def get_article(self, title: str, year: str) -> Optional[ArticleDetail]:
        """
        Fetch one article by folder name within a year.

        Returns None when the folder, its markdown file or the body is
        missing. Other remote failures propagate.
        """
        if not title or not year:
            raise ValidationError("title and year are required")
        if not is_year_folder_name(year):
            raise ValidationError("year must be a 4-digit number", details={"year": year})

        key = f"{year}:{title}"
        cached = self.article_cache.get(key)
        if cached is not MISS:
            return ArticleDetail.from_dict(cached)

        site_id = await self.site_resolver()
        try:
            detail = await self._load_article(site_id, title, year)
        except TransportError as e:
            if e.is_not_found:
                self.logger.info("Article not found remotely", year=year, title=title)
                return None
            raise

        if detail is not None:
            self.article_cache.put(key, detail.to_dict(), self.article_ttl)
        return detail

    async def _load_article(self, site_id: str, title: str, year: str) -> Optional[ArticleDetail]:
        folders = [item for item in await self._children(site_id, f"{self.root_path}/{year}") if item.is_folder]
        folder = self._match_folder(folders, title)
        if folder is None:
            self.logger.info("Article folder not found", year=year, title=title)
            return None

        url = self.endpoints.children_by_id(site_id, folder.id, select=_ARTICLE_FILE_FIELDS)
        files = [ListingItem.from_api(raw) for raw in await self.client.call_paged(url)]

        markdown = next((item for item in files if item.is_markdown), None)
        if markdown is None:
            self.logger.info("Article has no markdown file", year=year, title=folder.name)
            return None
        images = [item for item in files if item.is_image]

        if markdown.download_url:
            data, _ = await self.client.fetch_content(markdown.download_url, authenticated=False)
        else:
            data, _ = await self.client.fetch_content(self.endpoints.content(site_id, markdown.id))

        return ArticleDetail(
            id=markdown.id,
            title=folder.name,
            year=year,
            content=data.decode("utf-8", errors="replace"),
            created_at=markdown.created_at,
            modified_at=markdown.modified_at,
            images=images,
        )

    @staticmethod
    def _match_folder(folders: List[ListingItem], title: str) -> Optional[ListingItem]:
        for folder in folders:
            if folder.name == title:
                return folder
        lowered = title.lower()
        for folder in folders:
            if folder.name.lower() == lowered:
                return folder
        return None

    async def get_article_excerpt(self, year: str, title: str) -> Optional[str]:
        article = await self.get_article(title, year)
        if article is None or not article.content:
            return None
        return make_excerpt(article.content, self.excerpt_max_length)

    async def describe_structure(self) -> Dict[str, Any]:
        """Diagnostic snapshot of the news folder; errors are reported in the payload."""
        result: Dict[str, Any] = {"news_path": self.root_path}
        try:
            site_id = await self.site_resolver()
            folder = await self.client.call(self.endpoints.item_by_path(site_id, self.root_path))
            result["news_folder_exists"] = True
            result["news_folder_id"] = folder.get("id")

            children = await self._children(site_id, self.root_path)
            result["years"] = [
                {"name": item.name, "id": item.id, "is_folder": item.is_folder}
                for item in children
            ]

            years = year_folders(children)
            if years:
                sample = years[0]
                sample_children = await self._children(site_id, f"{self.root_path}/{sample.name}")
                result["sample_year"] = {
                    "name": sample.name,
                    "children": [
                        {"name": item.name, "id": item.id, "is_folder": item.is_folder}
                        for item in sample_children
                    ],
                }
        except Exception as e:
            self.logger.warning("News structure check failed", error=str(e))
            result.setdefault("news_folder_exists", False)
            result["error"] = str(e)
        return result
