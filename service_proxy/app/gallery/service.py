"""
Gallery domain service: year-partitioned image listings and image bytes.
"""

from __future__ import annotations

import re
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from shared.errors import NotFoundError, TransportError, ValidationError
from shared.logging import get_logger

from ..adapters.remote_store_client import (
    DEFAULT_CONTENT_TYPE,
    DriveEndpoints,
    RemoteStoreClient,
    is_missing_listing,
)
from ..caching.result_cache import MISS, ResultCache
from ..domain.models import GalleryImage, ImageContent, ImagePage, ListingItem, newest_first
from ..domain.years import year_folders


THUMBNAIL_SIZES = ("small", "medium", "large")
ALL_YEARS = "all"

_ITEM_ID = re.compile(r"[A-Za-z0-9!._-]+")
_METADATA_FIELDS = ("id", "name", "file", "@microsoft.graph.downloadUrl")


def validate_item_id(item_id: str) -> str:
    item_id = (item_id or "").strip()
    if not _ITEM_ID.fullmatch(item_id):
        raise ValidationError("Invalid item id", details={"id": item_id})
    return item_id


def validate_size(size: Optional[str]) -> Optional[str]:
    if size is None or size == "":
        return None
    if size not in THUMBNAIL_SIZES:
        raise ValidationError(
            "size must be one of small, medium, large",
            details={"size": size}
        )
    return size


class GalleryService:
    """
    Lists gallery images and serves their bytes.

    Listings are collected per year (or across all years), cached unpaginated
    and sliced afterwards, so consecutive pages come from the same snapshot.
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        endpoints: DriveEndpoints,
        site_resolver: Callable[[], Awaitable[str]],
        listing_cache: ResultCache,
        content_cache: ResultCache,
        *,
        root_path: str,
        listing_ttl: int = 300,
        content_ttl: int = 3600,
    ):
        self.client = client
        self.endpoints = endpoints
        self.site_resolver = site_resolver
        self.listing_cache = listing_cache
        self.content_cache = content_cache
        self.root_path = root_path.strip("/")
        self.listing_ttl = listing_ttl
        self.content_ttl = content_ttl
        self.logger = get_logger("proxy.gallery")

    async def get_available_years(self) -> List[str]:
        """Return the 4-digit year folder names, newest first."""
        folders = await self._year_folders(await self.site_resolver())
        return [folder.name for folder in folders]

    async def _year_folders(self, site_id: str) -> List[ListingItem]:
        url = self.endpoints.children_by_path(
            site_id, self.root_path, select=("id", "name", "folder"), expand_thumbnails=False
        )
        raw = await self.client.call_paged(url)
        return year_folders(ListingItem.from_api(item) for item in raw)

    async def list_images(self, year: Optional[str], limit: int, offset: int) -> ImagePage:
        """Return one page of images for ``year`` (all years when None)."""
        images = await self._collected_images(year)
        page = images[offset:offset + limit] if limit > 0 else []
        return ImagePage(
            images=page,
            total=len(images),
            has_more=(offset + len(page)) < len(images),
            year=year,
        )

    async def _collected_images(self, year: Optional[str]) -> List[GalleryImage]:
        key = year or ALL_YEARS
        cached = self.listing_cache.get(key)
        if cached is not MISS:
            return [GalleryImage.from_dict(item) for item in cached]

        # Locator failures propagate; only folder listings degrade
        site_id = await self.site_resolver()
        if year:
            images, complete = await self._collect_year(site_id, year)
        else:
            images, complete = await self._collect_all_years(site_id)

        if complete:
            self.listing_cache.put(key, [image.to_dict() for image in images], self.listing_ttl)
        else:
            self.logger.info("Degraded gallery listing not cached", year=key)
        return images

    async def _collect_year(self, site_id: str, year: str) -> Tuple[List[GalleryImage], bool]:
        try:
            return await self._year_images(site_id, year), True
        except TransportError as e:
            self.logger.warning("Year folder skipped", year=year, error=str(e))
            return [], is_missing_listing(e)

    async def _collect_all_years(self, site_id: str) -> Tuple[List[GalleryImage], bool]:
        try:
            folders = await self._year_folders(site_id)
        except TransportError as e:
            self.logger.warning("Gallery root listing failed", error=str(e))
            return [], False

        images: List[GalleryImage] = []
        complete = True
        for folder in folders:
            try:
                images.extend(await self._year_images(site_id, folder.name))
            except TransportError as e:
                self.logger.warning("Year folder skipped", year=folder.name, error=str(e))
                complete = False
        return images, complete

    async def _year_images(self, site_id: str, year: str) -> List[GalleryImage]:
        url = self.endpoints.children_by_path(site_id, f"{self.root_path}/{year}")
        items = [ListingItem.from_api(raw) for raw in await self.client.call_paged(url)]
        images = [GalleryImage.from_item(item, year) for item in items if item.is_image]
        return newest_first(images)

    async def get_image_content(self, item_id: str, size: Optional[str] = None) -> ImageContent:
        """Return the bytes of one image, or of its rendered thumbnail when ``size`` is set."""
        item_id = validate_item_id(item_id)
        size = validate_size(size)

        key = f"{item_id}:{size or 'original'}"
        cached = self.content_cache.get(key)
        if cached is not MISS:
            return ImageContent(data=cached["data"], mime_type=cached["mime_type"])

        content = await self._download(item_id, size)
        self.content_cache.put(
            key,
            {"data": content.data, "mime_type": content.mime_type},
            self.content_ttl,
        )
        return content

    async def _download(self, item_id: str, size: Optional[str]) -> ImageContent:
        site_id = await self.site_resolver()
        try:
            if size:
                data, mime_type = await self.client.fetch_content(
                    self.endpoints.thumbnail_content(site_id, item_id, size)
                )
                return ImageContent(data=data, mime_type=self._effective_type(mime_type, None))

            download_url, metadata_type = await self._download_url(site_id, item_id)
            if download_url:
                data, mime_type = await self.client.fetch_content(download_url, authenticated=False)
            else:
                data, mime_type = await self.client.fetch_content(self.endpoints.content(site_id, item_id))
        except TransportError as e:
            if e.is_not_found:
                raise NotFoundError("Image not found", details={"id": item_id})
            raise

        return ImageContent(data=data, mime_type=self._effective_type(mime_type, metadata_type))

    async def _download_url(self, site_id: str, item_id: str) -> Tuple[Optional[str], Optional[str]]:
        """Look up the pre-authorized download URL; (None, None) falls back to the content endpoint."""
        try:
            metadata: Dict = await self.client.call(
                self.endpoints.item(site_id, item_id, select=_METADATA_FIELDS)
            )
        except TransportError as e:
            self.logger.info("Image metadata unavailable, using content endpoint", id=item_id, error=str(e))
            return None, None

        file_meta = metadata.get("file") if isinstance(metadata.get("file"), dict) else {}
        return metadata.get("@microsoft.graph.downloadUrl"), file_meta.get("mimeType")

    @staticmethod
    def _effective_type(response_type: Optional[str], metadata_type: Optional[str]) -> str:
        if response_type and response_type != DEFAULT_CONTENT_TYPE:
            return response_type
        return metadata_type or "image/jpeg"
