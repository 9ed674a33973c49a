"""
Records exchanged between the remote store adapters and the domain services.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

FOLDER = "folder"
FILE = "file"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO timestamp strings safely."""
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def newest_first(items: List[Any]) -> List[Any]:
    """Sort records with a ``created_at`` string by creation time, newest first."""
    return sorted(
        items,
        key=lambda item: parse_timestamp(item.created_at) or _EPOCH,
        reverse=True,
    )


@dataclass(frozen=True)
class ListingItem:
    """A file or folder as listed by the remote store."""

    id: str
    name: str
    mime_class: str
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    web_url: Optional[str] = None
    download_url: Optional[str] = None
    thumbnails: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.mime_class == FOLDER

    @property
    def is_file(self) -> bool:
        return self.mime_class == FILE

    @property
    def is_image(self) -> bool:
        return self.is_file and (self.mime_type or "").startswith("image/")

    @property
    def is_markdown(self) -> bool:
        if not self.is_file:
            return False
        return "text/markdown" in (self.mime_type or "") or self.name.lower().endswith(".md")

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ListingItem":
        """Build a listing item from a raw remote store JSON object."""
        file_meta = payload.get("file")
        if not isinstance(file_meta, dict):
            file_meta = None

        mime_type = None
        if file_meta is not None:
            mime_type = file_meta.get("mimeType")
        if mime_type is None:
            mime_type = payload.get("mimeType")

        size = payload.get("size")
        thumbnails = payload.get("thumbnails")

        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name", "")),
            mime_class=FOLDER if "folder" in payload else FILE,
            created_at=payload.get("createdDateTime"),
            modified_at=payload.get("lastModifiedDateTime"),
            mime_type=mime_type,
            size=size if isinstance(size, int) else None,
            web_url=payload.get("webUrl"),
            download_url=payload.get("@microsoft.graph.downloadUrl"),
            thumbnails=thumbnails if isinstance(thumbnails, list) else [],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase shape clients consume."""
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "createdDateTime": self.created_at,
            "lastModifiedDateTime": self.modified_at,
        }
        if self.is_folder:
            payload["folder"] = {}
        else:
            payload["file"] = {"mimeType": self.mime_type}
        if self.size is not None:
            payload["size"] = self.size
        if self.web_url is not None:
            payload["webUrl"] = self.web_url
        if self.download_url is not None:
            payload["@microsoft.graph.downloadUrl"] = self.download_url
        if self.thumbnails:
            payload["thumbnails"] = list(self.thumbnails)
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ListingItem":
        """Rehydrate a listing item from its serialized form."""
        return cls.from_api(payload)


def pick_thumbnail_url(thumbnails: List[Dict[str, Any]]) -> Optional[str]:
    """Return the largest rendered thumbnail URL of the first thumbnail set."""
    if not thumbnails or not isinstance(thumbnails[0], dict):
        return None
    first = thumbnails[0]
    for size in ("large", "medium", "small"):
        rendition = first.get(size)
        if isinstance(rendition, dict) and rendition.get("url"):
            return rendition["url"]
    return None


@dataclass(frozen=True)
class GalleryImage:
    """A gallery image listing entry."""

    item: ListingItem
    year: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def created_at(self) -> Optional[str]:
        return self.item.created_at

    @classmethod
    def from_item(cls, item: ListingItem, year: Optional[str] = None) -> "GalleryImage":
        return cls(item=item, year=year, thumbnail_url=pick_thumbnail_url(item.thumbnails))

    def to_dict(self) -> Dict[str, Any]:
        payload = self.item.to_dict()
        payload["year"] = self.year
        payload["thumbnailUrl"] = self.thumbnail_url
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "GalleryImage":
        return cls(
            item=ListingItem.from_dict(payload),
            year=payload.get("year"),
            thumbnail_url=payload.get("thumbnailUrl"),
        )


@dataclass(frozen=True)
class ImagePage:
    """One page of gallery images."""

    images: List[GalleryImage]
    total: int
    has_more: bool
    year: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images": [image.to_dict() for image in self.images],
            "total": self.total,
            "hasMore": self.has_more,
            "year": self.year,
        }


@dataclass(frozen=True)
class ImageContent:
    """Raw image bytes and their effective content type."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class Enrichment:
    """
    Derived artifacts resolved for one listed resource.

    ``degraded`` marks entries where a remote request failed, as opposed
    to a folder that simply has no artifacts.
    """

    thumbnail: Optional[str] = None
    excerpt: Optional[str] = None
    degraded: bool = False


@dataclass(frozen=True)
class Article:
    """An article listing entry (one folder per article)."""

    id: str
    title: str
    year: str
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    thumbnail: Optional[str] = None
    excerpt: Optional[str] = None

    @classmethod
    def from_folder(cls, item: ListingItem, year: str) -> "Article":
        return cls(
            id=item.id,
            title=item.name,
            year=year,
            created_at=item.created_at,
            modified_at=item.modified_at,
        )

    def enriched(self, enrichment: Enrichment) -> "Article":
        return replace(self, thumbnail=enrichment.thumbnail, excerpt=enrichment.excerpt)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "year": self.year,
            "createdDateTime": self.created_at,
            "lastModifiedDateTime": self.modified_at,
            "thumbnail": self.thumbnail,
            "excerpt": self.excerpt,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Article":
        return cls(
            id=payload["id"],
            title=payload["title"],
            year=payload["year"],
            created_at=payload.get("createdDateTime"),
            modified_at=payload.get("lastModifiedDateTime"),
            thumbnail=payload.get("thumbnail"),
            excerpt=payload.get("excerpt"),
        )


@dataclass(frozen=True)
class ArticleDetail:
    """A fully fetched article: markdown body plus its images."""

    id: str
    title: str
    year: str
    content: str
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    images: List[ListingItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "year": self.year,
            "content": self.content,
            "createdDateTime": self.created_at,
            "lastModifiedDateTime": self.modified_at,
            "images": [image.to_dict() for image in self.images],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ArticleDetail":
        return cls(
            id=payload["id"],
            title=payload["title"],
            year=payload["year"],
            content=payload["content"],
            created_at=payload.get("createdDateTime"),
            modified_at=payload.get("lastModifiedDateTime"),
            images=[ListingItem.from_dict(image) for image in payload.get("images", [])],
        )
