"""
Read-through content proxy service.

Serves the gallery and news feeds from the remote file store through the
credential, locator and result caches, and answers conditional requests.
"""

import time
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import NotFoundError, ValidationError

from .adapters.remote_store_client import DriveEndpoints, RemoteStoreClient
from .auth.credential_cache import CredentialCache
from .auth.identity_client import IdentityClient
from .caching.locator_cache import LocatorCache
from .caching.result_cache import ResultCache
from .caching.store import FileStore
from .domain.conditional import CachePolicy, compute_bytes_etag, evaluate, latest_modified
from .domain.models import parse_timestamp
from .domain.origin_middleware import OriginAllowListMiddleware
from .domain.years import validate_year
from .enrichment.batch_enricher import BatchEnricher
from .gallery.service import GalleryService
from .news.service import ArticleService


GALLERY_ACTIONS = ("gallery", "list_gallery_years")
NEWS_ACTIONS = ("list_articles", "list_news_years", "article", "get_article_excerpt", "debug_news")


class ProxyService(BaseService):
    """Content proxy service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("proxy", 8000, config)

        cache_dir = Path(self.config.cache_dir)
        self.store = FileStore(cache_dir / "results")

        self.identity_client = IdentityClient(
            self.config.authority_url,
            self.config.tenant_id,
            self.config.client_id,
            self.config.client_secret,
            self.config.scope,
            timeout=self.config.http_timeout,
        )
        self.credentials = CredentialCache(
            self.identity_client,
            cache_dir / "credential.bin",
            secret=self.config.client_secret,
            salt=self.config.tenant_id,
            expiry_margin=self.config.token_expiry_margin,
            metrics=self.metrics,
        )

        self.endpoints = DriveEndpoints(self.config.graph_base_url)
        self.remote_client = RemoteStoreClient(
            self.credentials,
            timeout=self.config.http_timeout,
            max_redirects=self.config.max_redirects,
            auth_redirect_hosts=self.config.auth_redirect_hosts,
            max_pages=self.config.max_listing_pages,
            metrics=self.metrics,
        )
        self.locator_cache = LocatorCache(
            ResultCache("locator", self.store, self.metrics),
            self.remote_client,
            self.endpoints,
            ttl=self.config.site_id_cache_seconds,
        )

        self.enricher = BatchEnricher(
            self.remote_client,
            self.endpoints,
            self.site_id,
            concurrency=self.config.enrichment_concurrency,
            excerpt_max_length=self.config.excerpt_max_length,
            metrics=self.metrics,
        )
        self.gallery_service = GalleryService(
            self.remote_client,
            self.endpoints,
            self.site_id,
            ResultCache("gallery", self.store, self.metrics),
            ResultCache("image", self.store, self.metrics),
            root_path=self.config.gallery_path,
            listing_ttl=self.config.gallery_cache_seconds,
            content_ttl=self.config.image_cache_seconds,
        )
        self.article_service = ArticleService(
            self.remote_client,
            self.endpoints,
            self.site_id,
            self.enricher,
            ResultCache("news", self.store, self.metrics),
            ResultCache("article", self.store, self.metrics),
            root_path=self.config.news_path,
            listing_ttl=self.config.news_cache_seconds,
            article_ttl=self.config.article_cache_seconds,
            excerpt_max_length=self.config.excerpt_max_length,
        )

        self.policies = {
            "years": CachePolicy(self.config.years_max_age),
            "gallery": CachePolicy(self.config.gallery_max_age),
            "news": CachePolicy(self.config.news_max_age),
            "article": CachePolicy(self.config.article_max_age),
            "image": CachePolicy(self.config.image_max_age),
        }

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.remote_client.close()
            await self.identity_client.close()
            self.store.close()

        self.app.add_middleware(OriginAllowListMiddleware, allowed_origins=self.config.allowed_origins)
        self._setup_proxy_routes()

        self.app.state.proxy_service = self

    async def site_id(self) -> str:
        """Resolve the configured site through the locator cache."""
        return await self.locator_cache.get_locator(self.config.site_host, self.config.site_path)

    async def _check_dependencies(self) -> Dict[str, str]:
        return {"cache_dir": "ok" if self.store.check() else "error"}

    def _conditional_response(
        self,
        request: Request,
        payload: Any,
        policy: CachePolicy,
        *,
        last_modified=None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        """Render ``payload`` as JSON, or 304 when the client copy is current."""
        result = evaluate(
            payload,
            policy,
            if_none_match=request.headers.get("If-None-Match"),
            if_modified_since=request.headers.get("If-Modified-Since"),
            last_modified=last_modified,
        )
        headers = dict(result.headers)
        headers.update(extra_headers or {})
        if result.not_modified:
            return Response(status_code=304, headers=headers)
        return JSONResponse(content=payload, headers=headers)

    @staticmethod
    def _timing_headers(started: float, cache_hit: Optional[bool] = None) -> Dict[str, str]:
        headers = {"X-Performance-Fetch-Time": f"{time.time() - started:.3f}"}
        if cache_hit is not None:
            headers["X-Cache"] = "HIT" if cache_hit else "MISS"
        return headers

    def _setup_proxy_routes(self):
        """Set up gallery and news routes."""

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            error = ValidationError(
                "Invalid query parameters",
                details={"errors": [str(item.get("msg")) for item in exc.errors()]},
            )
            self.metrics.record_error(error.code)
            return JSONResponse(status_code=error.status_code, content=error.to_response().model_dump())

        @self.app.get("/api/gallery")
        async def gallery(
            request: Request,
            action: Optional[str] = Query(None),
            id: Optional[str] = Query(None),
            size: Optional[str] = Query(None),
            year: Optional[str] = Query(None),
            top: Optional[int] = Query(None, ge=1, le=500),
            skip: int = Query(0, ge=0),
        ):
            """Gallery listings, available years, or raw image bytes when ``id`` is given."""
            if id and action is None:
                return await self._image_response(request, id, size)

            action = action or "gallery"
            if action not in GALLERY_ACTIONS:
                raise ValidationError("Unknown action", details={"action": action})

            started = time.time()
            if action == "list_gallery_years":
                years = await self.gallery_service.get_available_years()
                return self._conditional_response(
                    request,
                    {"success": True, "years": years},
                    self.policies["years"],
                    extra_headers=self._timing_headers(started),
                )

            page = await self.gallery_service.list_images(
                validate_year(year),
                top or self.config.default_page_size,
                skip,
            )
            payload = {"success": True, **page.to_dict()}
            return self._conditional_response(
                request,
                payload,
                self.policies["gallery"],
                last_modified=latest_modified(payload["images"]),
                extra_headers=self._timing_headers(started, self.gallery_service.listing_cache.was_hit),
            )

        @self.app.get("/api/news")
        async def news(
            request: Request,
            action: Optional[str] = Query(None),
            year: Optional[str] = Query(None),
            title: Optional[str] = Query(None),
        ):
            """News listings, single articles, excerpts and a structure diagnostic."""
            action = action or "list_articles"
            if action not in NEWS_ACTIONS:
                raise ValidationError("Unknown action", details={"action": action})

            started = time.time()
            service = self.article_service

            if action == "list_news_years":
                years = await service.get_available_years()
                return self._conditional_response(
                    request,
                    {"success": True, "years": years},
                    self.policies["years"],
                    extra_headers=self._timing_headers(started),
                )

            if action == "debug_news":
                debug = await service.describe_structure()
                return JSONResponse(
                    content={"success": True, "debug": debug},
                    headers={"Cache-Control": "no-store"},
                )

            if action == "list_articles":
                year = validate_year(year)
                articles = [article.to_dict() for article in await service.list_articles(year)]
                return self._conditional_response(
                    request,
                    {"success": True, "articles": articles, "total": len(articles), "year": year},
                    self.policies["news"],
                    last_modified=latest_modified(articles),
                    extra_headers=self._timing_headers(started, service.listing_cache.was_hit),
                )

            if not title or not year:
                raise ValidationError("Missing title or year parameter")
            year = validate_year(year)

            if action == "article":
                article = await service.get_article(title, year)
                if article is None:
                    raise NotFoundError("Article not found", details={"year": year, "title": title})
                return self._conditional_response(
                    request,
                    {"success": True, **article.to_dict()},
                    self.policies["article"],
                    last_modified=parse_timestamp(article.modified_at),
                    extra_headers=self._timing_headers(started, service.article_cache.was_hit),
                )

            excerpt = await service.get_article_excerpt(year, title)
            return self._conditional_response(
                request,
                {"success": True, "excerpt": excerpt},
                self.policies["article"],
                extra_headers=self._timing_headers(started, service.article_cache.was_hit),
            )

    async def _image_response(self, request: Request, item_id: str, size: Optional[str]) -> Response:
        started = time.time()
        content = await self.gallery_service.get_image_content(item_id, size)
        result = evaluate(
            None,
            self.policies["image"],
            if_none_match=request.headers.get("If-None-Match"),
            etag=compute_bytes_etag(content.data),
        )
        headers = dict(result.headers)
        headers.update(self._timing_headers(started, self.gallery_service.content_cache.was_hit))
        if result.not_modified:
            return Response(status_code=304, headers=headers)
        return Response(content=content.data, media_type=content.mime_type, headers=headers)


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = ProxyService(config)
    return service.app


if __name__ == "__main__":
    service = ProxyService()
    service.run()
