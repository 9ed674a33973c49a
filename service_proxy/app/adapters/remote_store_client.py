"""
HTTP client for the remote hierarchical file store.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx

from shared.errors import TransportError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..auth.credential_cache import CredentialCache


LISTING_FIELDS = (
    "id",
    "name",
    "createdDateTime",
    "lastModifiedDateTime",
    "webUrl",
    "size",
    "file",
    "folder",
)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def is_missing_listing(error: TransportError) -> bool:
    """True when a listing's own folder is absent: a 404 on its first page."""
    return error.is_not_found and "continuation_page" not in error.details


class DriveEndpoints:
    """URL builders for the store's drive API."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def site(self, host: str, path: str) -> str:
        return f"{self.base_url}/sites/{host}:/{path.strip('/')}"

    def _drive(self, site_id: str) -> str:
        return f"{self.base_url}/sites/{site_id}/drive"

    @staticmethod
    def _query(select: Optional[Iterable[str]], expand_thumbnails: bool) -> str:
        params = []
        if select:
            params.append("$select=" + ",".join(select))
        if expand_thumbnails:
            params.append("$expand=thumbnails")
        return "?" + "&".join(params) if params else ""

    def children_by_path(
        self,
        site_id: str,
        path: str,
        *,
        select: Optional[Iterable[str]] = LISTING_FIELDS,
        expand_thumbnails: bool = True,
    ) -> str:
        encoded = quote(path.strip("/"), safe="/")
        return f"{self._drive(site_id)}/root:/{encoded}:/children" + self._query(select, expand_thumbnails)

    def children_by_id(
        self,
        site_id: str,
        item_id: str,
        *,
        select: Optional[Iterable[str]] = None,
        expand_thumbnails: bool = False,
    ) -> str:
        return f"{self._drive(site_id)}/items/{item_id}/children" + self._query(select, expand_thumbnails)

    def item(self, site_id: str, item_id: str, *, select: Optional[Iterable[str]] = None) -> str:
        return f"{self._drive(site_id)}/items/{item_id}" + self._query(select, False)

    def item_by_path(self, site_id: str, path: str) -> str:
        return f"{self._drive(site_id)}/root:/{quote(path.strip('/'), safe='/')}"

    def content(self, site_id: str, item_id: str) -> str:
        return f"{self._drive(site_id)}/items/{item_id}/content"

    def thumbnail_content(self, site_id: str, item_id: str, size: str) -> str:
        return f"{self._drive(site_id)}/items/{item_id}/thumbnails/0/{size}/content"


class RemoteStoreClient:
    """
    Authenticated access to the remote store.

    ``call`` and ``call_paged`` return decoded JSON; ``fetch_content``
    follows redirects to the pre-authorized download location and returns
    raw bytes. Nothing is retried here.
    """

    def __init__(
        self,
        credentials: CredentialCache,
        *,
        timeout: float = 30.0,
        max_redirects: int = 5,
        auth_redirect_hosts: Iterable[str] = ("login.microsoftonline.com",),
        max_pages: int = 20,
        metrics: Optional[MetricsCollector] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.credentials = credentials
        self.max_redirects = max_redirects
        self.auth_redirect_hosts = {host.lower() for host in auth_redirect_hosts}
        self.max_pages = max_pages
        self.metrics = metrics
        self.logger = get_logger("proxy.remote_store")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _auth_headers(self) -> Dict[str, str]:
        credential = await self.credentials.get_credential()
        return {"Authorization": f"Bearer {credential.token}"}

    def _record(self, kind: str, outcome: str, started: float) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("remote_requests_total", kind=kind, outcome=outcome)
        self.metrics.observe_histogram("remote_request_duration_seconds", time.time() - started, kind=kind)

    async def call(self, url: str) -> Dict[str, Any]:
        """GET ``url`` and return the decoded JSON body."""
        headers = await self._auth_headers()
        started = time.time()
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.HTTPError as e:
            self._record("json", "error", started)
            self.logger.error("Remote store request failed", url=url, error=str(e))
            raise TransportError(
                "Remote store unavailable",
                details={"url": url, "http_error": str(e)}
            )

        if not response.is_success:
            self._record("json", "error", started)
            self.logger.warning("Remote store returned an error", url=url, status_code=response.status_code)
            raise TransportError(
                f"Remote store error: {response.status_code}",
                status_code=response.status_code,
                details={"url": url}
            )

        try:
            payload = response.json()
        except ValueError as e:
            self._record("json", "error", started)
            raise TransportError("Remote store returned invalid JSON", details={"url": url, "error": str(e)})

        self._record("json", "ok", started)
        return payload

    async def call_paged(self, url: str) -> List[Dict[str, Any]]:
        """Collect the ``value`` arrays of a listing and its continuation pages."""
        items: List[Dict[str, Any]] = []
        next_url: Optional[str] = url
        pages = 0
        while next_url and pages < self.max_pages:
            try:
                payload = await self.call(next_url)
            except TransportError as e:
                if pages:
                    e.details["continuation_page"] = pages + 1
                raise
            items.extend(item for item in payload.get("value", []) if isinstance(item, dict))
            next_url = payload.get("@odata.nextLink")
            pages += 1

        if next_url:
            self.logger.warning("Listing truncated at page limit", url=url, pages=pages)
        return items

    async def fetch_content(self, url: str, *, authenticated: bool = True) -> Tuple[bytes, str]:
        """
        Download binary content, following redirects.

        Returns ``(data, content_type)``. Too many redirects, a redirect to
        an identity-provider login host, or a non-2xx final response raise
        ``TransportError``.
        """
        headers = await self._auth_headers() if authenticated else {}
        started = time.time()
        redirects = 0
        try:
            response = await self._client.get(url, headers=headers, follow_redirects=False)
            while response.next_request is not None:
                redirects += 1
                if redirects > self.max_redirects:
                    self._record("content", "error", started)
                    raise TransportError(
                        "Too many redirects fetching content",
                        details={"url": url, "max_redirects": self.max_redirects}
                    )
                target = response.next_request
                if (target.url.host or "").lower() in self.auth_redirect_hosts:
                    self._record("content", "error", started)
                    self.logger.warning(
                        "Content request redirected to login",
                        url=url,
                        location_host=target.url.host,
                        redirects=redirects,
                    )
                    raise TransportError(
                        "Content request redirected to authentication",
                        details={"url": url, "auth_redirect": True}
                    )
                response = await self._client.send(target, follow_redirects=False)
        except httpx.HTTPError as e:
            self._record("content", "error", started)
            self.logger.error("Content download failed", url=url, error=str(e))
            raise TransportError(
                "Remote store unavailable",
                details={"url": url, "http_error": str(e)}
            )

        if not response.is_success:
            self._record("content", "error", started)
            self.logger.warning(
                "Content download returned an error",
                url=url,
                status_code=response.status_code,
                redirects=redirects,
            )
            raise TransportError(
                f"Content download failed: {response.status_code}",
                status_code=response.status_code,
                details={"url": url}
            )

        self._record("content", "ok", started)
        content_type = response.headers.get("Content-Type", DEFAULT_CONTENT_TYPE)
        return response.content, content_type.split(";")[0].strip() or DEFAULT_CONTENT_TYPE
