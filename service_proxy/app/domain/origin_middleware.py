"""
Origin allow-list handling for cross-origin browser requests.
"""

import functools
from typing import Iterable

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import Message, Receive, Scope, Send


ALLOWED_METHODS = ("GET", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type", "If-None-Match", "If-Modified-Since", "X-Request-ID")
EXPOSED_HEADERS = ("ETag", "Last-Modified", "X-Cache", "X-Performance-Fetch-Time", "X-Request-ID")


class OriginAllowListMiddleware(CORSMiddleware):
    """
    CORS restricted to an explicit origin list.

    Every ``OPTIONS`` request is answered here with 204 and no body. Unlisted
    origins get no ``Access-Control-Allow-Origin`` rather than a 400.
    """

    def __init__(self, app, allowed_origins: Iterable[str]):
        super().__init__(
            app,
            allow_origins=[origin.rstrip("/") for origin in allowed_origins],
            allow_methods=ALLOWED_METHODS,
            allow_headers=ALLOWED_HEADERS,
            expose_headers=EXPOSED_HEADERS,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            response = self.preflight_response(request_headers=Headers(scope=scope))
            await response(scope, receive, send)
            return
        await super().__call__(scope, receive, send)

    def preflight_response(self, request_headers: Headers) -> Response:
        headers = dict(self.preflight_headers)
        origin = request_headers.get("origin")
        if origin and self.is_allowed_origin(origin=origin):
            headers.update(self.simple_headers)
            headers["Access-Control-Allow-Origin"] = origin
        return Response(status_code=204, headers=headers)

    async def send(self, message: Message, send: Send, request_headers: Headers) -> None:
        await super().send(message, functools.partial(_merge_vary, send=send), request_headers)


async def _merge_vary(message: Message, send: Send) -> None:
    """Collapse repeated ``Vary`` entries into one header."""
    if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        values = [
            value.strip()
            for header in headers.getlist("Vary")
            for value in header.split(",")
            if value.strip()
        ]
        if values:
            headers["Vary"] = ", ".join(dict.fromkeys(values))
    await send(message)
