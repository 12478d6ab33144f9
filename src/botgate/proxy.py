# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Origin transport — pure ASGI reverse proxy to the origin application.

Forwards method, path, query, headers and the buffered request body with a
shared ``httpx.AsyncClient``; streams the origin's status, headers and raw body
back unchanged (hop-by-hop headers dropped both ways).

Single attempt. A transport failure is logged as ``OriginUnavailableError``
and answered with a 502 RFC 9457 problem+json response.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from .errors import OriginUnavailableError
from .problem_details import from_origin_unavailable

logger = logging.getLogger(__name__)

_HOP_BY_HOP: frozenset[bytes] = frozenset(
    {
        b"connection",
        b"keep-alive",
        b"proxy-authenticate",
        b"proxy-authorization",
        b"te",
        b"trailer",
        b"transfer-encoding",
        b"upgrade",
    }
)


async def _read_body(receive: Callable) -> bytes:
    parts: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        parts.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(parts)


def _request_headers(raw_headers: list[tuple[bytes, bytes]], host: str | None) -> list[tuple[bytes, bytes]]:
    headers = [
        (name, value)
        for name, value in raw_headers
        if name.lower() not in _HOP_BY_HOP and name.lower() not in (b"host", b"content-length")
    ]
    if host:
        headers.append((b"host", host.encode("latin-1")))
    return headers


class OriginProxy:
    """Pure ASGI app forwarding every HTTP request to ``origin_url``.

    ``host`` overrides the ``Host`` header sent to the origin; otherwise httpx
    derives it from ``origin_url``.
    """

    def __init__(self, client: httpx.AsyncClient, origin_url: str, *, host: str | None = None) -> None:
        self.client = client
        self.origin_url = origin_url.rstrip("/")
        self.host = host

    def build_url(self, scope: dict) -> str:
        url = self.origin_url + scope.get("path", "/")
        query = scope.get("query_string", b"")
        if query:
            url = f"{url}?{query.decode('latin-1')}"
        return url

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            return

        body = await _read_body(receive)
        request = self.client.build_request(
            scope.get("method", "GET"),
            self.build_url(scope),
            headers=_request_headers(scope.get("headers", []), self.host),
            content=body,
        )

        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as exc:
            error = OriginUnavailableError(f"{type(exc).__name__} for {request.method} {scope.get('path', '')}")
            logger.error("Origin unavailable: %s", error)
            problem = from_origin_unavailable(error, path=scope.get("path", ""))
            await problem.to_response()(scope, receive, send)
            return

        try:
            await send(
                {
                    "type": "http.response.start",
                    "status": response.status_code,
                    "headers": [
                        (name.lower(), value)
                        for name, value in response.headers.raw
                        if name.lower() not in _HOP_BY_HOP
                    ],
                }
            )
            async for chunk in response.aiter_raw():
                await send({"type": "http.response.body", "body": chunk, "more_body": True})
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        finally:
            await response.aclose()
