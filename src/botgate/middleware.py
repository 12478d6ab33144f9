# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Bot-detection ASGI middleware — decision & propagation stage.

Pure ASGI middleware (no ``BaseHTTPMiddleware``) following the
``GatewayMiddleware`` pattern: request metadata goes into ``scope["state"]``,
response headers are injected through a send-wrapper.

Flow per HTTP request:
1. ``SignalCollector.collect()`` on the ``cookie`` header. An unreachable
   verification service ends the request with a 502 problem response;
   the inner app is not called.
2. ``decide()`` → BLOCKED / FORWARDED / UNAVAILABLE.
3. BLOCKED: annotated copy with the forbidden body optionally mirrored to
   the inner app (fire-and-forget), client gets 403 + fixed JSON.
   FORWARDED / UNAVAILABLE: annotated request passed to the inner app.

Annotation headers replace any same-named header sent by the client.
Outcome and disposition are stored in ``scope["state"]["botgate"]``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

import structlog
from starlette.responses import Response

from . import VerificationOutcome
from .collector import SignalCollector
from .decision import (
    BOT_THRESHOLD,
    FORBIDDEN_BODY,
    Disposition,
    UnavailablePolicy,
    annotation_headers,
    decide,
)
from .errors import VerificationTransportError
from .problem_details import from_verification_transport

logger = logging.getLogger(__name__)

# ── Fire-and-forget task set (prevents GC) ───────────────────────────

_background_tasks: set[asyncio.Task] = set()


def _fire_and_forget(coro: Coroutine) -> None:
    task = asyncio.get_running_loop().create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


async def drain_background_tasks(timeout: float) -> None:
    """Wait up to *timeout* seconds for pending mirrors, then cancel the rest."""
    pending = set(_background_tasks)
    if not pending:
        return
    _done, pending = await asyncio.wait(pending, timeout=timeout)
    if pending:
        logger.warning("Cancelling %d unfinished background task(s) at shutdown", len(pending))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


# ── Header helpers ───────────────────────────────────────────────────


def _get_header(raw_headers: list[tuple[bytes, bytes]], name: bytes) -> str | None:
    """Get the first header value by lowercase name."""
    for hdr_name, hdr_value in raw_headers:
        if hdr_name.lower() == name:
            return hdr_value.decode("latin-1")
    return None


def _encode(headers: list[tuple[str, str]]) -> list[tuple[bytes, bytes]]:
    return [(name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in headers]


def _replace_headers(
    raw_headers: list[tuple[bytes, bytes]],
    new_headers: list[tuple[bytes, bytes]],
) -> list[tuple[bytes, bytes]]:
    """Drop headers named in *new_headers*, then append *new_headers*."""
    names = {name for name, _ in new_headers}
    kept = [(name, value) for name, value in raw_headers if name.lower() not in names]
    return kept + new_headers


def _make_send_wrapper(send: Callable, headers: list[tuple[bytes, bytes]]) -> Callable:
    """Inject *headers* into the first ``http.response.start``."""
    _injected = False

    async def wrapped_send(message: dict) -> None:
        nonlocal _injected
        if message["type"] == "http.response.start" and not _injected:
            _injected = True
            message = {**message, "headers": _replace_headers(list(message.get("headers", [])), headers)}
        await send(message)

    return wrapped_send


async def _discard(message: dict) -> None:
    return None


def _body_receive(body: bytes) -> Callable:
    """Receive callable replaying *body* once, then a disconnect."""
    _sent = False

    async def receive() -> dict:
        nonlocal _sent
        if not _sent:
            _sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return {"type": "http.disconnect"}

    return receive


# ── Middleware ────────────────────────────────────────────────────────


class BotGateMiddleware:
    """Pure ASGI middleware applying the bot-detection decision.

    Constructor:
        ``BotGateMiddleware(app, collector, *, unavailable_policy, mirror_blocked,
        expose_to_client, threshold)``

    ``app`` is the origin transport. Non-HTTP scopes pass through.
    """

    def __init__(
        self,
        app: Any,
        collector: SignalCollector,
        *,
        unavailable_policy: UnavailablePolicy = UnavailablePolicy.FORWARD_SILENTLY,
        mirror_blocked: bool = False,
        expose_to_client: bool = False,
        threshold: float = BOT_THRESHOLD,
    ) -> None:
        self.app = app
        self.collector = collector
        self.registry = collector.registry
        self.unavailable_policy = unavailable_policy
        self.mirror_blocked = mirror_blocked
        self.expose_to_client = expose_to_client
        self.threshold = threshold

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope.setdefault("state", {})

        raw_headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
        cookie = _get_header(raw_headers, self.registry.cookie_header.lower().encode("latin-1"))

        try:
            outcome = await self.collector.collect(cookie)
        except VerificationTransportError as exc:
            path = scope.get("path", "")
            logger.error("Verification service unreachable: path=%s error=%s", path, exc)
            response = from_verification_transport(exc, path=path).to_response()
            await response(scope, receive, send)
            return

        disposition = decide(outcome, signal=self.registry.primary_signal, threshold=self.threshold)
        headers = _encode(
            annotation_headers(outcome, disposition, self.registry, policy=self.unavailable_policy)
        )
        scope["state"]["botgate"] = {"outcome": outcome, "disposition": disposition}

        with structlog.contextvars.bound_contextvars(session_id=outcome.request_id, disposition=str(disposition)):
            _log_decision(outcome, disposition, scope.get("path", ""), self.registry.primary_signal)

            if disposition is Disposition.BLOCKED:
                await self._block(scope, receive, send, headers)
                return

            forwarded = {**scope, "headers": _replace_headers(list(raw_headers), headers)}
            if self.expose_to_client and headers:
                send = _make_send_wrapper(send, headers)
            await self.app(forwarded, receive, send)

    async def _block(self, scope: dict, receive: Callable, send: Callable, headers: list[tuple[bytes, bytes]]) -> None:
        if self.mirror_blocked:
            body_headers = [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(FORBIDDEN_BODY)).encode("latin-1")),
            ]
            mirrored = {
                **scope,
                "headers": _replace_headers(list(scope.get("headers", [])), headers + body_headers),
            }
            _fire_and_forget(self._mirror(mirrored))

        response = Response(
            content=FORBIDDEN_BODY,
            status_code=403,
            media_type="application/json",
        )
        if self.expose_to_client:
            send = _make_send_wrapper(send, headers)
        await response(scope, receive, send)

    async def _mirror(self, scope: dict) -> None:
        """Forward the blocked request to the origin; the response is dropped."""
        try:
            await self.app(scope, _body_receive(FORBIDDEN_BODY), _discard)
        except Exception:
            logger.warning("Mirroring blocked request failed (path=%s)", scope.get("path", ""), exc_info=True)


def _log_decision(outcome: VerificationOutcome, disposition: Disposition, path: str, signal: str) -> None:
    if disposition is Disposition.BLOCKED:
        primary = outcome.signal(signal)
        logger.info(
            "Blocked bot: path=%s id=%s probability=%.2f kind=%s",
            path,
            outcome.request_id,
            primary.probability,
            primary.kind or "-",
        )
    elif disposition is Disposition.UNAVAILABLE:
        logger.info("Detection unavailable (%s), failing open: path=%s", outcome.unavailable_reason, path)
    else:
        logger.debug("Forwarding: path=%s id=%s", path, outcome.request_id)
