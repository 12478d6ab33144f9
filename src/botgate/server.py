# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Application assembly: middleware chain, upstream clients, lifespan.

Request flow: Router → BotGate (gated paths only) → OriginProxy.

Two shared ``httpx.AsyncClient`` pools (verification, origin) are created
with the app and closed on lifespan shutdown, after pending mirrors of
blocked requests have drained.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from .collector import SignalCollector
from .config import Settings
from .middleware import BotGateMiddleware, drain_background_tasks
from .proxy import OriginProxy
from .routing import RouteTable, RouterMiddleware
from .verification import VerificationClient

logger = logging.getLogger(__name__)

# Seconds in-flight blocked-request mirrors get to finish before the pools close.
_SHUTDOWN_GRACE = 5.0


class BotGateApp:
    """Top-level ASGI app. Handles lifespan, delegates everything else to the router."""

    def __init__(
        self,
        settings: Settings,
        *,
        verification_client: httpx.AsyncClient | None = None,
        origin_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.verification_client = verification_client or httpx.AsyncClient(timeout=settings.timeout)
        self.origin_client = origin_client or httpx.AsyncClient(timeout=settings.timeout, follow_redirects=False)

        verifier = VerificationClient(
            self.verification_client,
            results_url=settings.results_url,
            token=settings.token,
        )
        self.collector = SignalCollector(verifier, settings.registry, cookie_policy=settings.cookie_policy)
        origin = OriginProxy(self.origin_client, settings.origin_url, host=settings.origin_host)
        gate = BotGateMiddleware(
            origin,
            self.collector,
            unavailable_policy=settings.unavailable_policy,
            mirror_blocked=settings.mirror_blocked,
            expose_to_client=settings.expose_to_client,
            threshold=settings.bot_threshold,
        )
        routes = RouteTable.from_lists(
            settings.gated_paths,
            settings.passthrough_paths,
            settings.passthrough_prefixes,
        )
        self.app = RouterMiddleware(gate, origin, routes)

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(receive, send)
            return
        await self.app(scope, receive, send)

    async def _lifespan(self, receive: Callable, send: Callable) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                logger.info(
                    "botgate started: origin=%s gated=%s registry=%s",
                    self.settings.origin_url,
                    ",".join(self.settings.gated_paths),
                    self.settings.registry.name,
                )
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.aclose()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def aclose(self) -> None:
        await drain_background_tasks(_SHUTDOWN_GRACE)
        await self.verification_client.aclose()
        await self.origin_client.aclose()


def create_app(settings: Settings, **clients: httpx.AsyncClient) -> BotGateApp:
    """Build the gate ASGI app. ``clients`` lets tests inject mock transports."""
    return BotGateApp(settings, **clients)
