# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Inbound router — method filter + path table in front of the gate.

- GET / HEAD / POST: routed by path.
- OPTIONS, PURGE: straight to origin, no detection.
- anything else: 405 with ``Allow``.

Paths: gated → detection pipeline, passthrough (exact or prefix) → origin,
everything else → 404.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .problem_details import from_method_not_allowed, from_not_found

_ROUTED_METHODS: frozenset[str] = frozenset({"GET", "HEAD", "POST"})
_DIRECT_METHODS: frozenset[str] = frozenset({"OPTIONS", "PURGE"})


class RouteKind(StrEnum):
    GATED = "gated"
    PASSTHROUGH = "passthrough"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class RouteTable:
    gated_paths: frozenset[str]
    passthrough_paths: frozenset[str] = frozenset()
    passthrough_prefixes: tuple[str, ...] = ()

    @classmethod
    def from_lists(
        cls,
        gated: Iterable[str],
        passthrough: Iterable[str] = (),
        prefixes: Iterable[str] = (),
    ) -> RouteTable:
        return cls(
            gated_paths=frozenset(gated),
            passthrough_paths=frozenset(passthrough),
            passthrough_prefixes=tuple(prefixes),
        )

    def classify(self, path: str) -> RouteKind:
        # gated wins over passthrough for the same path
        if path in self.gated_paths:
            return RouteKind.GATED
        if path in self.passthrough_paths:
            return RouteKind.PASSTHROUGH
        if any(path.startswith(prefix) for prefix in self.passthrough_prefixes):
            return RouteKind.PASSTHROUGH
        return RouteKind.UNKNOWN


class RouterMiddleware:
    """Pure ASGI dispatcher between the gated app and the origin app.

    Non-HTTP scopes go to the origin app.
    """

    def __init__(self, gated_app: Any, origin_app: Any, routes: RouteTable) -> None:
        self.gated_app = gated_app
        self.origin_app = origin_app
        self.routes = routes

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.origin_app(scope, receive, send)
            return

        method = scope.get("method", "GET").upper()
        if method in _DIRECT_METHODS:
            await self.origin_app(scope, receive, send)
            return
        if method not in _ROUTED_METHODS:
            await from_method_not_allowed(method).to_response()(scope, receive, send)
            return

        path = scope.get("path", "/")
        kind = self.routes.classify(path)
        if kind is RouteKind.GATED:
            await self.gated_app(scope, receive, send)
        elif kind is RouteKind.PASSTHROUGH:
            await self.origin_app(scope, receive, send)
        else:
            await from_not_found(path).to_response()(scope, receive, send)
