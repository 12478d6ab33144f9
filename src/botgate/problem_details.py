# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RFC 9457 Problem Details for the gate's own error responses.

Used for everything the gate answers itself except the bot block, whose
body is a fixed legacy literal (see ``decision.FORBIDDEN_BODY``):

- ``ProblemType``   — StrEnum error taxonomy.
- ``ProblemDetail`` — frozen dataclass (→ JSON / Starlette response).
- ``sanitize_detail()`` — scrub tokens and URL credentials from messages.
- Factory functions (``from_not_found``, ``from_origin_unavailable``, …).

Type URI namespace: ``https://www.retio.ai/botgate/errors/{slug}``
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# ── Constants ────────────────────────────────────────────────────────

_ERROR_BASE = "https://www.retio.ai/botgate/errors"

MAX_DETAIL_LENGTH = 200

ALLOWED_METHODS = "GET, HEAD, POST, OPTIONS"

# ── ProblemType taxonomy ─────────────────────────────────────────────


class ProblemType(StrEnum):
    NOT_FOUND = "not-found"
    METHOD_NOT_ALLOWED = "method-not-allowed"
    ORIGIN_UNAVAILABLE = "origin-unavailable"
    VERIFICATION_UNREACHABLE = "verification-unreachable"

    @property
    def uri(self) -> str:
        """Full type URI for RFC 9457 ``type`` field."""
        return f"{_ERROR_BASE}/{self.value}"


_TYPE_METADATA: dict[ProblemType, tuple[int, str]] = {
    ProblemType.NOT_FOUND: (404, "Not Found"),
    ProblemType.METHOD_NOT_ALLOWED: (405, "Method Not Allowed"),
    ProblemType.ORIGIN_UNAVAILABLE: (502, "Origin Unavailable"),
    ProblemType.VERIFICATION_UNREACHABLE: (502, "Verification Unreachable"),
}

# ── Secret sanitization patterns ─────────────────────────────────────

_SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"([?&]token=)[^&\s]+"), r"\1<redacted>"),
    (re.compile(r"Bearer\s+\S+"), "Bearer <redacted>"),
    (
        re.compile(r"(?:API_KEY|SECRET|TOKEN|PASSWORD)\s*[=:]\s*\S+", re.IGNORECASE),
        "<redacted>",
    ),
    (re.compile(r"://[^@\s/]+@"), "://<redacted>@"),
]


def sanitize_detail(text: str) -> str:
    """Scrub secrets from *text*, then truncate to ``MAX_DETAIL_LENGTH``."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    if len(text) > MAX_DETAIL_LENGTH:
        text = text[:MAX_DETAIL_LENGTH] + "..."
    return text


# ── ProblemDetail dataclass ──────────────────────────────────────────

_STANDARD_FIELDS = frozenset({"type", "title", "status", "detail", "instance"})


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """RFC 9457 Problem Detail object."""

    type: str = "about:blank"
    title: str = ""
    status: int = 500
    detail: str = ""
    instance: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """RFC 9457 JSON dict. Empty optional fields omitted, extensions merged at top level."""
        d: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.title:
            d["title"] = self.title
        if self.detail:
            d["detail"] = self.detail
        if self.instance:
            d["instance"] = self.instance
        for k, v in self.extensions.items():
            if k not in _STANDARD_FIELDS:
                d[k] = v
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_response(self):
        """Starlette ``JSONResponse`` with ``application/problem+json``."""
        from starlette.responses import JSONResponse

        headers = {"Cache-Control": "no-store", **self.headers}
        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status,
            media_type="application/problem+json",
            headers=headers,
        )


# ── Factories ────────────────────────────────────────────────────────


def _build(ptype: ProblemType, detail: str, **kwargs: Any) -> ProblemDetail:
    status, title = _TYPE_METADATA[ptype]
    return ProblemDetail(type=ptype.uri, title=title, status=status, detail=sanitize_detail(detail), **kwargs)


def from_not_found(path: str) -> ProblemDetail:
    return _build(ProblemType.NOT_FOUND, "The page you requested could not be found.", instance=path)


def from_method_not_allowed(method: str) -> ProblemDetail:
    return _build(
        ProblemType.METHOD_NOT_ALLOWED,
        f"Method {method} is not allowed.",
        headers={"Allow": ALLOWED_METHODS},
    )


def from_origin_unavailable(exc: BaseException, *, path: str = "") -> ProblemDetail:
    return _build(
        ProblemType.ORIGIN_UNAVAILABLE,
        f"Origin request failed: {exc}",
        instance=path,
    )


def from_verification_transport(exc: BaseException, *, path: str = "") -> ProblemDetail:
    return _build(
        ProblemType.VERIFICATION_UNREACHABLE,
        f"Bot verification could not be completed: {exc}",
        instance=path,
    )
