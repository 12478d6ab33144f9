# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Detection session id extraction from the ``cookie`` header.

Two policies:

- ``SUBSTRING`` (default) — first occurrence of ``<name>=`` anywhere in the
  header. Compatible with the deployed edge service, but can match inside the
  value of another cookie (``other=xbotd-request-id=...``).
- ``STRICT`` — ``<name>=`` must open a ``;``-delimited cookie entry.

In both cases the value runs up to the next ``;`` or space, or the end.
"""

from __future__ import annotations

from enum import StrEnum

_TERMINATORS = frozenset(" ;")


class CookiePolicy(StrEnum):
    SUBSTRING = "substring"
    STRICT = "strict"


def _value_from(cookie_header: str, start: int) -> str:
    end = start
    while end < len(cookie_header) and cookie_header[end] not in _TERMINATORS:
        end += 1
    return cookie_header[start:end]


def _find_entry(cookie_header: str, name: str) -> int:
    """Offset of the value of the first entry named *name*, or -1."""
    offset = 0
    for entry in cookie_header.split(";"):
        stripped = entry.lstrip(" \t")
        if stripped.startswith(name):
            return offset + (len(entry) - len(stripped)) + len(name)
        offset += len(entry) + 1
    return -1


def extract_session_id(
    cookie_header: str | None,
    name: str,
    *,
    policy: CookiePolicy = CookiePolicy.SUBSTRING,
) -> str | None:
    """Return the value of cookie *name* (given with its trailing ``=``), or ``None``.

    A present cookie with an empty value yields ``""``; callers decide whether
    that counts as missing.
    """
    if cookie_header is None or not name:
        return None

    if policy is CookiePolicy.STRICT:
        start = _find_entry(cookie_header, name)
        if start < 0:
            return None
    else:
        position = cookie_header.find(name)
        if position < 0:
            return None
        start = position + len(name)

    return _value_from(cookie_header, start)
