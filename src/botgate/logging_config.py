# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for the gate.

``serve`` and ``check`` call :func:`configure` once at startup. Development
output uses ConsoleRenderer, ``--json-logs`` switches to JSONRenderer.
Verification tokens are scrubbed from every rendered event.

Leaf module: no botgate imports.
"""

from __future__ import annotations

import logging
import re
import sys

import structlog

# Per-request INFO lines from the HTTP client libraries duplicate our own
# and carry the full verification URL.
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")

_TOKEN_PARAM = re.compile(r"([?&]token=)[^&\s\"']+")


def _redact_tokens(logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: mask ``token=`` query values in the event text."""
    event = event_dict.get("event")
    if isinstance(event, str) and "token=" in event:
        event_dict["event"] = _TOKEN_PARAM.sub(r"\1<redacted>", event)
    return event_dict


def _resolve_level(level: str) -> int:
    value = getattr(logging, level.upper(), None)
    return value if isinstance(value, int) else logging.INFO


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Configure structlog with stdlib bridge.

    Args:
        json_output: True for JSON lines (production), False for human-readable.
        level: Root logger level (default INFO). Unknown names fall back to INFO.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _redact_tokens,
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared_processors,
        )
    )

    root_level = _resolve_level(level)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(root_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))
