# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""botgate CLI: serve, check commands.

Usage:
    botgate serve [--origin-url URL] [--gated-path PATH ...] [--token TOKEN]
    botgate check --session-id ID [--token TOKEN] [--registry fpjs|botd]

``check`` runs the signal collector once against the verification service
and prints the outcome, the decision and the headers the gate would emit.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

import httpx

from . import VerificationOutcome
from .collector import SignalCollector
from .config import Settings, add_arguments, settings_from_args
from .decision import annotation_headers, decide
from .errors import ConfigurationError, VerificationTransportError
from .logging_config import configure
from .verification import VerificationClient

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="botgate", description="Edge bot-detection gate")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the gate in front of the origin")
    add_arguments(serve)

    check = sub.add_parser("check", help="Query the verification service for one session id")
    add_arguments(check)
    check.add_argument("--session-id", required=True, help="Detection session id (botd-request-id cookie value)")
    return parser


def outcome_to_dict(outcome: VerificationOutcome, settings: Settings) -> dict:
    """JSON-serializable view of *outcome* for the ``check`` command."""
    disposition = decide(outcome, signal=settings.registry.primary_signal, threshold=settings.bot_threshold)
    return {
        "request_id": outcome.request_id,
        "request_status": outcome.raw_request_status or outcome.request_status.value,
        "error_description": outcome.error_description,
        "unavailable_reason": outcome.unavailable_reason.value if outcome.unavailable_reason else None,
        "malformed": list(outcome.malformed),
        "signals": {
            name: {
                "status": result.status.value,
                "raw_status": result.raw_status,
                "probability": result.probability,
                "kind": result.kind,
            }
            for name, result in outcome.signals.items()
        },
        "disposition": disposition.value,
        "headers": dict(
            annotation_headers(outcome, disposition, settings.registry, policy=settings.unavailable_policy)
        ),
    }


async def _check(settings: Settings, session_id: str, client: httpx.AsyncClient | None = None) -> dict:
    owned = client is None
    client = client or httpx.AsyncClient(timeout=settings.timeout)
    try:
        verifier = VerificationClient(client, results_url=settings.results_url, token=settings.token)
        collector = SignalCollector(verifier, settings.registry, cookie_policy=settings.cookie_policy)
        cookie = f"{settings.registry.cookie_name}{session_id}"
        outcome = await collector.collect(cookie)
        return outcome_to_dict(outcome, settings)
    finally:
        if owned:
            await client.aclose()


def _serve(settings: Settings) -> None:
    import uvicorn

    from .server import create_app

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        lifespan="on",
    )


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = settings_from_args(args)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    configure(json_output=settings.json_logs, level=settings.log_level)

    if args.command == "serve":
        _serve(settings)
        return 0

    try:
        result = asyncio.run(_check(settings, args.session_id))
    except VerificationTransportError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0 if result["unavailable_reason"] is None else 1


if __name__ == "__main__":
    sys.exit(main())
