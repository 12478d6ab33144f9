# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Gate settings: argparse flags with ``BOTGATE_*`` environment overrides.

Precedence: explicit flag > environment variable > default. Boolean env vars
accept ``1``/``true``/``yes``. The verification token is required
(``--token`` / ``BOTGATE_TOKEN``).
"""

from __future__ import annotations

import argparse
import os
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass

from .cookies import CookiePolicy
from .decision import BOT_THRESHOLD, UnavailablePolicy
from .errors import ConfigurationError
from .registry import HeaderRegistry, get_registry

DEFAULT_RESULTS_URL = "https://botd.fpapi.io/api/v1/results"
DEFAULT_ORIGIN_URL = "http://127.0.0.1:8000"

_TRUE = ("1", "true", "yes")


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved, immutable gate configuration."""

    token: str
    results_url: str = DEFAULT_RESULTS_URL
    origin_url: str = DEFAULT_ORIGIN_URL
    origin_host: str | None = None
    gated_paths: tuple[str, ...] = ("/login",)
    passthrough_paths: tuple[str, ...] = ("/", "/img/favicon.ico")
    passthrough_prefixes: tuple[str, ...] = ("/other/",)
    registry: HeaderRegistry = get_registry("fpjs")
    unavailable_policy: UnavailablePolicy = UnavailablePolicy.FORWARD_SILENTLY
    cookie_policy: CookiePolicy = CookiePolicy.SUBSTRING
    mirror_blocked: bool = False
    expose_to_client: bool = False
    bot_threshold: float = BOT_THRESHOLD
    timeout: float = 10.0
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"
    json_logs: bool = False


def add_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the shared gate flags on *parser*."""
    parser.add_argument("--token", default=None, help="Verification service token (BOTGATE_TOKEN)")
    parser.add_argument("--results-url", default=None, help=f"Verification results URL (default: {DEFAULT_RESULTS_URL})")
    parser.add_argument("--origin-url", default=None, help=f"Origin base URL (default: {DEFAULT_ORIGIN_URL})")
    parser.add_argument("--origin-host", default=None, help="Host header sent to the origin")
    parser.add_argument(
        "--gated-path",
        action="append",
        default=None,
        help="Path guarded by bot detection. Repeatable (default: /login)",
    )
    parser.add_argument(
        "--passthrough-path",
        action="append",
        default=None,
        help="Path forwarded without detection. Repeatable (default: / and /img/favicon.ico)",
    )
    parser.add_argument(
        "--passthrough-prefix",
        action="append",
        default=None,
        help="Path prefix forwarded without detection. Repeatable (default: /other/)",
    )
    parser.add_argument("--registry", default=None, help="Header registry: fpjs (default) or botd")
    parser.add_argument(
        "--unavailable-policy",
        choices=[p.value for p in UnavailablePolicy],
        default=None,
        help="Headers added when detection is unavailable (default: silent)",
    )
    parser.add_argument(
        "--strict-cookies",
        action="store_true",
        default=False,
        help="Match the session cookie only at the start of a cookie entry",
    )
    parser.add_argument(
        "--mirror-blocked",
        action="store_true",
        default=False,
        help="Also forward blocked requests (forbidden body) to the origin",
    )
    parser.add_argument(
        "--expose-to-client",
        action="store_true",
        default=False,
        help="Copy signal headers onto the response sent to the client",
    )
    parser.add_argument("--bot-threshold", type=float, default=None, help="Block threshold (default: 0.5)")
    parser.add_argument("--timeout", type=float, default=None, help="Upstream timeout seconds (default: 10)")
    parser.add_argument("--host", default=None, help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: 8080)")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    parser.add_argument("--json-logs", action="store_true", default=False, help="Emit JSON log lines")


def _split(raw: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def settings_from_args(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> Settings:
    """Resolve parsed *args* plus environment overrides into :class:`Settings`.

    Raises:
        ConfigurationError: missing token or invalid value.
    """
    env = os.environ if environ is None else environ

    def _env(name: str) -> str | None:
        value = env.get(f"BOTGATE_{name}", "").strip()
        return value or None

    def _flag(name: str, current: bool) -> bool:
        return current or (env.get(f"BOTGATE_{name}", "").strip().lower() in _TRUE)

    token = _first(args.token, _env("TOKEN"))
    if not token:
        raise ConfigurationError("verification token is required (--token or BOTGATE_TOKEN)")

    defaults = Settings(token=token)

    try:
        registry = get_registry(_first(args.registry, _env("REGISTRY"), defaults.registry.name))
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from None

    policy_name = _first(args.unavailable_policy, _env("UNAVAILABLE_POLICY"), defaults.unavailable_policy.value)
    try:
        unavailable_policy = UnavailablePolicy(policy_name.lower())
    except ValueError:
        raise ConfigurationError(f"unknown unavailable policy {policy_name!r}") from None

    threshold = args.bot_threshold
    if threshold is None and _env("BOT_THRESHOLD"):
        try:
            threshold = float(_env("BOT_THRESHOLD"))
        except ValueError:
            raise ConfigurationError("BOTGATE_BOT_THRESHOLD must be a number") from None
    threshold = defaults.bot_threshold if threshold is None else threshold
    if not 0.0 <= threshold <= 1.0:
        raise ConfigurationError(f"bot threshold must be within [0, 1], got {threshold}")

    timeout = args.timeout
    if timeout is None and _env("TIMEOUT"):
        with suppress(ValueError):
            timeout = float(_env("TIMEOUT"))
    port = args.port
    if port is None and _env("PORT"):
        with suppress(ValueError):
            port = int(_env("PORT"))

    gated = args.gated_path or (_split(_env("GATED_PATHS")) if _env("GATED_PATHS") else defaults.gated_paths)
    passthrough = args.passthrough_path or (
        _split(_env("PASSTHROUGH_PATHS")) if _env("PASSTHROUGH_PATHS") else defaults.passthrough_paths
    )
    prefixes = args.passthrough_prefix or (
        _split(_env("PASSTHROUGH_PREFIXES")) if _env("PASSTHROUGH_PREFIXES") else defaults.passthrough_prefixes
    )

    strict = _flag("STRICT_COOKIES", args.strict_cookies)

    return Settings(
        token=token,
        results_url=_first(args.results_url, _env("RESULTS_URL"), defaults.results_url),
        origin_url=_first(args.origin_url, _env("ORIGIN_URL"), defaults.origin_url),
        origin_host=_first(args.origin_host, _env("ORIGIN_HOST")),
        gated_paths=tuple(gated),
        passthrough_paths=tuple(passthrough),
        passthrough_prefixes=tuple(prefixes),
        registry=registry,
        unavailable_policy=unavailable_policy,
        cookie_policy=CookiePolicy.STRICT if strict else CookiePolicy.SUBSTRING,
        mirror_blocked=_flag("MIRROR_BLOCKED", args.mirror_blocked),
        expose_to_client=_flag("EXPOSE_TO_CLIENT", args.expose_to_client),
        bot_threshold=threshold,
        timeout=defaults.timeout if timeout is None else timeout,
        host=_first(args.host, _env("HOST"), defaults.host),
        port=defaults.port if port is None else port,
        log_level=_first(args.log_level, _env("LOG_LEVEL"), defaults.log_level),
        json_logs=_flag("JSON_LOGS", args.json_logs),
    )


def load_settings(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """Parse *argv* (unknown flags ignored) and resolve :class:`Settings`."""
    parser = argparse.ArgumentParser(prog="botgate", add_help=False)
    add_arguments(parser)
    args, _ = parser.parse_known_args(argv)
    return settings_from_args(args, environ)
