# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Verification service client and response-header parser.

Query:   ``GET <results_url>?header&token=<token>&id=<session_id>``
Answer:  status code + headers; the body is ignored.

Parsing rules (per signal, each signal independent of the others):

1. status header absent            → FAILED
2. status == processed token       → read probability (absent → FAILED,
                                     unparsable → MalformedSignalError),
                                     then kind if the signal has one
3. any other status                → OTHER, literal kept

Per-signal headers are only read when the overall request status is the
processed token.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from urllib.parse import quote

import httpx

from . import SignalResult, SignalStatus, VerificationOutcome
from .errors import MalformedSignalError, VerificationTransportError, VerificationUnavailableError
from .registry import HeaderRegistry, SignalSpec

logger = logging.getLogger(__name__)

_MODE_TOKEN = "header"


# ── Client ────────────────────────────────────────────────────────────


class VerificationClient:
    """Single-attempt client for the verification service.

    The httpx client is owned by the caller (shared pool, timeouts configured
    there). No retries.
    """

    def __init__(self, client: httpx.AsyncClient, *, results_url: str, token: str) -> None:
        self._client = client
        self.results_url = results_url
        self._token = token

    def build_query(self, session_id: str) -> str:
        return f"{_MODE_TOKEN}&token={quote(self._token, safe='')}&id={quote(session_id, safe='')}"

    def build_url(self, session_id: str) -> str:
        return f"{self.results_url}?{self.build_query(session_id)}"

    async def fetch(self, session_id: str) -> httpx.Response:
        """Query the service for *session_id*.

        Raises:
            VerificationTransportError: network failure (connect, timeout, ...).
            VerificationUnavailableError: non-2xx status.
        """
        try:
            response = await self._client.get(self.build_url(session_id))
        except httpx.HTTPError as exc:
            raise VerificationTransportError(f"verification request failed: {type(exc).__name__}") from exc

        if not response.is_success:
            # token deliberately left out of the log line
            logger.error(
                "Verification status code is %d (url=%s id=%s)",
                response.status_code,
                self.results_url,
                session_id,
            )
            raise VerificationUnavailableError(
                f"verification service returned {response.status_code}",
                status_code=response.status_code,
            )
        return response


def response_headers(response: httpx.Response) -> httpx.Headers:
    """Response headers decoded byte-for-byte.

    Values are read as latin-1 so any byte sequence (UTF-8 included) survives
    a later ``.encode("latin-1")`` unchanged.
    """
    return httpx.Headers(response.headers.raw, encoding="latin-1")


# ── Parsing ───────────────────────────────────────────────────────────


def _parse_probability(spec: SignalSpec, raw: str) -> float:
    try:
        probability = float(raw)
    except ValueError:
        raise MalformedSignalError(spec.name, header=spec.prob_header, value=raw) from None
    if not math.isfinite(probability) or not 0.0 <= probability <= 1.0:
        raise MalformedSignalError(spec.name, header=spec.prob_header, value=raw)
    return probability


def parse_signal(headers: Mapping[str, str], spec: SignalSpec, registry: HeaderRegistry) -> SignalResult:
    """Parse one signal's header triple.

    Raises:
        MalformedSignalError: processed status with an unparsable probability.
    """
    status = headers.get(spec.status_header)
    if status is None:
        return SignalResult(status=SignalStatus.FAILED)

    if registry.classify(status) is not SignalStatus.PROCESSED:
        return SignalResult(status=SignalStatus.OTHER, raw_status=status)

    raw_prob = headers.get(spec.prob_header)
    if raw_prob is None:
        return SignalResult(status=SignalStatus.FAILED)
    probability = _parse_probability(spec, raw_prob)

    kind = ""
    if spec.kind_header:
        kind = headers.get(spec.kind_header) or ""

    return SignalResult(status=SignalStatus.PROCESSED, probability=probability, kind=kind, raw_status=status)


def parse_outcome(headers: Mapping[str, str], registry: HeaderRegistry, *, request_id: str) -> VerificationOutcome:
    """Assemble the full outcome from a verification response's headers.

    Malformed signals are recorded as FAILED and listed in ``outcome.malformed``;
    the other signals are unaffected.
    """
    raw_status = headers.get(registry.request_status_header)
    if raw_status is None:
        logger.warning("Verification response has no %s header", registry.request_status_header)
        return VerificationOutcome(request_id=request_id, request_status=SignalStatus.FAILED)

    if registry.classify(raw_status) is not SignalStatus.PROCESSED:
        error_description = None
        if registry.error_description_header:
            error_description = headers.get(registry.error_description_header)
        failed = raw_status == registry.failed_token
        return VerificationOutcome(
            request_id=request_id,
            request_status=SignalStatus.FAILED if failed else SignalStatus.OTHER,
            raw_request_status=raw_status,
            error_description=error_description,
        )

    signals: dict[str, SignalResult] = {}
    malformed: list[str] = []
    for spec in registry.signals:
        try:
            signals[spec.name] = parse_signal(headers, spec, registry)
        except MalformedSignalError as exc:
            logger.warning("%s", exc)
            signals[spec.name] = SignalResult(status=SignalStatus.FAILED)
            malformed.append(spec.name)

    return VerificationOutcome(
        request_id=request_id,
        request_status=SignalStatus.PROCESSED,
        raw_request_status=raw_status,
        signals=signals,
        malformed=tuple(malformed),
    )
