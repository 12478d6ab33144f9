# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Block decision and normalized signal headers."""

from __future__ import annotations

from enum import StrEnum

from . import BOT, VerificationOutcome
from .registry import HeaderRegistry

BOT_THRESHOLD = 0.5

FORBIDDEN_BODY = b'{"error": {"code": 403, "description": "Forbidden"}}'


class Disposition(StrEnum):
    BLOCKED = "blocked"
    FORWARDED = "forwarded"
    UNAVAILABLE = "unavailable"


class UnavailablePolicy(StrEnum):
    """What an unavailable outcome adds to the forwarded request."""

    FORWARD_SILENTLY = "silent"
    FORWARD_WITH_DIAGNOSTICS = "diagnostics"


def is_bot(outcome: VerificationOutcome, *, signal: str = BOT, threshold: float = BOT_THRESHOLD) -> bool:
    """Inclusive threshold on the primary signal of a processed outcome."""
    primary = outcome.signal(signal)
    return outcome.processed and primary.processed and primary.probability >= threshold


def decide(outcome: VerificationOutcome, *, signal: str = BOT, threshold: float = BOT_THRESHOLD) -> Disposition:
    if outcome.unavailable_reason is not None or not outcome.processed:
        return Disposition.UNAVAILABLE
    if is_bot(outcome, signal=signal, threshold=threshold):
        return Disposition.BLOCKED
    return Disposition.FORWARDED


def _request_headers(outcome: VerificationOutcome, registry: HeaderRegistry) -> list[tuple[str, str]]:
    headers: list[tuple[str, str]] = []
    if outcome.request_id:
        headers.append((registry.request_id_header, outcome.request_id))
    headers.append(
        (registry.request_status_header, registry.status_token(outcome.request_status, outcome.raw_request_status))
    )
    return headers


def signal_headers(outcome: VerificationOutcome, registry: HeaderRegistry) -> list[tuple[str, str]]:
    """Full annotation: request id/status plus every signal of the registry.

    ``*-status`` is always emitted; ``*-prob`` (two decimals) and a non-empty
    ``*-type`` only for processed signals.
    """
    headers = _request_headers(outcome, registry)
    for spec in registry.signals:
        result = outcome.signal(spec.name)
        headers.append((spec.status_header, registry.status_token(result.status, result.raw_status)))
        if not result.processed:
            continue
        headers.append((spec.prob_header, f"{result.probability:.2f}"))
        if spec.kind_header and result.kind:
            headers.append((spec.kind_header, result.kind))
    return headers


def diagnostic_headers(outcome: VerificationOutcome, registry: HeaderRegistry) -> list[tuple[str, str]]:
    """Request id/status and the service's error description, if any."""
    headers = _request_headers(outcome, registry)
    if registry.error_description_header and outcome.error_description:
        headers.append((registry.error_description_header, outcome.error_description))
    return headers


def annotation_headers(
    outcome: VerificationOutcome,
    disposition: Disposition,
    registry: HeaderRegistry,
    *,
    policy: UnavailablePolicy = UnavailablePolicy.FORWARD_SILENTLY,
) -> list[tuple[str, str]]:
    """Headers to attach for *disposition*."""
    if disposition is Disposition.UNAVAILABLE:
        if policy is UnavailablePolicy.FORWARD_WITH_DIAGNOSTICS:
            return diagnostic_headers(outcome, registry)
        return []
    return signal_headers(outcome, registry)
