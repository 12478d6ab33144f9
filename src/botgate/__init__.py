# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""botgate: edge bot-detection gate for ASGI reverse proxies.

Per gated request, a session id is read from the ``botd-request-id`` cookie,
the detection verification service is queried, and its header-encoded
multi-signal answer is reduced to a block/allow decision:
- signals: bot (automation tool), search bot, virtual machine, browser spoofing
- outcome: per-signal status/probability/kind plus the overall request status
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum

from .errors import OverallStatusNotProcessedError

# Signal names, in emission order
BOT = "bot"
SEARCH_BOT = "search_bot"
VM = "vm"
BROWSER_SPOOFING = "browser_spoofing"

NOT_COMPUTED = -1.0


class SignalStatus(StrEnum):
    """Normalized status of one signal (or of the whole verification)."""

    UNSET = "unset"
    PROCESSED = "processed"
    FAILED = "failed"
    OTHER = "other"  # service returned some other status; literal kept in raw_status


class UnavailableReason(StrEnum):
    """Why the pipeline could not produce trustworthy signals."""

    SESSION_MISSING = "session_missing"
    VERIFICATION_UNAVAILABLE = "verification_unavailable"
    STATUS_NOT_PROCESSED = "status_not_processed"


@dataclass(frozen=True, slots=True)
class SignalResult:
    """One independently evaluated detection signal."""

    status: SignalStatus = SignalStatus.UNSET
    probability: float = NOT_COMPUTED  # meaningful only when processed
    kind: str = ""  # e.g. "headless", "selenium"; empty = not classified
    raw_status: str = ""  # literal wire value for OTHER

    @property
    def processed(self) -> bool:
        return self.status is SignalStatus.PROCESSED


@dataclass(frozen=True, slots=True)
class VerificationOutcome:
    """Result of one verification round-trip, scoped to a single request."""

    request_id: str = ""
    request_status: SignalStatus = SignalStatus.UNSET
    raw_request_status: str = ""
    error_description: str | None = None
    signals: Mapping[str, SignalResult] = field(default_factory=dict)
    unavailable_reason: UnavailableReason | None = None
    malformed: tuple[str, ...] = ()  # signals whose probability could not be parsed

    @property
    def processed(self) -> bool:
        return self.request_status is SignalStatus.PROCESSED

    def signal(self, name: str) -> SignalResult:
        """Return the named signal, or an unset result if it was never parsed."""
        return self.signals.get(name, SignalResult())

    @property
    def bot(self) -> SignalResult:
        return self.signal(BOT)

    @property
    def search_bot(self) -> SignalResult:
        return self.signal(SEARCH_BOT)

    @property
    def vm(self) -> SignalResult:
        return self.signal(VM)

    @property
    def browser_spoofing(self) -> SignalResult:
        return self.signal(BROWSER_SPOOFING)

    def raise_for_status(self) -> None:
        """Raise :class:`OverallStatusNotProcessedError` unless the service processed the request."""
        if self.processed:
            return
        status = self.raw_request_status or self.request_status.value
        raise OverallStatusNotProcessedError(status, error_description=self.error_description)

    def unavailable(self, reason: UnavailableReason) -> VerificationOutcome:
        """Copy of this outcome marked unavailable; signals are dropped."""
        return replace(self, signals={}, unavailable_reason=reason)
