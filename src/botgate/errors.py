# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""botgate exception hierarchy.

All botgate-specific errors inherit from BotGateError. Detection errors
(everything under DetectionError) are recovered by failing open; only
OriginUnavailableError reaches the client, as a 502.
"""

from __future__ import annotations


class BotGateError(Exception):
    """Base exception for all botgate errors."""


class ConfigurationError(BotGateError):
    """Missing or invalid settings (token, threshold, registry name, ...)."""


class DetectionError(BotGateError):
    """Base for failures of the detection pipeline. Always fail open."""


class SessionMissingError(DetectionError):
    """No cookie header, or no detection session cookie in it."""


class VerificationTransportError(DetectionError):
    """Network-level failure reaching the verification service."""


class VerificationUnavailableError(DetectionError):
    """Verification service answered with a non-2xx HTTP status."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class OverallStatusNotProcessedError(DetectionError):
    """Verification service reported a non-success request status."""

    def __init__(self, status: str, *, error_description: str | None = None) -> None:
        message = f"verification status is {status!r}"
        if error_description:
            message = f"{message}: {error_description}"
        super().__init__(message)
        self.status = status
        self.error_description = error_description


class MalformedSignalError(DetectionError):
    """A processed signal carried a probability that is not a number in [0, 1]."""

    def __init__(self, signal: str, *, header: str, value: str) -> None:
        super().__init__(f"signal {signal!r}: malformed probability {value!r} in {header}")
        self.signal = signal
        self.header = header
        self.value = value


class OriginUnavailableError(BotGateError):
    """Origin backend could not be reached."""
