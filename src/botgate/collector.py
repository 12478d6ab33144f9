# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Signal collector: cookie → verification query → parsed outcome.

A missing session, an unavailable service and a not-processed answer are
turned into an outcome marked with an ``UnavailableReason`` so the caller
can fail open. A transport failure (service unreachable) propagates as
:class:`VerificationTransportError`.
"""

from __future__ import annotations

import logging

from . import SignalStatus, UnavailableReason, VerificationOutcome
from .cookies import CookiePolicy, extract_session_id
from .errors import OverallStatusNotProcessedError, SessionMissingError, VerificationUnavailableError
from .registry import HeaderRegistry
from .verification import VerificationClient, parse_outcome, response_headers

logger = logging.getLogger(__name__)


class SignalCollector:
    """Runs the signal-collection stage for one request at a time.

    Stateless between calls; one instance is shared by all requests.
    """

    def __init__(
        self,
        verifier: VerificationClient,
        registry: HeaderRegistry,
        *,
        cookie_policy: CookiePolicy = CookiePolicy.SUBSTRING,
    ) -> None:
        self.verifier = verifier
        self.registry = registry
        self.cookie_policy = cookie_policy

    def session_id(self, cookie_header: str | None) -> str:
        """Extract the detection session id.

        Raises:
            SessionMissingError: no cookie header, no session cookie, or an empty value.
        """
        if cookie_header is None:
            raise SessionMissingError("cookie header cannot be found")
        value = extract_session_id(cookie_header, self.registry.cookie_name, policy=self.cookie_policy)
        if not value:
            raise SessionMissingError(f"cookie {self.registry.cookie_name.rstrip('=')!r} cannot be found")
        return value

    async def collect(self, cookie_header: str | None) -> VerificationOutcome:
        try:
            session_id = self.session_id(cookie_header)
        except SessionMissingError as exc:
            logger.info("Detection skipped: %s", exc)
            return _unavailable("", UnavailableReason.SESSION_MISSING)

        try:
            response = await self.verifier.fetch(session_id)
        except VerificationUnavailableError as exc:
            logger.warning("Verification unavailable for id=%s: %s", session_id, exc)
            return _unavailable(session_id, UnavailableReason.VERIFICATION_UNAVAILABLE)

        outcome = parse_outcome(response_headers(response), self.registry, request_id=session_id)
        try:
            outcome.raise_for_status()
        except OverallStatusNotProcessedError as exc:
            logger.warning("Verification not processed for id=%s: %s", session_id, exc)
            return outcome.unavailable(UnavailableReason.STATUS_NOT_PROCESSED)
        return outcome


def _unavailable(request_id: str, reason: UnavailableReason) -> VerificationOutcome:
    return VerificationOutcome(
        request_id=request_id,
        request_status=SignalStatus.FAILED,
        unavailable_reason=reason,
    )
