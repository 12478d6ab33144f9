# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import botgate  # noqa: F401
except ImportError:
    raise ImportError("botgate is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from tests._helpers import VerificationStub, bot_headers


@pytest.fixture
def verification_stub() -> VerificationStub:
    """Verification service answering with a processed, high-probability bot."""
    return VerificationStub(bot_headers())


@pytest.fixture(autouse=True)
def _clear_contextvars():
    """Keep structlog contextvars from leaking between tests."""
    import structlog

    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
