# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for session-id extraction from the cookie header."""

from __future__ import annotations

import pytest

from botgate.cookies import CookiePolicy, extract_session_id

NAME = "botd-request-id="


# ── TestSubstringPolicy ───────────────────────────────────────────────


class TestSubstringPolicy:
    """Default policy: first occurrence anywhere in the header."""

    def test_single_cookie(self):
        assert extract_session_id("botd-request-id=abc123", NAME) == "abc123"

    def test_value_ends_at_semicolon(self):
        assert extract_session_id("botd-request-id=value123;rest=1", NAME) == "value123"

    def test_value_ends_at_space(self):
        assert extract_session_id("botd-request-id=value123 trailing", NAME) == "value123"

    def test_cookie_in_the_middle(self):
        header = "session=xyz; botd-request-id=abc123; theme=dark"
        assert extract_session_id(header, NAME) == "abc123"

    def test_absent_name(self):
        assert extract_session_id("session=xyz; theme=dark", NAME) is None

    def test_absent_header(self):
        assert extract_session_id(None, NAME) is None

    def test_empty_value(self):
        assert extract_session_id("botd-request-id=; theme=dark", NAME) == ""

    def test_first_occurrence_wins(self):
        header = "botd-request-id=first; botd-request-id=second"
        assert extract_session_id(header, NAME) == "first"

    def test_matches_inside_other_cookie_value(self):
        """Known looseness of the compatible policy."""
        header = "other=xbotd-request-id=spoofed; botd-request-id=real"
        assert extract_session_id(header, NAME) == "spoofed"

    def test_matches_suffix_of_longer_name(self):
        header = "legacy-botd-request-id=old"
        assert extract_session_id(header, NAME) == "old"


# ── TestStrictPolicy ──────────────────────────────────────────────────


class TestStrictPolicy:
    """Opt-in policy: name must open a cookie entry."""

    def test_single_cookie(self):
        assert extract_session_id("botd-request-id=abc123", NAME, policy=CookiePolicy.STRICT) == "abc123"

    def test_ignores_match_inside_value(self):
        header = "other=xbotd-request-id=spoofed; botd-request-id=real"
        assert extract_session_id(header, NAME, policy=CookiePolicy.STRICT) == "real"

    def test_ignores_suffix_of_longer_name(self):
        header = "legacy-botd-request-id=old"
        assert extract_session_id(header, NAME, policy=CookiePolicy.STRICT) is None

    def test_leading_whitespace_tolerated(self):
        header = "a=1;   botd-request-id=abc; b=2"
        assert extract_session_id(header, NAME, policy=CookiePolicy.STRICT) == "abc"

    def test_tab_before_entry(self):
        header = "a=1;\tbotd-request-id=abc"
        assert extract_session_id(header, NAME, policy=CookiePolicy.STRICT) == "abc"

    def test_absent(self):
        assert extract_session_id("a=1; b=2", NAME, policy=CookiePolicy.STRICT) is None


# ── TestEdgeCases ─────────────────────────────────────────────────────


class TestEdgeCases:
    @pytest.mark.parametrize("policy", list(CookiePolicy))
    def test_empty_name_never_matches(self, policy):
        assert extract_session_id("botd-request-id=abc", "", policy=policy) is None

    @pytest.mark.parametrize("policy", list(CookiePolicy))
    def test_empty_header(self, policy):
        assert extract_session_id("", NAME, policy=policy) is None

    def test_value_running_to_end(self):
        assert extract_session_id("a=1; botd-request-id=tail", NAME) == "tail"
