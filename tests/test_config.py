# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for settings resolution: flags, BOTGATE_* env, defaults."""

from __future__ import annotations

import pytest

from botgate.config import DEFAULT_ORIGIN_URL, DEFAULT_RESULTS_URL, Settings, load_settings
from botgate.cookies import CookiePolicy
from botgate.decision import UnavailablePolicy
from botgate.errors import ConfigurationError
from botgate.registry import BOTD_HEADERS, FPJS_HEADERS

ENV = {"BOTGATE_TOKEN": "env-token"}


class TestDefaults:
    def test_defaults(self):
        settings = load_settings([], ENV)
        assert settings == Settings(token="env-token")
        assert settings.results_url == DEFAULT_RESULTS_URL
        assert settings.origin_url == DEFAULT_ORIGIN_URL
        assert settings.gated_paths == ("/login",)
        assert settings.passthrough_paths == ("/", "/img/favicon.ico")
        assert settings.passthrough_prefixes == ("/other/",)
        assert settings.registry is FPJS_HEADERS
        assert settings.unavailable_policy is UnavailablePolicy.FORWARD_SILENTLY
        assert settings.cookie_policy is CookiePolicy.SUBSTRING
        assert settings.bot_threshold == 0.5
        assert not settings.mirror_blocked
        assert not settings.expose_to_client

    def test_token_required(self):
        with pytest.raises(ConfigurationError, match="token is required"):
            load_settings([], {})

    def test_blank_token_env_ignored(self):
        with pytest.raises(ConfigurationError):
            load_settings([], {"BOTGATE_TOKEN": "   "})


class TestFlags:
    def test_flag_beats_env(self):
        settings = load_settings(["--token", "flag-token", "--port", "9000"], {**ENV, "BOTGATE_PORT": "7000"})
        assert settings.token == "flag-token"
        assert settings.port == 9000

    def test_repeatable_paths(self):
        settings = load_settings(["--gated-path", "/login", "--gated-path", "/signup"], ENV)
        assert settings.gated_paths == ("/login", "/signup")

    def test_boolean_flags(self):
        settings = load_settings(["--mirror-blocked", "--expose-to-client", "--strict-cookies", "--json-logs"], ENV)
        assert settings.mirror_blocked
        assert settings.expose_to_client
        assert settings.cookie_policy is CookiePolicy.STRICT
        assert settings.json_logs

    def test_registry_and_policy(self):
        settings = load_settings(["--registry", "botd", "--unavailable-policy", "diagnostics"], ENV)
        assert settings.registry is BOTD_HEADERS
        assert settings.unavailable_policy is UnavailablePolicy.FORWARD_WITH_DIAGNOSTICS

    def test_unknown_flags_ignored(self):
        assert load_settings(["--workers", "4"], ENV).token == "env-token"


class TestEnvironment:
    def test_env_values(self):
        env = {
            **ENV,
            "BOTGATE_ORIGIN_URL": "http://origin.internal:9000",
            "BOTGATE_ORIGIN_HOST": "www.example.com",
            "BOTGATE_GATED_PATHS": "/login, /signup",
            "BOTGATE_PASSTHROUGH_PREFIXES": "/static/,/assets/",
            "BOTGATE_REGISTRY": "BOTD",
            "BOTGATE_BOT_THRESHOLD": "0.8",
            "BOTGATE_TIMEOUT": "2.5",
            "BOTGATE_MIRROR_BLOCKED": "true",
            "BOTGATE_STRICT_COOKIES": "1",
        }
        settings = load_settings([], env)
        assert settings.origin_url == "http://origin.internal:9000"
        assert settings.origin_host == "www.example.com"
        assert settings.gated_paths == ("/login", "/signup")
        assert settings.passthrough_prefixes == ("/static/", "/assets/")
        assert settings.registry is BOTD_HEADERS
        assert settings.bot_threshold == 0.8
        assert settings.timeout == 2.5
        assert settings.mirror_blocked
        assert settings.cookie_policy is CookiePolicy.STRICT

    def test_false_boolean_env(self):
        assert not load_settings([], {**ENV, "BOTGATE_MIRROR_BLOCKED": "no"}).mirror_blocked

    def test_bad_numeric_env_falls_back(self):
        settings = load_settings([], {**ENV, "BOTGATE_PORT": "http", "BOTGATE_TIMEOUT": "soon"})
        assert settings.port == 8080
        assert settings.timeout == 10.0


class TestValidation:
    def test_unknown_registry(self):
        with pytest.raises(ConfigurationError, match="unknown header registry"):
            load_settings(["--registry", "acme"], ENV)

    def test_unknown_policy_env(self):
        with pytest.raises(ConfigurationError, match="unavailable policy"):
            load_settings([], {**ENV, "BOTGATE_UNAVAILABLE_POLICY": "loud"})

    @pytest.mark.parametrize("value", ["-0.1", "1.5"])
    def test_threshold_range(self, value):
        with pytest.raises(ConfigurationError, match="threshold"):
            load_settings(["--bot-threshold", value], ENV)

    def test_threshold_not_a_number(self):
        with pytest.raises(ConfigurationError, match="number"):
            load_settings([], {**ENV, "BOTGATE_BOT_THRESHOLD": "half"})
