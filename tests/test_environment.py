"""
Tests for environment.py and run_config.py.

Covers:
  1. Host classification (loopback, allow-list, everything else)
  2. Backend / callback origin per environment
  3. Enabled strategies per environment
  4. Run config from env vars and CLI flags
"""

import argparse

import pytest

from handshake.environment import (
    EnvironmentProfile,
    EnvironmentResolver,
)
from handshake.models import Environment, StrategyKind
from handshake.run_config import HandshakeRunConfig

PROD_HOST = "one063development.onrender.com"


# ====================================================================
# 1. Classification
# ====================================================================

class TestClassify:

    @pytest.mark.parametrize("host", ["localhost", "127.0.0.1", "LOCALHOST", "app.localhost"])
    def test_loopback_is_development(self, host):
        assert EnvironmentResolver().classify(host) is Environment.DEVELOPMENT

    @pytest.mark.parametrize("host", [PROD_HOST, "ecommerce-client-1063.onrender.com"])
    def test_allow_listed_is_production(self, host):
        assert EnvironmentResolver().classify(host) is Environment.PRODUCTION

    @pytest.mark.parametrize("host", ["example.com", "", "onrender.com"])
    def test_anything_else_is_unrecognized(self, host):
        assert EnvironmentResolver().classify(host) is Environment.UNRECOGNIZED

    def test_custom_allow_list_replaces_default(self):
        resolver = EnvironmentResolver(["shop.example.com"])
        assert resolver.classify("shop.example.com") is Environment.PRODUCTION
        assert resolver.classify(PROD_HOST) is Environment.UNRECOGNIZED


# ====================================================================
# 2. Resolution
# ====================================================================

class TestResolve:

    def test_development(self):
        resolved = EnvironmentResolver().resolve("localhost")
        assert resolved.environment is Environment.DEVELOPMENT
        assert resolved.backend_base_url == "http://localhost:8000"
        assert resolved.external_origin == "http://localhost:5173"
        assert resolved.enabled_strategies == {StrategyKind.PASSWORD, StrategyKind.SIMULATED}

    def test_production(self):
        resolved = EnvironmentResolver().resolve(PROD_HOST)
        assert resolved.environment is Environment.PRODUCTION
        assert resolved.backend_base_url == "https://one063development.onrender.com"
        assert resolved.external_origin == "https://one063development.onrender.com"
        assert resolved.is_enabled(StrategyKind.WIDGET)
        assert resolved.is_enabled(StrategyKind.POPUP)
        assert not resolved.is_enabled(StrategyKind.SIMULATED)

    def test_unrecognized_uses_production_backend_password_only(self):
        resolved = EnvironmentResolver().resolve("example.com")
        assert resolved.environment is Environment.UNRECOGNIZED
        assert resolved.backend_base_url == "https://one063development.onrender.com"
        assert resolved.enabled_strategies == {StrategyKind.PASSWORD}

    def test_hostname_is_kept_as_given(self):
        assert EnvironmentResolver().resolve("LOCALHOST").hostname == "LOCALHOST"

    def test_profile_origin_strips_scheme_and_slash(self):
        profile = EnvironmentProfile(backend_base_url="x", domain="https://a.example.com/")
        assert profile.origin == "https://a.example.com"


# ====================================================================
# 3. Run config
# ====================================================================

class TestRunConfig:

    def test_defaults(self):
        cfg = HandshakeRunConfig()
        assert cfg.hostname == "localhost"
        assert cfg.poll_interval_s == 1.0
        assert cfg.popup_timeout_s == 300.0
        assert cfg.simulated_delay_s == 1.2
        assert PROD_HOST in cfg.production_hosts

    def test_from_env_types_values(self):
        cfg = HandshakeRunConfig.from_env({
            "HANDSHAKE_HOSTNAME": PROD_HOST,
            "HANDSHAKE_POLL_INTERVAL_S": "0.5",
            "HANDSHAKE_HEADLESS": "false",
            "HANDSHAKE_BOT_ID": "42",
        })
        assert cfg.hostname == PROD_HOST
        assert cfg.poll_interval_s == 0.5
        assert cfg.headless is False
        assert cfg.bot_id == "42"

    def test_from_env_ignores_invalid_numbers(self):
        cfg = HandshakeRunConfig.from_env({"HANDSHAKE_POPUP_TIMEOUT_S": "soon"})
        assert cfg.popup_timeout_s == 300.0

    def test_from_env_production_hosts_list(self):
        cfg = HandshakeRunConfig.from_env({
            "HANDSHAKE_HOSTNAME": "b.example.com",
            "HANDSHAKE_PRODUCTION_HOSTS": "a.example.com, b.example.com,",
            "HANDSHAKE_LOGIN_PAGE_URL": "https://b.example.com/login",
        })
        assert cfg.production_hosts == ["a.example.com", "b.example.com"]
        assert cfg.login_page_url == "https://b.example.com/login"
        assert cfg.resolve().environment is Environment.PRODUCTION

    def test_from_cli_args_overlays_base(self):
        args = argparse.Namespace(
            host=PROD_HOST, login_page=None, poll_interval=None, timeout=5.0,
            simulated_delay=None, backend_url="http://api.test", headed=True,
            serve_callback=False,
        )
        base = HandshakeRunConfig(simulated_delay_s=0.1)
        cfg = HandshakeRunConfig.from_cli_args(args, base=base)
        assert cfg.hostname == PROD_HOST
        assert cfg.popup_timeout_s == 5.0
        assert cfg.simulated_delay_s == 0.1
        assert cfg.headless is False
        assert cfg.resolve().backend_base_url == "http://api.test"

    def test_popup_spec_uses_external_origin(self):
        cfg = HandshakeRunConfig(hostname=PROD_HOST)
        spec = cfg.popup_spec(cfg.resolve())
        assert spec.origin == "https://one063development.onrender.com"
        assert spec.return_to == "https://one063development.onrender.com/telegram/callback"
        assert spec.url.startswith("https://oauth.telegram.org/auth?bot_id=6412343716&")
        assert "origin=https%3A%2F%2Fone063development.onrender.com" in spec.url
        assert spec.url.endswith("request_access=write")

    def test_widget_spec(self):
        spec = HandshakeRunConfig(widget_mount="#login").widget_spec()
        assert spec.mount_selector == "#login"
        assert spec.bot_username == "SignUp_MarsBot"
        assert spec.callback_name == "onTelegramAuth"
