"""
Unified Run Configuration
=========================
Single source of truth for ALL handshake defaults and runtime limits.

Every module (CLI, resolver, bridge, strategies) reads from this object.
Environment variables (``HANDSHAKE_*``, typically from a ``.env`` file) and
CLI flags populate it; component-specific objects are built *from* it via
factory methods.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .environment import (
    DEFAULT_PRODUCTION_HOSTS,
    EnvironmentProfile,
    EnvironmentResolver,
    ResolvedEnvironment,
)
from .surface import PopupSpec, WidgetSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "hostname": "localhost",
    # Backends / front-end domains per environment
    "dev_backend_url": "http://localhost:8000",
    "dev_domain": "localhost:5173",
    "prod_backend_url": "https://one063development.onrender.com",
    "prod_domain": "one063development.onrender.com",   # hostname only, no scheme
    "callback_path": "/telegram/callback",
    # Third party
    "bot_username": "SignUp_MarsBot",
    "bot_id": "6412343716",
    "widget_src": "https://telegram.org/js/telegram-widget.js?22",
    "widget_mount": "#tg-login-container",
    "oauth_url": "https://oauth.telegram.org/auth",
    # Timing (seconds)
    "poll_interval_s": 1.0,          # popup-closed check
    "popup_timeout_s": 300.0,        # hard bound on any open surface
    "simulated_delay_s": 1.2,        # fake human latency in development
    "http_timeout_s": 15.0,          # backend exchange
    # Browser (CLI only)
    "headless": True,
}

_ENV_PREFIX = "HANDSHAKE_"


@dataclass
class HandshakeRunConfig:
    """
    Unified configuration consumed by every handshake subsystem.

    Populate via:
      - ``HandshakeRunConfig()``                 → all defaults
      - ``HandshakeRunConfig(hostname="x.com")`` → override one value
      - ``HandshakeRunConfig.from_env()``        → from ``HANDSHAKE_*`` vars
      - ``HandshakeRunConfig.from_cli_args(ns)`` → from argparse Namespace
    """

    # ---- Environment ----
    hostname: str = _DEFAULTS["hostname"]
    production_hosts: List[str] = field(
        default_factory=lambda: sorted(DEFAULT_PRODUCTION_HOSTS)
    )
    dev_backend_url: str = _DEFAULTS["dev_backend_url"]
    dev_domain: str = _DEFAULTS["dev_domain"]
    prod_backend_url: str = _DEFAULTS["prod_backend_url"]
    prod_domain: str = _DEFAULTS["prod_domain"]
    callback_path: str = _DEFAULTS["callback_path"]

    # ---- Third party ----
    bot_username: str = _DEFAULTS["bot_username"]
    bot_id: str = _DEFAULTS["bot_id"]
    widget_src: str = _DEFAULTS["widget_src"]
    widget_mount: str = _DEFAULTS["widget_mount"]
    oauth_url: str = _DEFAULTS["oauth_url"]

    # ---- Timing ----
    poll_interval_s: float = _DEFAULTS["poll_interval_s"]
    popup_timeout_s: float = _DEFAULTS["popup_timeout_s"]
    simulated_delay_s: float = _DEFAULTS["simulated_delay_s"]
    http_timeout_s: float = _DEFAULTS["http_timeout_s"]

    # ---- Browser (CLI) ----
    login_page_url: Optional[str] = None
    headless: bool = _DEFAULTS["headless"]
    serve_callback_page: bool = False

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HandshakeRunConfig":
        """Build config from ``HANDSHAKE_<FIELD>`` environment variables.

        Call ``dotenv.load_dotenv()`` first to pick up a ``.env`` file.
        ``HANDSHAKE_PRODUCTION_HOSTS`` is a comma-separated list.
        """
        env = os.environ if environ is None else environ
        cfg = cls()

        for name, default in _DEFAULTS.items():
            raw = env.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            try:
                if isinstance(default, bool):
                    value = raw.strip().lower() in ("1", "true", "yes", "on")
                elif isinstance(default, float):
                    value = float(raw)
                else:
                    value = raw.strip()
            except ValueError:
                logger.warning(f"[CONFIG] Ignoring invalid {_ENV_PREFIX}{name.upper()}={raw!r}")
                continue
            setattr(cfg, name, value)

        hosts = env.get(f"{_ENV_PREFIX}PRODUCTION_HOSTS")
        if hosts:
            cfg.production_hosts = [h.strip() for h in hosts.split(",") if h.strip()]

        login_page = env.get(f"{_ENV_PREFIX}LOGIN_PAGE_URL")
        if login_page:
            cfg.login_page_url = login_page.strip()
        return cfg

    @classmethod
    def from_cli_args(cls, args, base: Optional["HandshakeRunConfig"] = None) -> "HandshakeRunConfig":
        """Overlay an argparse Namespace (``__main__.py``) onto *base*."""
        cfg = base or cls()
        overrides = {
            "hostname": getattr(args, "host", None),
            "login_page_url": getattr(args, "login_page", None),
            "poll_interval_s": getattr(args, "poll_interval", None),
            "popup_timeout_s": getattr(args, "timeout", None),
            "simulated_delay_s": getattr(args, "simulated_delay", None),
        }
        for name, value in overrides.items():
            if value is not None:
                setattr(cfg, name, value)

        backend_url = getattr(args, "backend_url", None)
        if backend_url:
            cfg.dev_backend_url = backend_url
            cfg.prod_backend_url = backend_url
        if getattr(args, "headed", False):
            cfg.headless = False
        if getattr(args, "serve_callback", False):
            cfg.serve_callback_page = True
        return cfg

    # -----------------------------------------------------------------------
    # Converters to component objects
    # -----------------------------------------------------------------------
    def to_resolver(self) -> EnvironmentResolver:
        return EnvironmentResolver(
            self.production_hosts,
            development=EnvironmentProfile(
                backend_base_url=self.dev_backend_url,
                domain=self.dev_domain,
                scheme="http",
            ),
            production=EnvironmentProfile(
                backend_base_url=self.prod_backend_url,
                domain=self.prod_domain,
            ),
        )

    def resolve(self) -> ResolvedEnvironment:
        """Resolve ``hostname`` once; callers keep the result."""
        return self.to_resolver().resolve(self.hostname)

    def widget_spec(self) -> WidgetSpec:
        return WidgetSpec(
            script_src=self.widget_src,
            bot_username=self.bot_username,
            mount_selector=self.widget_mount,
        )

    def popup_spec(self, resolved: ResolvedEnvironment) -> PopupSpec:
        origin = resolved.external_origin
        return PopupSpec(
            auth_url=self.oauth_url,
            bot_id=self.bot_id,
            origin=origin,
            return_to=f"{origin}{self.callback_path}",
        )

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, resolved: Optional[ResolvedEnvironment] = None) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("HANDSHAKE RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Host:             {self.hostname}")
        if resolved is not None:
            logger.info(f"  Environment:      {resolved.environment.value}")
            logger.info(f"  Backend:          {resolved.backend_base_url}")
            logger.info(f"  Callback Origin:  {resolved.external_origin}")
            enabled = ", ".join(sorted(k.value for k in resolved.enabled_strategies))
            logger.info(f"  Strategies:       {enabled}")
        logger.info(f"  Popup Poll:       {self.poll_interval_s}s")
        logger.info(f"  Surface Timeout:  {self.popup_timeout_s}s")
        logger.info(f"  HTTP Timeout:     {self.http_timeout_s}s")
        if self.login_page_url:
            logger.info(f"  Login Page:       {self.login_page_url}")
            logger.info(f"  Headless:         {self.headless}")
        logger.info("=" * 60)
