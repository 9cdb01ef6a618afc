"""
Environment Resolver
====================
Derives, from the host name the login page is served from, which
strategies are legal and which backend to talk to.

The host lists are data (``EnvironmentProfile`` / allow-list), never
scattered conditionals, so a resolver can be built for any deployment and
tested by injecting a host name.

Usage::

    from handshake.environment import EnvironmentResolver

    resolved = EnvironmentResolver().resolve("localhost")
    resolved.environment        # Environment.DEVELOPMENT
    resolved.backend_base_url   # "http://localhost:8000"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional

from .models import Environment, StrategyKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Known hosts
# ---------------------------------------------------------------------------

LOOPBACK_HOSTS: FrozenSet[str] = frozenset({
    "localhost", "127.0.0.1", "::1", "[::1]",
})

DEFAULT_PRODUCTION_HOSTS: FrozenSet[str] = frozenset({
    "one063development.onrender.com",
    "ecommerce-client-1063.onrender.com",
})

# Strategies legal in each environment.  Widget and popup need a trusted
# callback origin, which only production deployments have.
_ENABLED: Dict[Environment, FrozenSet[StrategyKind]] = {
    Environment.DEVELOPMENT: frozenset({
        StrategyKind.PASSWORD, StrategyKind.SIMULATED,
    }),
    Environment.PRODUCTION: frozenset({
        StrategyKind.PASSWORD, StrategyKind.WIDGET, StrategyKind.POPUP,
    }),
    Environment.UNRECOGNIZED: frozenset({
        StrategyKind.PASSWORD,
    }),
}


@dataclass(frozen=True)
class EnvironmentProfile:
    """Backend address + front-end domain for one environment."""
    backend_base_url: str
    domain: str
    """Host (and port) the login page is served from, without scheme."""
    scheme: str = "https"

    @property
    def origin(self) -> str:
        domain = self.domain
        for prefix in ("https://", "http://"):
            if domain.startswith(prefix):
                domain = domain[len(prefix):]
        return f"{self.scheme}://{domain.rstrip('/')}"


DEVELOPMENT_PROFILE = EnvironmentProfile(
    backend_base_url="http://localhost:8000",
    domain="localhost:5173",
    scheme="http",
)

PRODUCTION_PROFILE = EnvironmentProfile(
    backend_base_url="https://one063development.onrender.com",
    domain="one063development.onrender.com",
)


@dataclass(frozen=True)
class ResolvedEnvironment:
    """Read-only configuration produced once per process."""
    environment: Environment
    hostname: str
    backend_base_url: str
    external_origin: str
    """Origin third parties call back to (popup ``origin`` / ``return_to``)."""
    enabled_strategies: FrozenSet[StrategyKind]

    def is_enabled(self, kind: StrategyKind) -> bool:
        return kind in self.enabled_strategies


class EnvironmentResolver:
    """Maps a host name to a ``ResolvedEnvironment``."""

    def __init__(
        self,
        production_hosts: Optional[Iterable[str]] = None,
        *,
        development: EnvironmentProfile = DEVELOPMENT_PROFILE,
        production: EnvironmentProfile = PRODUCTION_PROFILE,
    ):
        hosts = DEFAULT_PRODUCTION_HOSTS if production_hosts is None else production_hosts
        self.production_hosts: FrozenSet[str] = frozenset(
            h.strip().lower() for h in hosts if h and h.strip()
        )
        self.development = development
        self.production = production

    def classify(self, hostname: str) -> Environment:
        host = (hostname or "").strip().lower()
        if host in LOOPBACK_HOSTS or "localhost" in host:
            return Environment.DEVELOPMENT
        if host in self.production_hosts:
            return Environment.PRODUCTION
        return Environment.UNRECOGNIZED

    def resolve(self, hostname: str) -> ResolvedEnvironment:
        environment = self.classify(hostname)
        # Unrecognized hosts still talk to the production backend; they just
        # cannot use strategies that need a trusted callback origin.
        if environment is Environment.DEVELOPMENT:
            profile = self.development
        else:
            profile = self.production

        resolved = ResolvedEnvironment(
            environment=environment,
            hostname=hostname,
            backend_base_url=profile.backend_base_url.rstrip("/"),
            external_origin=profile.origin,
            enabled_strategies=_ENABLED[environment],
        )
        logger.info(
            f"[ENV] Host {hostname!r} → {environment.value} "
            f"(backend {resolved.backend_base_url})"
        )
        return resolved
