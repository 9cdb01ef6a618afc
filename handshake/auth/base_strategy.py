"""
Base Strategy (Abstract)
========================
Defines the contract that ALL login strategies must implement.

A strategy knows how to turn a user action into the JSON body of ONE
backend exchange, and how to word its failures.  It never talks to the
backend and never owns attempt state; the orchestrator does both.

To add a new strategy:
    1. Create a module inheriting from ``BaseStrategy``
    2. Implement ``kind`` and ``credential_body()``
    3. Register it in ``strategy_factory.py`` via ``StrategyFactory.register()``
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..bridge import ExternalChannelBridge
from ..errors import NetworkError
from ..models import AuthAttempt, ExternalCredential, Intent, StrategyKind

if TYPE_CHECKING:
    from ..environment import ResolvedEnvironment
    from ..run_config import HandshakeRunConfig

logger = logging.getLogger(__name__)


class BaseStrategy(ABC):
    """Abstract base for every login strategy."""

    intent: Intent = Intent.LOGIN

    # ── Identity ──────────────────────────────────────────────────

    @property
    @abstractmethod
    def kind(self) -> StrategyKind:
        ...

    # ── Construction ──────────────────────────────────────────────

    @classmethod
    def from_config(
        cls,
        config: "HandshakeRunConfig",
        resolved: "ResolvedEnvironment",
        *,
        bridge: Optional[ExternalChannelBridge] = None,
        intent: Intent = Intent.LOGIN,
        **form: Any,
    ) -> "BaseStrategy":
        """Build the strategy from run configuration (used by the factory)."""
        raise NotImplementedError(f"{cls.__name__} cannot be built from config")

    # ── Credential ────────────────────────────────────────────────

    @abstractmethod
    async def credential_body(self, attempt: AuthAttempt) -> Dict[str, Any]:
        """Obtain the credential and return the exchange request body.

        May suspend for a long time (external strategies).  Raises a
        ``HandshakeError`` subclass on failure.
        """
        ...

    # ── Wording ───────────────────────────────────────────────────

    @abstractmethod
    def rejection_fallback(self) -> str:
        """Message shown when the backend rejects without a message."""
        ...

    def network_message(self, error: NetworkError) -> str:
        return error.message


class ExternalStrategy(BaseStrategy):
    """Strategies whose credential is an opaque third-party payload.

    The payload is forwarded verbatim as ``{"telegramData": payload}``.
    """

    def __init__(self, *, intent: Intent = Intent.LOGIN):
        self.intent = intent

    @abstractmethod
    async def obtain_credential(self, attempt: AuthAttempt) -> ExternalCredential:
        ...

    async def credential_body(self, attempt: AuthAttempt) -> Dict[str, Any]:
        credential = await self.obtain_credential(attempt)
        return {"telegramData": credential}

    def rejection_fallback(self) -> str:
        if self.intent is Intent.REGISTER:
            return "Telegram registration failed"
        return "Telegram login failed"

    def network_message(self, error: NetworkError) -> str:
        if self.intent is Intent.REGISTER:
            return "Network error during Telegram registration"
        return f"Network error: {error.detail}" if error.detail else error.message
