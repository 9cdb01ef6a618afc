"""
Strategy Factory
================
Maps a ``StrategyKind`` to its strategy class and builds instances from
run configuration.

The orchestrator is the ONLY caller; it never imports concrete strategy
modules directly.

Usage::

    from handshake.auth.strategy_factory import StrategyFactory

    strategy = StrategyFactory.create(
        StrategyKind.POPUP, config, resolved, bridge=bridge,
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from ..models import Intent, StrategyKind
from .base_strategy import BaseStrategy

if TYPE_CHECKING:
    from ..bridge import ExternalChannelBridge
    from ..environment import ResolvedEnvironment
    from ..run_config import HandshakeRunConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Strategy Registry
# ---------------------------------------------------------------------------

# Global registry: maps strategy kind → strategy class
_STRATEGY_REGISTRY: Dict[StrategyKind, Type[BaseStrategy]] = {}


class StrategyFactory:
    """Registry-backed factory for login strategies."""

    @staticmethod
    def register(kind: StrategyKind, strategy_class: Type[BaseStrategy]) -> None:
        _STRATEGY_REGISTRY[kind] = strategy_class
        logger.debug(f"[STRATEGY-FACTORY] Registered strategy: {kind.value}")

    @staticmethod
    def get(kind: StrategyKind) -> Optional[Type[BaseStrategy]]:
        return _STRATEGY_REGISTRY.get(kind)

    @staticmethod
    def create(
        kind: StrategyKind,
        config: "HandshakeRunConfig",
        resolved: "ResolvedEnvironment",
        *,
        bridge: Optional["ExternalChannelBridge"] = None,
        intent: Intent = Intent.LOGIN,
        **form: Any,
    ) -> BaseStrategy:
        """Instantiate the strategy registered for *kind*.

        Raises:
            KeyError:        nothing registered for *kind*.
            ValidationError: password form values are invalid.
        """
        strategy_class = _STRATEGY_REGISTRY.get(kind)
        if strategy_class is None:
            raise KeyError(f"No strategy registered for {kind.value!r}")
        return strategy_class.from_config(
            config, resolved, bridge=bridge, intent=intent, **form
        )

    @staticmethod
    def list_strategies() -> List[StrategyKind]:
        return list(_STRATEGY_REGISTRY.keys())


# ---------------------------------------------------------------------------
# Auto-register built-in strategies on import
# ---------------------------------------------------------------------------

def _auto_register() -> None:
    from .password import PasswordStrategy
    from .simulated import SimulatedStrategy
    from .telegram import PopupStrategy, WidgetStrategy

    StrategyFactory.register(StrategyKind.PASSWORD, PasswordStrategy)
    StrategyFactory.register(StrategyKind.WIDGET, WidgetStrategy)
    StrategyFactory.register(StrategyKind.POPUP, PopupStrategy)
    StrategyFactory.register(StrategyKind.SIMULATED, SimulatedStrategy)


_auto_register()
