"""
Simulated Strategy (development only)
=====================================
Stands in for the Telegram widget on loopback hosts, where no trusted
callback origin exists.  After a fixed delay (human latency with a real
widget) it yields a credential shaped like the widget's payload, with
random id and timestamp-derived username/hash.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..models import AuthAttempt, ExternalCredential, Intent, StrategyKind
from .base_strategy import ExternalStrategy

if TYPE_CHECKING:
    from ..bridge import ExternalChannelBridge
    from ..environment import ResolvedEnvironment
    from ..run_config import HandshakeRunConfig

logger = logging.getLogger(__name__)

_DEFAULT_DELAY_S = 1.2


def make_simulated_credential(
    now: Optional[float] = None, rng: Optional[random.Random] = None
) -> ExternalCredential:
    """Build a widget-shaped payload.  *now* is a unix timestamp."""
    now = time.time() if now is None else now
    rng = rng or random
    ms = int(now * 1000)
    return {
        "id": rng.randrange(1_000_000_000),
        "first_name": "John",
        "username": f"user_{ms}",
        "auth_date": int(now),
        "hash": f"mock_{ms}",
    }


class SimulatedStrategy(ExternalStrategy):

    def __init__(
        self,
        *,
        delay: float = _DEFAULT_DELAY_S,
        intent: Intent = Intent.LOGIN,
        factory: Callable[[], ExternalCredential] = make_simulated_credential,
    ):
        super().__init__(intent=intent)
        self.delay = delay
        self._factory = factory

    @property
    def kind(self) -> StrategyKind:
        return StrategyKind.SIMULATED

    @classmethod
    def from_config(
        cls,
        config: "HandshakeRunConfig",
        resolved: "ResolvedEnvironment",
        *,
        bridge: Optional["ExternalChannelBridge"] = None,
        intent: Intent = Intent.LOGIN,
        **form: Any,
    ) -> "SimulatedStrategy":
        return cls(delay=config.simulated_delay_s, intent=intent)

    async def obtain_credential(self, attempt: AuthAttempt) -> ExternalCredential:
        logger.info(f"[SIMULATED] Faking Telegram login ({self.delay:.1f}s)")
        await asyncio.sleep(self.delay)
        return self._factory()
