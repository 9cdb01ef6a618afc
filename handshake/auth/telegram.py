"""
Telegram Strategies
===================
The two real third-party strategies.  Both delegate the browser work to
the ``ExternalChannelBridge`` and only decide WHICH surface to open:

    - ``WidgetStrategy`` — embedded login widget (injected script +
      ``onTelegramAuth`` global callback)
    - ``PopupStrategy``  — ``oauth.telegram.org`` in a separate window,
      answered by the callback page via ``postMessage``
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from ..bridge import ExternalChannelBridge
from ..errors import HandshakeError
from ..models import AuthAttempt, ExternalCredential, Intent, StrategyKind
from ..surface import PopupSpec, WidgetSpec
from .base_strategy import ExternalStrategy

if TYPE_CHECKING:
    from ..environment import ResolvedEnvironment
    from ..run_config import HandshakeRunConfig

logger = logging.getLogger(__name__)


def _require_bridge(bridge: Optional[ExternalChannelBridge], kind: StrategyKind) -> ExternalChannelBridge:
    if bridge is None:
        raise HandshakeError(f"{kind.value} login needs a browser page")
    return bridge


class WidgetStrategy(ExternalStrategy):

    def __init__(
        self,
        bridge: ExternalChannelBridge,
        spec: WidgetSpec,
        *,
        intent: Intent = Intent.LOGIN,
    ):
        super().__init__(intent=intent)
        self.bridge = bridge
        self.spec = spec

    @property
    def kind(self) -> StrategyKind:
        return StrategyKind.WIDGET

    @classmethod
    def from_config(
        cls,
        config: "HandshakeRunConfig",
        resolved: "ResolvedEnvironment",
        *,
        bridge: Optional[ExternalChannelBridge] = None,
        intent: Intent = Intent.LOGIN,
        **form: Any,
    ) -> "WidgetStrategy":
        return cls(
            _require_bridge(bridge, StrategyKind.WIDGET),
            config.widget_spec(),
            intent=intent,
        )

    async def obtain_credential(self, attempt: AuthAttempt) -> ExternalCredential:
        attempt.external_handle = self.spec.mount_selector
        return await self.bridge.run_widget(attempt.epoch, self.spec)


class PopupStrategy(ExternalStrategy):

    def __init__(
        self,
        bridge: ExternalChannelBridge,
        spec: PopupSpec,
        *,
        intent: Intent = Intent.LOGIN,
    ):
        super().__init__(intent=intent)
        self.bridge = bridge
        self.spec = spec

    @property
    def kind(self) -> StrategyKind:
        return StrategyKind.POPUP

    @classmethod
    def from_config(
        cls,
        config: "HandshakeRunConfig",
        resolved: "ResolvedEnvironment",
        *,
        bridge: Optional[ExternalChannelBridge] = None,
        intent: Intent = Intent.LOGIN,
        **form: Any,
    ) -> "PopupStrategy":
        return cls(
            _require_bridge(bridge, StrategyKind.POPUP),
            config.popup_spec(resolved),
            intent=intent,
        )

    async def obtain_credential(self, attempt: AuthAttempt) -> ExternalCredential:
        attempt.external_handle = self.spec.window_name
        return await self.bridge.run_popup(attempt.epoch, self.spec)
