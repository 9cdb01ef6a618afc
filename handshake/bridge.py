"""
External Channel Bridge
=======================
Owns the lifecycle of exactly ONE externally-hosted UI surface at a time
(injected widget script or popup window) and converts its unreliable
completion into a single resolved credential or a single ``HandshakeError``.

Widget mode:
    mount script + global callback → wait for ``widget_auth``.
    ``widget_error`` (script failed to load) → ``WidgetLoadFailed``.

Popup mode, first of these wins:
    - tagged cross-context message     → credential
    - poll sees the window closed      → ``Cancelled``
    - hard deadline                    → ``TimedOut``
    ``window.open`` refused             → ``PopupBlocked`` (no timers started)

Race safety:
    Every signal carries the epoch the surface was armed with.  A signal is
    honoured only if its epoch is the bridge's current epoch AND the outcome
    future is still pending.  ``teardown()`` clears the epoch first, so
    anything arriving afterwards is dropped.

Ownership:
    The caller (the orchestrator) MUST call ``teardown()`` once the attempt
    is terminal, whatever the outcome.  A new surface cannot be opened until
    that teardown has finished (``AttemptAlreadyInProgress``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .errors import (
    AttemptAlreadyInProgress,
    Cancelled,
    EmptyCredential,
    HandshakeError,
    PopupBlocked,
    TimedOut,
    WidgetLoadFailed,
)
from .models import ExternalCredential
from .surface import (
    CHANNEL_MESSAGE,
    CHANNEL_WIDGET_AUTH,
    CHANNEL_WIDGET_ERROR,
    CHANNEL_WIDGET_LOADED,
    BrowserSurface,
    PopupSpec,
    WidgetSpec,
)

logger = logging.getLogger(__name__)


_DEFAULT_POLL_INTERVAL_S = 1.0
_DEFAULT_TIMEOUT_S = 300.0

_MODE_WIDGET = "widget"
_MODE_POPUP = "popup"


class ExternalChannelBridge:
    """Single-owner handle on the page's external login surface."""

    def __init__(
        self,
        surface: BrowserSurface,
        *,
        poll_interval: float = _DEFAULT_POLL_INTERVAL_S,
        timeout: float = _DEFAULT_TIMEOUT_S,
    ):
        """
        Args:
            surface:       Browser operations (``PlaywrightSurface`` in prod).
            poll_interval: Seconds between popup-closed checks.
            timeout:       Upper bound (seconds) on any open surface.
        """
        self.surface = surface
        self.poll_interval = poll_interval
        self.timeout = timeout

        self.widget_ready = False
        """True once the current widget script fired ``onload``."""

        self._attached = False
        self._epoch: Optional[int] = None
        self._mode: Optional[str] = None
        self._future: Optional[asyncio.Future] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._deadline: Optional[asyncio.TimerHandle] = None
        self._widget_spec: Optional[WidgetSpec] = None

    # ── State ─────────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        """True from ``run_*`` until ``teardown()`` has completed."""
        return self._mode is not None

    @property
    def epoch(self) -> Optional[int]:
        return self._epoch

    @property
    def timers_active(self) -> bool:
        return self._poll_task is not None or self._deadline is not None

    async def attach(self) -> None:
        """Install the page → bridge signal entry point (idempotent)."""
        if self._attached:
            return
        await self.surface.attach(self._on_signal)
        self._attached = True

    # ── Widget mode ───────────────────────────────────────────────

    async def run_widget(self, epoch: int, spec: WidgetSpec) -> ExternalCredential:
        """Mount the widget and wait for its credential.

        Raises:
            AttemptAlreadyInProgress, WidgetLoadFailed, EmptyCredential,
            Cancelled, TimedOut
        """
        self._claim(epoch, _MODE_WIDGET)
        await self.attach()
        if self._future.done():
            return await self._wait()
        self._widget_spec = spec

        mounted = await self.surface.mount_widget(epoch, spec)
        if not mounted:
            logger.error(f"[BRIDGE] Widget mount point not found: {spec.mount_selector}")
            raise WidgetLoadFailed()
        logger.info(f"[BRIDGE] Widget script injected (epoch {epoch})")

        # Settled while mounting: no deadline to arm.
        if self._future.done():
            return await self._wait()
        self._arm_deadline(epoch)
        return await self._wait()

    # ── Popup mode ────────────────────────────────────────────────

    async def run_popup(self, epoch: int, spec: PopupSpec) -> ExternalCredential:
        """Open the popup and wait for message / close / deadline.

        Raises:
            AttemptAlreadyInProgress, PopupBlocked, EmptyCredential,
            Cancelled, TimedOut
        """
        self._claim(epoch, _MODE_POPUP)
        await self.attach()

        # Listen before opening so a fast redirect cannot be missed.
        await self.surface.listen_messages(epoch, spec.message_type)

        # Cancelled while arming: never open the window.
        if self._future.done():
            return await self._wait()

        opened = await self.surface.open_popup(spec)
        if not opened:
            logger.warning("[BRIDGE] window.open refused, popup blocked")
            raise PopupBlocked()
        logger.info(f"[BRIDGE] Popup opened (epoch {epoch}): {spec.auth_url}")

        self._poll_task = asyncio.create_task(self._poll_closed(epoch))
        self._arm_deadline(epoch)
        return await self._wait()

    # ── Cancellation / teardown ───────────────────────────────────

    def cancel(self, epoch: Optional[int] = None) -> bool:
        """Settle the current surface as ``Cancelled``.

        Returns False when nothing was pending (or *epoch* is stale).
        """
        target = self._epoch if epoch is None else epoch
        if target is None:
            return False
        return self._settle(target, error=Cancelled())

    async def teardown(self) -> None:
        """Release the surface: timers, listeners, injected content, popup.

        Timers and the epoch are dropped synchronously before any browser
        call, so no signal can be honoured once teardown has started.
        """
        if self._mode is None:
            return

        mode = self._mode
        spec = self._widget_spec
        future = self._future
        if self._epoch is not None and self._settle(self._epoch, error=Cancelled()):
            # A surface that never reached its wait has no awaiter.
            future.exception()
        self._epoch = None
        self._cancel_timers()

        try:
            if mode == _MODE_WIDGET and spec is not None:
                try:
                    await self.surface.unmount_widget(spec)
                except Exception as e:
                    logger.debug(f"[BRIDGE] Widget unmount error: {e}")
            elif mode == _MODE_POPUP:
                try:
                    await self.surface.unlisten_messages()
                except Exception as e:
                    logger.debug(f"[BRIDGE] Message listener removal error: {e}")
                try:
                    await self.surface.close_popup()
                except Exception as e:
                    logger.debug(f"[BRIDGE] Popup close error: {e}")
        finally:
            self._mode = None
            self._future = None
            self._widget_spec = None
            self.widget_ready = False
            logger.debug(f"[BRIDGE] {mode} surface released")

    # ── Internal ──────────────────────────────────────────────────

    def _claim(self, epoch: int, mode: str) -> None:
        if self._mode is not None:
            logger.warning(
                f"[BRIDGE] Refusing {mode} (epoch {epoch}): "
                f"{self._mode} surface still open"
            )
            raise AttemptAlreadyInProgress()
        self._epoch = epoch
        self._mode = mode
        self._future = asyncio.get_running_loop().create_future()
        self.widget_ready = False

    async def _wait(self) -> ExternalCredential:
        future = self._future
        if future is None:
            raise HandshakeError("No external surface is open")
        return await future

    def _arm_deadline(self, epoch: int) -> None:
        loop = asyncio.get_running_loop()
        self._deadline = loop.call_later(self.timeout, self._on_deadline, epoch)

    def _on_deadline(self, epoch: int) -> None:
        self._deadline = None
        if self._settle(epoch, error=TimedOut()):
            logger.warning(
                f"[BRIDGE] No completion within {self.timeout:.0f}s (epoch {epoch})"
            )

    async def _poll_closed(self, epoch: int) -> None:
        while self._epoch == epoch:
            await asyncio.sleep(self.poll_interval)
            if self._epoch != epoch:
                return
            try:
                closed = await self.surface.popup_closed()
            except Exception as e:
                logger.debug(f"[BRIDGE] Popup poll error (treated as closed): {e}")
                closed = True
            if closed:
                if self._settle(epoch, error=Cancelled()):
                    logger.info("[BRIDGE] Popup closed without a credential")
                return

    def _on_signal(self, epoch: int, channel: str, payload: Any) -> None:
        """Entry point for every page → Python signal."""
        if epoch != self._epoch or self._future is None or self._future.done():
            logger.debug(f"[BRIDGE] Ignoring stale {channel} signal (epoch {epoch})")
            return

        if channel == CHANNEL_WIDGET_LOADED:
            self.widget_ready = True
            logger.info("[BRIDGE] Widget script loaded")
            return

        if channel == CHANNEL_WIDGET_ERROR:
            self._settle(epoch, error=WidgetLoadFailed())
            return

        expected = CHANNEL_WIDGET_AUTH if self._mode == _MODE_WIDGET else CHANNEL_MESSAGE
        if channel != expected:
            logger.debug(f"[BRIDGE] Ignoring {channel} signal in {self._mode} mode")
            return

        credential = payload if isinstance(payload, dict) else {}
        if not credential:
            self._settle(epoch, error=EmptyCredential())
            return

        logger.info(f"[BRIDGE] Credential received via {channel} (epoch {epoch})")
        self._settle(epoch, result=dict(credential))

    def _settle(
        self,
        epoch: int,
        *,
        result: Optional[ExternalCredential] = None,
        error: Optional[HandshakeError] = None,
    ) -> bool:
        """Resolve the outcome once.  Returns True if this call won."""
        future = self._future
        if epoch != self._epoch or future is None or future.done():
            return False
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)
        self._cancel_timers()
        return True

    def _cancel_timers(self) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        task = self._poll_task
        self._poll_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
