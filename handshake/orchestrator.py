"""
Handshake Orchestrator
======================
Reconciles the login strategies into one race-safe session-acquisition
contract with the backend.

State machine::

    IDLE --start(kind)--> PENDING --+--> SUCCEEDED --+
                                    +--> FAILED      |
                                    +--> CANCELLED   +--> IDLE
                                    +--> TIMED_OUT --+

Rules:
    - ``start`` is only legal from IDLE (``AttemptAlreadyInProgress``) and
      only for strategies the environment enables
      (``EnvironmentNotSupported``).  Neither rejection creates an attempt.
    - A credential triggers exactly ONE backend exchange.
    - Each attempt gets a fresh epoch; its terminal event is recorded once
      and delivered once.
    - Every terminal path runs the same ``finally`` block: bridge teardown,
      loading flag cleared, back to IDLE.

Usage::

    config = HandshakeRunConfig.from_env()
    orchestrator = HandshakeOrchestrator.from_config(
        config, surface=PlaywrightSurface(page),
        on_authenticated=store_session, navigate=router.push,
    )
    outcome = await orchestrator.continue_with_telegram()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from .auth.base_strategy import BaseStrategy
from .auth.strategy_factory import StrategyFactory
from .backend import BackendClient, endpoint_for
from .bridge import ExternalChannelBridge
from .environment import ResolvedEnvironment
from .errors import (
    SUBMIT_SLOT,
    TELEGRAM_SLOT,
    AttemptAlreadyInProgress,
    BackendRejected,
    Cancelled,
    EnvironmentNotSupported,
    HandshakeError,
    NetworkError,
    ValidationError,
)
from .models import (
    AttemptOutcome,
    AttemptStatus,
    AuthAttempt,
    Environment,
    HandshakeState,
    Intent,
    SessionResult,
    StrategyKind,
)
from .run_config import HandshakeRunConfig
from .surface import BrowserSurface

logger = logging.getLogger(__name__)

OutcomeListener = Callable[[AttemptOutcome], None]


class HandshakeOrchestrator:
    """Single owner of the current ``AuthAttempt``."""

    def __init__(
        self,
        resolved: ResolvedEnvironment,
        backend: BackendClient,
        *,
        config: Optional[HandshakeRunConfig] = None,
        bridge: Optional[ExternalChannelBridge] = None,
        on_authenticated: Optional[Callable[[SessionResult], None]] = None,
        navigate: Optional[Callable[[str], None]] = None,
        on_loading_changed: Optional[Callable[[bool], None]] = None,
        success_path: str = "/",
    ):
        """
        Args:
            resolved:           Environment, computed once per process.
            backend:            Credential-exchange client.
            config:             Run configuration (strategy parameters).
            bridge:             External surface owner; None disables the
                                widget and popup strategies at runtime.
            on_authenticated:   Session sink, called once per success.
            navigate:           Called with ``success_path`` after success.
            on_loading_changed: Observer of the loading indicator.
        """
        self.resolved = resolved
        self.backend = backend
        self.config = config or HandshakeRunConfig(hostname=resolved.hostname)
        self.bridge = bridge
        self.success_path = success_path

        self._on_authenticated = on_authenticated
        self._navigate = navigate
        self._on_loading_changed = on_loading_changed
        self._listeners: List[OutcomeListener] = []

        self._epoch = 0
        self._attempt: Optional[AuthAttempt] = None
        self._loading = False

        self.errors: Dict[str, str] = {}
        """Field / slot → user-facing message (``submit``, ``telegram``, …)."""

        self.session: Optional[SessionResult] = None
        """The current auth session, set by the last successful attempt."""

    @classmethod
    def from_config(
        cls,
        config: HandshakeRunConfig,
        *,
        surface: Optional[BrowserSurface] = None,
        http_session: Optional[requests.Session] = None,
        **callbacks: Any,
    ) -> "HandshakeOrchestrator":
        """Wire resolver, backend client and bridge from *config*."""
        resolved = config.resolve()
        backend = BackendClient(
            resolved.backend_base_url,
            timeout=config.http_timeout_s,
            session=http_session,
        )
        bridge = None
        if surface is not None:
            bridge = ExternalChannelBridge(
                surface,
                poll_interval=config.poll_interval_s,
                timeout=config.popup_timeout_s,
            )
        return cls(resolved, backend, config=config, bridge=bridge, **callbacks)

    # ── State ─────────────────────────────────────────────────────

    @property
    def state(self) -> HandshakeState:
        return HandshakeState.IDLE if self._attempt is None else HandshakeState.PENDING

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def current_attempt(self) -> Optional[AuthAttempt]:
        return self._attempt

    @property
    def epoch(self) -> int:
        return self._epoch

    def add_listener(self, listener: OutcomeListener) -> None:
        """Register an observer of terminal outcomes."""
        self._listeners.append(listener)

    def clear_error(self, field: str) -> None:
        """Drop the message for *field* (the user edited it)."""
        self.errors.pop(field, None)

    # ── Operations ────────────────────────────────────────────────

    async def submit_password(self, email: str, password: str) -> AttemptOutcome:
        """Email/password login.

        Raises:
            AttemptAlreadyInProgress: another attempt is pending.
            ValidationError:          form invalid (no attempt, no network).
        """
        return await self.start(StrategyKind.PASSWORD, email=email, password=password)

    async def register(
        self, username: str, email: str, password: str, confirm_password: str
    ) -> AttemptOutcome:
        """Create an account with username/email/password."""
        return await self.start(
            StrategyKind.PASSWORD,
            intent=Intent.REGISTER,
            username=username,
            email=email,
            password=password,
            confirm_password=confirm_password,
        )

    async def continue_with_telegram(self, intent: Intent = Intent.LOGIN) -> AttemptOutcome:
        """Start the Telegram strategy this environment prefers.

        Development hosts get the simulation, production hosts the popup.
        """
        environment = self.resolved.environment
        if environment is Environment.DEVELOPMENT:
            return await self.start(StrategyKind.SIMULATED, intent=intent)
        if environment is Environment.PRODUCTION:
            return await self.start(StrategyKind.POPUP, intent=intent)
        self._ensure_idle(StrategyKind.POPUP)
        error = EnvironmentNotSupported()
        self.errors = {SUBMIT_SLOT: error.message}
        logger.warning(f"[HANDSHAKE] Telegram unavailable on host {self.resolved.hostname!r}")
        raise error

    async def start(
        self,
        kind: StrategyKind,
        *,
        intent: Intent = Intent.LOGIN,
        **form: Any,
    ) -> AttemptOutcome:
        """Run one attempt of *kind* to its terminal outcome.

        Rejections (already pending, disabled strategy, invalid form) raise
        before any attempt exists.  Everything after that is reported
        through the returned ``AttemptOutcome``.
        """
        self._ensure_idle(kind)
        self._ensure_enabled(kind)

        if kind is not StrategyKind.PASSWORD:
            self.errors.pop(SUBMIT_SLOT, None)
            self.errors.pop(TELEGRAM_SLOT, None)

        try:
            strategy = StrategyFactory.create(
                kind, self.config, self.resolved,
                bridge=self.bridge, intent=intent, **form,
            )
        except ValidationError as e:
            self.errors = dict(e.errors)
            raise
        except HandshakeError as e:
            self.errors[e.slot] = e.message
            raise

        if kind is StrategyKind.PASSWORD:
            self.errors = {}
        return await self._run(strategy)

    def cancel(self) -> bool:
        """Cancel a pending widget/popup attempt.

        Password and simulated attempts run to completion; returns False
        for them and when idle.
        """
        attempt = self._attempt
        if attempt is None or not attempt.kind.is_external or self.bridge is None:
            return False
        cancelled = self.bridge.cancel(attempt.epoch)
        if cancelled:
            logger.info(f"[HANDSHAKE] Attempt {attempt.epoch} cancelled by caller")
        return cancelled

    # ── Attempt lifecycle ─────────────────────────────────────────

    def _ensure_idle(self, kind: StrategyKind) -> None:
        if self._attempt is not None:
            logger.warning(
                f"[HANDSHAKE] Rejecting {kind.value}: attempt "
                f"{self._attempt.epoch} ({self._attempt.kind.value}) is pending"
            )
            raise AttemptAlreadyInProgress()

    def _ensure_enabled(self, kind: StrategyKind) -> None:
        if self.resolved.is_enabled(kind):
            return
        if kind is StrategyKind.SIMULATED:
            error = EnvironmentNotSupported("Simulated login is only available on development hosts")
        else:
            error = EnvironmentNotSupported()
        self.errors[error.slot] = error.message
        logger.warning(
            f"[HANDSHAKE] {kind.value} is disabled in "
            f"{self.resolved.environment.value} environment"
        )
        raise error

    async def _run(self, strategy: BaseStrategy) -> AttemptOutcome:
        self._epoch += 1
        attempt = AuthAttempt(kind=strategy.kind, epoch=self._epoch, intent=strategy.intent)
        self._attempt = attempt
        logger.info(
            f"[HANDSHAKE] Attempt {attempt.epoch} started: "
            f"{attempt.kind.value} ({attempt.intent.value})"
        )

        outcome: Optional[AttemptOutcome] = None
        try:
            self._set_loading(True)
            session = await self._obtain_and_exchange(attempt, strategy)
            outcome = self._terminate(attempt, AttemptStatus.SUCCEEDED, session=session)
        except HandshakeError as e:
            outcome = self._terminate(attempt, e.status, error=e)
        except asyncio.CancelledError:
            outcome = self._terminate(attempt, AttemptStatus.CANCELLED, error=Cancelled())
            raise
        except Exception as e:
            logger.error(f"[HANDSHAKE] Attempt {attempt.epoch} crashed: {e}")
            outcome = self._terminate(
                attempt, AttemptStatus.FAILED,
                error=HandshakeError(f"{strategy.rejection_fallback()}: {e}"),
            )
        finally:
            await self._release(attempt)
            if outcome is not None:
                self._deliver(outcome)

        return outcome

    async def _obtain_and_exchange(
        self, attempt: AuthAttempt, strategy: BaseStrategy
    ) -> SessionResult:
        body = await strategy.credential_body(attempt)
        path = endpoint_for(attempt.kind, attempt.intent)
        try:
            return await self.backend.exchange(path, body)
        except BackendRejected as e:
            raise e.with_fallback(strategy.rejection_fallback()) from e
        except NetworkError as e:
            raise NetworkError(strategy.network_message(e), detail=e.detail) from e

    def _terminate(
        self,
        attempt: AuthAttempt,
        status: AttemptStatus,
        *,
        session: Optional[SessionResult] = None,
        error: Optional[HandshakeError] = None,
    ) -> Optional[AttemptOutcome]:
        """Record the terminal status once; later calls return None."""
        if attempt.status.is_terminal:
            logger.debug(f"[HANDSHAKE] Attempt {attempt.epoch} already {attempt.status.value}")
            return None
        attempt.status = status

        if error is not None:
            self.errors[error.slot] = error.message
            logger.info(
                f"[HANDSHAKE] Attempt {attempt.epoch} {status.value}: {error.message}"
            )
            return AttemptOutcome(
                epoch=attempt.epoch, kind=attempt.kind, status=status,
                error=error, slot=error.slot, message=error.message,
            )

        self.errors = {}
        self.session = session
        logger.info(
            f"[HANDSHAKE] ✅ Attempt {attempt.epoch} succeeded "
            f"({attempt.kind.value}, {attempt.elapsed:.1f}s)"
        )
        return AttemptOutcome(
            epoch=attempt.epoch, kind=attempt.kind, status=status, session=session,
        )

    async def _release(self, attempt: AuthAttempt) -> None:
        """Teardown shared by every terminal path."""
        try:
            if self.bridge is not None and self.bridge.is_open:
                await self.bridge.teardown()
        finally:
            if self._attempt is attempt:
                self._attempt = None
            self._set_loading(False)

    def _deliver(self, outcome: AttemptOutcome) -> None:
        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception as e:
                logger.error(f"[HANDSHAKE] Outcome listener failed: {e}")

        if not outcome.succeeded or outcome.session is None:
            return
        if self._on_authenticated is not None:
            try:
                self._on_authenticated(outcome.session)
            except Exception as e:
                logger.error(f"[HANDSHAKE] Session sink failed: {e}")
        if self._navigate is not None:
            try:
                self._navigate(self.success_path)
            except Exception as e:
                logger.error(f"[HANDSHAKE] Navigation failed: {e}")

    def _set_loading(self, loading: bool) -> None:
        if self._loading == loading:
            return
        self._loading = loading
        if self._on_loading_changed is not None:
            try:
                self._on_loading_changed(loading)
            except Exception as e:
                logger.error(f"[HANDSHAKE] Loading observer failed: {e}")
