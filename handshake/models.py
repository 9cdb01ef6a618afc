"""
Handshake Data Model
====================
Plain value types passed between the resolver, adapters, bridge and
orchestrator.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .errors import HandshakeError


# Opaque third-party payload (widget callback argument / popup query params).
# Forwarded verbatim to the backend; only emptiness is checked.
ExternalCredential = Dict[str, Any]


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    UNRECOGNIZED = "unrecognized"


class StrategyKind(str, Enum):
    PASSWORD = "password"
    WIDGET = "widget"
    POPUP = "popup"
    SIMULATED = "simulated"

    @property
    def is_external(self) -> bool:
        """True for strategies whose credential comes through the bridge."""
        return self in (StrategyKind.WIDGET, StrategyKind.POPUP)


class Intent(str, Enum):
    """Which backend endpoint family an attempt exchanges against."""
    LOGIN = "login"
    REGISTER = "register"


class HandshakeState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


class AttemptStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptStatus.PENDING


@dataclass(frozen=True)
class SessionResult:
    """Backend answer to a successful credential exchange."""
    user: Any
    token: str


@dataclass
class AuthAttempt:
    """One in-flight handshake, owned by the orchestrator."""
    kind: StrategyKind
    epoch: int
    intent: Intent = Intent.LOGIN
    started_at: float = field(default_factory=time.monotonic)
    status: AttemptStatus = AttemptStatus.PENDING
    external_handle: Optional[str] = None
    """Mount selector (widget) or window name (popup); None otherwise."""

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


@dataclass(frozen=True)
class AttemptOutcome:
    """Terminal event delivered exactly once per attempt."""
    epoch: int
    kind: StrategyKind
    status: AttemptStatus
    session: Optional[SessionResult] = None
    error: Optional["HandshakeError"] = None
    slot: str = ""
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is AttemptStatus.SUCCEEDED
