"""
Auth Handshake Package
Race-safe session acquisition for a login page offering email/password
and Telegram (widget, popup, or simulated in development) sign-in.

CLI Usage:
    python -m handshake <strategy> [options]

    Strategies:
        password    Email/password login
        register    Email/password registration
        telegram    Telegram login, strategy chosen by environment
        widget      Embedded Telegram widget (needs --login-page)
        popup       Telegram OAuth popup (needs --login-page)
        simulated   Fake Telegram payload (development hosts)
"""

from .environment import EnvironmentResolver, ResolvedEnvironment
from .errors import HandshakeError
from .models import (
    AttemptOutcome,
    AttemptStatus,
    Environment,
    HandshakeState,
    Intent,
    SessionResult,
    StrategyKind,
)
from .backend import BackendClient
from .surface import BrowserSurface, PlaywrightSurface
from .bridge import ExternalChannelBridge
from .run_config import HandshakeRunConfig
from .orchestrator import HandshakeOrchestrator

__version__ = "0.1.0"

__all__ = [
    'HandshakeOrchestrator',
    'HandshakeRunConfig',
    'EnvironmentResolver',
    'ResolvedEnvironment',
    'BackendClient',
    'ExternalChannelBridge',
    'BrowserSurface',
    'PlaywrightSurface',
    'HandshakeError',
    'AttemptOutcome',
    'AttemptStatus',
    'Environment',
    'HandshakeState',
    'Intent',
    'SessionResult',
    'StrategyKind',
]
