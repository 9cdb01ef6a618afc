"""
Login Strategies
================
One adapter per way of obtaining a credential.

Architecture:
    - ``BaseStrategy``      — abstract base for all strategies
    - ``ExternalStrategy``  — base for third-party payload strategies
    - ``StrategyFactory``   — kind → strategy registry

Built-in strategies:
    - ``PasswordStrategy``  — email/password login and registration
    - ``WidgetStrategy``    — embedded Telegram login widget
    - ``PopupStrategy``     — Telegram OAuth in a popup window
    - ``SimulatedStrategy`` — fake Telegram payload for development hosts
"""

from .base_strategy import BaseStrategy, ExternalStrategy
from .password import PasswordStrategy, validate_login, validate_registration
from .simulated import SimulatedStrategy, make_simulated_credential
from .telegram import PopupStrategy, WidgetStrategy
from .strategy_factory import StrategyFactory

__all__ = [
    "BaseStrategy",
    "ExternalStrategy",
    "PasswordStrategy",
    "SimulatedStrategy",
    "WidgetStrategy",
    "PopupStrategy",
    "StrategyFactory",
    "validate_login",
    "validate_registration",
    "make_simulated_credential",
]
