"""
Password Strategy
=================
Email + password login and username/email/password registration.

Validation is entirely local: failures raise ``ValidationError`` with
field-keyed messages and never produce an attempt or a network call.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..errors import ValidationError
from ..models import AuthAttempt, Intent, StrategyKind
from .base_strategy import BaseStrategy

if TYPE_CHECKING:
    from ..bridge import ExternalChannelBridge
    from ..environment import ResolvedEnvironment
    from ..run_config import HandshakeRunConfig

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
MIN_PASSWORD_LENGTH = 6
MIN_USERNAME_LENGTH = 3


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate_email(email: str, errors: Dict[str, str]) -> None:
    if not (email or "").strip():
        errors["email"] = "Email is required"
    elif not _EMAIL_RE.search(email):
        errors["email"] = "Email is invalid"


def validate_login(email: str, password: str) -> Dict[str, str]:
    """Return field → message for every invalid login field (empty if OK)."""
    errors: Dict[str, str] = {}
    _validate_email(email, errors)
    if not password:
        errors["password"] = "Password is required"
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = "Min 6 characters"
    return errors


def validate_registration(
    username: str, email: str, password: str, confirm_password: str
) -> Dict[str, str]:
    """Return field → message for every invalid registration field."""
    errors: Dict[str, str] = {}

    if not (username or "").strip():
        errors["username"] = "Username is required"
    elif len(username) < MIN_USERNAME_LENGTH:
        errors["username"] = "Username must be at least 3 characters"

    _validate_email(email, errors)

    if not password:
        errors["password"] = "Password is required"
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = "Password must be at least 6 characters"

    if not confirm_password:
        errors["confirmPassword"] = "Confirm password is required"
    elif password != confirm_password:
        errors["confirmPassword"] = "Passwords do not match"

    return errors


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

class PasswordStrategy(BaseStrategy):
    """Local credential pair; produces its body without suspending.

    Build through ``for_login`` / ``for_registration`` so validation always
    runs first::

        strategy = PasswordStrategy.for_login("a@b.com", "secret1")
    """

    def __init__(self, body: Dict[str, Any], *, intent: Intent = Intent.LOGIN):
        self._body = body
        self.intent = intent

    @property
    def kind(self) -> StrategyKind:
        return StrategyKind.PASSWORD

    @classmethod
    def for_login(cls, email: str, password: str) -> "PasswordStrategy":
        errors = validate_login(email, password)
        if errors:
            logger.info(f"[PASSWORD] Login form invalid: {sorted(errors)}")
            raise ValidationError(errors)
        return cls({"email": email, "password": password})

    @classmethod
    def for_registration(
        cls, username: str, email: str, password: str, confirm_password: str
    ) -> "PasswordStrategy":
        errors = validate_registration(username, email, password, confirm_password)
        if errors:
            logger.info(f"[PASSWORD] Registration form invalid: {sorted(errors)}")
            raise ValidationError(errors)
        return cls(
            {"username": username, "email": email, "password": password},
            intent=Intent.REGISTER,
        )

    @classmethod
    def from_config(
        cls,
        config: "HandshakeRunConfig",
        resolved: "ResolvedEnvironment",
        *,
        bridge: Optional["ExternalChannelBridge"] = None,
        intent: Intent = Intent.LOGIN,
        **form: Any,
    ) -> "PasswordStrategy":
        if intent is Intent.REGISTER:
            return cls.for_registration(
                form.get("username", ""),
                form.get("email", ""),
                form.get("password", ""),
                form.get("confirm_password", ""),
            )
        return cls.for_login(form.get("email", ""), form.get("password", ""))

    async def credential_body(self, attempt: AuthAttempt) -> Dict[str, Any]:
        return dict(self._body)

    def rejection_fallback(self) -> str:
        return "Registration failed" if self.intent is Intent.REGISTER else "Login failed"
