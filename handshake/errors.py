"""
Handshake Errors
================
Exception taxonomy shared by adapters, the bridge, the backend client and
the orchestrator.

Every error knows:
    - ``status``  — the terminal attempt status it maps to
    - ``slot``    — the error slot the UI shows it under (``submit`` /
                    ``telegram``)
    - ``message`` — the user-facing text

``ValidationError`` is the exception to the rule: it is raised before an
attempt exists and carries field-keyed messages instead of a single slot.
"""

from __future__ import annotations

from typing import Dict, Optional

from .models import AttemptStatus

SUBMIT_SLOT = "submit"
TELEGRAM_SLOT = "telegram"


class HandshakeError(Exception):
    """Base class for every handshake failure."""

    status: AttemptStatus = AttemptStatus.FAILED
    slot: str = SUBMIT_SLOT
    default_message: str = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(HandshakeError):
    """Local form validation failed; never reaches the network."""

    default_message = "Please fix the highlighted fields"

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__(self.default_message)


class NetworkError(HandshakeError):
    """The exchange call could not complete (connection, DNS, bad body)."""

    default_message = "Network error. Please try again."

    def __init__(self, message: Optional[str] = None, *, detail: str = ""):
        self.detail = detail
        super().__init__(message)


class BackendRejected(HandshakeError):
    """The exchange completed but the backend reported a failure.

    ``message`` is the backend-provided text, or the strategy's fallback
    when the body carried none (see ``backend_message``).
    """

    def __init__(
        self,
        backend_message: Optional[str] = None,
        *,
        status_code: int = 0,
        fallback: str = "Login failed",
    ):
        self.backend_message = backend_message
        self.status_code = status_code
        super().__init__(backend_message or fallback)

    def with_fallback(self, fallback: str) -> "BackendRejected":
        """Return a copy whose message uses *fallback* if the backend gave none."""
        return BackendRejected(
            self.backend_message,
            status_code=self.status_code,
            fallback=fallback,
        )


class EnvironmentNotSupported(HandshakeError):
    default_message = "Telegram login only works on the production domain"


class AttemptAlreadyInProgress(HandshakeError):
    default_message = "Another sign-in is already in progress"


class PopupBlocked(HandshakeError):
    default_message = "Popup blocked. Allow popups and try again."


class WidgetLoadFailed(HandshakeError):
    slot = TELEGRAM_SLOT
    default_message = "Failed to load Telegram service"


class EmptyCredential(HandshakeError):
    """A third party signalled completion without any credential fields."""

    default_message = "Telegram returned no login data"


class Cancelled(HandshakeError):
    status = AttemptStatus.CANCELLED
    default_message = "Telegram login was cancelled"


class TimedOut(HandshakeError):
    status = AttemptStatus.TIMED_OUT
    default_message = "Telegram login timed out. Please try again."
