"""
Backend Client
==============
The single credential-exchange call: POST a JSON body, get back
``{user, token}`` or ``{message}``.

``requests`` is synchronous, so every call runs in the loop's default
executor; the orchestrator never blocks while the exchange is in flight.

Security:
    - Request bodies (passwords, third-party hashes) are never logged.
    - Only the endpoint path and HTTP status appear in logs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from .errors import BackendRejected, NetworkError
from .models import Intent, SessionResult, StrategyKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

PASSWORD_LOGIN_PATH = "/api/v1/auth/login"
PASSWORD_REGISTER_PATH = "/api/v1/auth/register"
TELEGRAM_LOGIN_PATH = "/api/v1/auth/telegram-login"
TELEGRAM_REGISTER_PATH = "/api/v1/auth/telegram-register"

_DEFAULT_TIMEOUT_S = 15.0


def endpoint_for(kind: StrategyKind, intent: Intent = Intent.LOGIN) -> str:
    """Backend path that exchanges a credential of *kind* for a session."""
    if kind is StrategyKind.PASSWORD:
        return PASSWORD_REGISTER_PATH if intent is Intent.REGISTER else PASSWORD_LOGIN_PATH
    return TELEGRAM_REGISTER_PATH if intent is Intent.REGISTER else TELEGRAM_LOGIN_PATH


class BackendClient:
    """Thin ``requests.Session`` wrapper for the auth endpoints.

    Usage::

        client = BackendClient("http://localhost:8000")
        session = await client.exchange("/api/v1/auth/login", {...})
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = _DEFAULT_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: Backend origin, e.g. ``https://api.example.com``.
            timeout:  Per-request timeout in seconds.
            session:  Pre-built session (tests inject a mock here).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or self._create_session()

    @staticmethod
    def _create_session() -> requests.Session:
        session = requests.Session()
        session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        return session

    async def exchange(self, path: str, body: Dict[str, Any]) -> SessionResult:
        """POST *body* to *path* and return the resulting session.

        Raises:
            NetworkError:    the call did not complete or the body was not JSON.
            BackendRejected: non-2xx status, or a 2xx body without a token.
        """
        url = f"{self.base_url}{path}"
        loop = asyncio.get_running_loop()

        def _sync_post() -> requests.Response:
            return self._session.post(url, json=body, timeout=self.timeout)

        try:
            response = await loop.run_in_executor(None, _sync_post)
        except requests.RequestException as e:
            logger.warning(f"[BACKEND] POST {path} failed: {e}")
            raise NetworkError(detail=str(e)) from e

        ok = 200 <= response.status_code < 300
        try:
            data = response.json()
        except ValueError as e:
            logger.warning(
                f"[BACKEND] POST {path} → HTTP {response.status_code} (non-JSON body)"
            )
            if not ok:
                raise BackendRejected(status_code=response.status_code) from e
            raise NetworkError(detail=str(e)) from e

        if not isinstance(data, dict):
            data = {}

        if not ok:
            message = data.get("message")
            logger.info(f"[BACKEND] POST {path} → HTTP {response.status_code} (rejected)")
            raise BackendRejected(
                message if isinstance(message, str) and message else None,
                status_code=response.status_code,
            )

        token = data.get("token")
        if not token:
            logger.warning(f"[BACKEND] POST {path} → HTTP {response.status_code} without token")
            raise BackendRejected(status_code=response.status_code)

        logger.info(f"[BACKEND] POST {path} → HTTP {response.status_code}")
        return SessionResult(user=data.get("user"), token=str(token))

    def close(self) -> None:
        self._session.close()
