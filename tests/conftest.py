"""
Shared fixtures for handshake tests.

No browser and no network: ``FakeSurface`` stands in for the page and a
``MagicMock`` stands in for the ``requests.Session``.
"""

import asyncio
from typing import Any, List, Optional
from unittest.mock import MagicMock

import pytest

from handshake.backend import BackendClient
from handshake.bridge import ExternalChannelBridge
from handshake.orchestrator import HandshakeOrchestrator
from handshake.run_config import HandshakeRunConfig
from handshake.surface import BrowserSurface, PopupSpec, WidgetSpec

PROD_HOST = "one063development.onrender.com"


class FakeSurface(BrowserSurface):
    """In-memory page: records calls, lets a test fire page signals."""

    def __init__(self, *, mount_ok: bool = True, open_ok: bool = True):
        self.mount_ok = mount_ok
        self.open_ok = open_ok
        self.on_signal = None
        self.calls: List[str] = []
        self.armed_epoch: Optional[int] = None
        self.armed = asyncio.Event()
        self.mounted = False
        self.listening = False
        self.popup_open = False
        self.popup_is_closed = False
        self.poll_error: Optional[Exception] = None
        self.opened_specs: List[PopupSpec] = []

    async def attach(self, on_signal) -> None:
        self.calls.append("attach")
        self.on_signal = on_signal

    async def mount_widget(self, epoch: int, spec: WidgetSpec) -> bool:
        self.calls.append("mount_widget")
        self.armed_epoch = epoch
        self.mounted = self.mount_ok
        if self.mount_ok:
            self.armed.set()
        return self.mount_ok

    async def unmount_widget(self, spec: WidgetSpec) -> None:
        self.calls.append("unmount_widget")
        self.mounted = False

    async def listen_messages(self, epoch: int, message_type: str) -> None:
        self.calls.append("listen_messages")
        self.armed_epoch = epoch
        self.listening = True

    async def unlisten_messages(self) -> None:
        self.calls.append("unlisten_messages")
        self.listening = False

    async def open_popup(self, spec: PopupSpec) -> bool:
        self.calls.append("open_popup")
        self.opened_specs.append(spec)
        self.popup_open = self.open_ok
        if self.open_ok:
            self.armed.set()
        return self.open_ok

    async def popup_closed(self) -> bool:
        if self.poll_error is not None:
            raise self.poll_error
        return self.popup_is_closed

    async def close_popup(self) -> None:
        self.calls.append("close_popup")
        self.popup_open = False

    # ── test helpers ──────────────────────────────────────────────

    def emit(self, channel: str, payload: Any = None, *, epoch: Optional[int] = None) -> None:
        """Fire a page → Python signal (defaults to the armed epoch)."""
        self.on_signal(self.armed_epoch if epoch is None else epoch, channel, payload)


class CancellingSurface(FakeSurface):
    """Fires *on_arm* while the bridge is still setting the surface up."""

    def __init__(self, on_arm=None, **kwargs):
        super().__init__(**kwargs)
        self.on_arm = on_arm

    async def listen_messages(self, epoch: int, message_type: str) -> None:
        await super().listen_messages(epoch, message_type)
        if self.on_arm is not None:
            self.on_arm()

    async def mount_widget(self, epoch: int, spec: WidgetSpec) -> bool:
        mounted = await super().mount_widget(epoch, spec)
        if self.on_arm is not None:
            self.on_arm()
        return mounted


def make_response(status_code: int = 200, body: Any = None, *, invalid_json: bool = False):
    response = MagicMock()
    response.status_code = status_code
    if invalid_json:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = body
    return response


def fast_config(hostname: str = "localhost", **overrides) -> HandshakeRunConfig:
    """Config with timers scaled down to milliseconds."""
    values = dict(
        hostname=hostname,
        poll_interval_s=0.01,
        popup_timeout_s=0.5,
        simulated_delay_s=0.0,
    )
    values.update(overrides)
    return HandshakeRunConfig(**values)


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def http_session():
    session = MagicMock()
    session.post.return_value = make_response(
        200, {"user": {"id": 7, "email": "a@b.com"}, "token": "tok-123"}
    )
    return session


@pytest.fixture
def reply(http_session):
    """Set what the backend answers to the next exchange."""
    def _reply(status_code: int = 200, body: Any = None, *,
               invalid_json: bool = False, error: Optional[Exception] = None):
        if error is not None:
            http_session.post.side_effect = error
            return
        http_session.post.return_value = make_response(
            status_code, body, invalid_json=invalid_json
        )
    return _reply


@pytest.fixture
def backend(http_session):
    return BackendClient("http://backend.test", session=http_session)


@pytest.fixture
def make_bridge():
    def _make(surface: BrowserSurface, *, poll_interval: float = 0.01, timeout: float = 0.5):
        return ExternalChannelBridge(surface, poll_interval=poll_interval, timeout=timeout)
    return _make


@pytest.fixture
def make_orchestrator(http_session):
    """Build an orchestrator over the mocked backend.

    Extra keyword arguments go to ``fast_config``; callbacks
    (``on_authenticated``, ``navigate``, ``on_loading_changed``) are passed
    through.
    """
    def _make(hostname: str = "localhost", *, surface: Optional[BrowserSurface] = None,
              on_authenticated=None, navigate=None, on_loading_changed=None,
              **config_overrides):
        cfg = fast_config(hostname, **config_overrides)
        return HandshakeOrchestrator.from_config(
            cfg,
            surface=surface,
            http_session=http_session,
            on_authenticated=on_authenticated,
            navigate=navigate,
            on_loading_changed=on_loading_changed,
        )
    return _make
