"""
Browser Surface
===============
The browser-side half of the External Channel Bridge.

A surface knows HOW to touch the page (inject a script, open a window,
listen for ``postMessage``) but nothing about attempts, epochs or timers;
that lifecycle lives in ``bridge.py``.  Every completion signal coming out of
the page is funnelled through ONE callback::

    on_signal(epoch, channel, payload)

where ``channel`` is one of the ``CHANNEL_*`` constants and ``epoch`` is the
value the surface was armed with.  The bridge discards stale epochs.

Implementations:
    - ``PlaywrightSurface`` — drives a real page via ``playwright.async_api``
    - tests use an in-memory fake with the same interface
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlencode

from playwright.async_api import Page, Route

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Signal channels
# ---------------------------------------------------------------------------

CHANNEL_WIDGET_LOADED = "widget_loaded"
CHANNEL_WIDGET_ERROR = "widget_error"
CHANNEL_WIDGET_AUTH = "widget_auth"
CHANNEL_MESSAGE = "message"

SignalCallback = Callable[[int, str, Any], None]


# ---------------------------------------------------------------------------
# Surface specs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WidgetSpec:
    """Parameters of the injected third-party login widget."""
    script_src: str = "https://telegram.org/js/telegram-widget.js?22"
    bot_username: str = "SignUp_MarsBot"
    mount_selector: str = "#tg-login-container"
    size: str = "large"
    request_access: str = "write"
    callback_name: str = "onTelegramAuth"


@dataclass(frozen=True)
class PopupSpec:
    """Parameters of the redirect-based (popup) handshake."""
    auth_url: str = "https://oauth.telegram.org/auth"
    bot_id: str = "6412343716"
    origin: str = ""
    return_to: str = ""
    request_access: str = "write"
    window_name: str = "telegram-auth"
    window_features: str = (
        "width=600,height=700,scrollbars=yes,resizable=yes,"
        "menubar=no,toolbar=no,status=no"
    )
    message_type: str = "tg_oauth"

    @property
    def url(self) -> str:
        query = urlencode({
            "bot_id": self.bot_id,
            "origin": self.origin,
            "return_to": self.return_to,
            "request_access": self.request_access,
        })
        return f"{self.auth_url}?{query}"


# ---------------------------------------------------------------------------
# Cross-context bridge page (served at ``return_to``)
# ---------------------------------------------------------------------------

_CALLBACK_PAGE_TEMPLATE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Telegram</title></head>
<body>
<div style="padding: 16px">Processing Telegram… You can close this tab.</div>
<script>
(function () {
  try {
    var params = new URLSearchParams(window.location.search);
    var payload = {};
    params.forEach(function (v, k) { payload[k] = v; });
    if (window.opener) {
      window.opener.postMessage({type: %(message_type)s, payload: payload}, %(target_origin)s);
      window.close();
    }
  } catch (e) {}
})();
</script>
</body>
</html>
"""


def render_callback_page(message_type: str = "tg_oauth", target_origin: str = "*") -> str:
    """HTML of the page the popup is redirected back to.

    It reads its own query string, posts it to ``window.opener`` tagged with
    *message_type*, then closes itself.
    """
    return _CALLBACK_PAGE_TEMPLATE % {
        "message_type": json.dumps(message_type),
        "target_origin": json.dumps(target_origin),
    }


# ---------------------------------------------------------------------------
# Abstract surface
# ---------------------------------------------------------------------------

class BrowserSurface(ABC):
    """Page operations the bridge needs.  All methods are coroutines."""

    @abstractmethod
    async def attach(self, on_signal: SignalCallback) -> None:
        """Install the single page → Python signal entry point."""
        ...

    @abstractmethod
    async def mount_widget(self, epoch: int, spec: WidgetSpec) -> bool:
        """Inject the widget script and register the global callback.

        Returns False if the mount point does not exist.
        """
        ...

    @abstractmethod
    async def unmount_widget(self, spec: WidgetSpec) -> None:
        """Empty the mount point and delete the global callback."""
        ...

    @abstractmethod
    async def listen_messages(self, epoch: int, message_type: str) -> None:
        ...

    @abstractmethod
    async def unlisten_messages(self) -> None:
        ...

    @abstractmethod
    async def open_popup(self, spec: PopupSpec) -> bool:
        """``window.open``; False when the browser refused the window."""
        ...

    @abstractmethod
    async def popup_closed(self) -> bool:
        ...

    @abstractmethod
    async def close_popup(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Playwright implementation
# ---------------------------------------------------------------------------

_BINDING_NAME = "__handshakeSignal"

_MOUNT_WIDGET_JS = """
({epoch, binding, mount, src, botUsername, size, requestAccess, callbackName}) => {
  const container = document.querySelector(mount);
  if (!container) return false;
  container.innerHTML = '';
  const s = document.createElement('script');
  s.src = src;
  s.async = true;
  s.setAttribute('data-telegram-login', botUsername);
  s.setAttribute('data-size', size);
  s.setAttribute('data-request-access', requestAccess);
  s.setAttribute('data-onauth', callbackName + '(user)');
  s.onload = () => window[binding](epoch, 'widget_loaded', null);
  s.onerror = () => window[binding](epoch, 'widget_error', null);
  window[callbackName] = (user) => window[binding](epoch, 'widget_auth', user);
  container.appendChild(s);
  return true;
}
"""

_UNMOUNT_WIDGET_JS = """
({mount, callbackName}) => {
  const container = document.querySelector(mount);
  if (container) container.innerHTML = '';
  if (window[callbackName]) delete window[callbackName];
}
"""

_LISTEN_MESSAGES_JS = """
({epoch, binding, messageType}) => {
  if (window.__handshakeOnMessage) {
    window.removeEventListener('message', window.__handshakeOnMessage);
  }
  window.__handshakeOnMessage = (evt) => {
    if (!evt || !evt.data || evt.data.type !== messageType) return;
    window[binding](epoch, 'message', evt.data.payload || {});
  };
  window.addEventListener('message', window.__handshakeOnMessage);
}
"""

_UNLISTEN_MESSAGES_JS = """
() => {
  if (window.__handshakeOnMessage) {
    window.removeEventListener('message', window.__handshakeOnMessage);
    delete window.__handshakeOnMessage;
  }
}
"""

_OPEN_POPUP_JS = """
({url, name, features}) => {
  const popup = window.open(url, name, features);
  window.__handshakePopup = popup || null;
  return !!popup;
}
"""

_POPUP_CLOSED_JS = "() => !window.__handshakePopup || window.__handshakePopup.closed"

_CLOSE_POPUP_JS = """
() => {
  const popup = window.__handshakePopup;
  window.__handshakePopup = null;
  if (popup && !popup.closed) popup.close();
}
"""


class PlaywrightSurface(BrowserSurface):
    """Drives the login page through Playwright.

    Usage::

        page = await context.new_page()
        await page.goto(login_page_url)
        surface = PlaywrightSurface(page, callback_url=popup_spec.return_to)
        bridge = ExternalChannelBridge(surface)
        await bridge.attach()
    """

    def __init__(
        self,
        page: Page,
        *,
        callback_url: str = "",
        message_type: str = "tg_oauth",
    ):
        """
        Args:
            page:         The page hosting the login UI.
            callback_url: If set, requests to this URL (any query string)
                          are answered with ``render_callback_page`` so the
                          popup can hand its credential back.  Leave empty
                          when the front-end already serves that route.
            message_type: Discriminator of the cross-context message.
        """
        self.page = page
        self.callback_url = callback_url
        self.message_type = message_type
        self._attached = False

    async def attach(self, on_signal: SignalCallback) -> None:
        if self._attached:
            return

        def _binding(source: Any, epoch: int, channel: str, payload: Any) -> None:
            on_signal(epoch, channel, payload)

        # Playwright bindings cannot be removed; one binding serves every
        # attempt and the epoch argument tells them apart.
        await self.page.expose_binding(_BINDING_NAME, _binding)

        if self.callback_url:
            origin = self.callback_url.split("/", 3)
            target_origin = "/".join(origin[:3]) if len(origin) >= 3 else "*"
            html = render_callback_page(self.message_type, target_origin)

            async def _serve_callback(route: Route) -> None:
                await route.fulfill(status=200, content_type="text/html", body=html)

            await self.page.context.route(f"{self.callback_url}**", _serve_callback)
            logger.info(f"[SURFACE] Serving callback page at {self.callback_url}")

        self._attached = True

    async def mount_widget(self, epoch: int, spec: WidgetSpec) -> bool:
        mounted = await self.page.evaluate(_MOUNT_WIDGET_JS, {
            "epoch": epoch,
            "binding": _BINDING_NAME,
            "mount": spec.mount_selector,
            "src": spec.script_src,
            "botUsername": spec.bot_username,
            "size": spec.size,
            "requestAccess": spec.request_access,
            "callbackName": spec.callback_name,
        })
        return bool(mounted)

    async def unmount_widget(self, spec: WidgetSpec) -> None:
        await self.page.evaluate(_UNMOUNT_WIDGET_JS, {
            "mount": spec.mount_selector,
            "callbackName": spec.callback_name,
        })

    async def listen_messages(self, epoch: int, message_type: str) -> None:
        await self.page.evaluate(_LISTEN_MESSAGES_JS, {
            "epoch": epoch,
            "binding": _BINDING_NAME,
            "messageType": message_type,
        })

    async def unlisten_messages(self) -> None:
        await self.page.evaluate(_UNLISTEN_MESSAGES_JS)

    async def open_popup(self, spec: PopupSpec) -> bool:
        opened = await self.page.evaluate(_OPEN_POPUP_JS, {
            "url": spec.url,
            "name": spec.window_name,
            "features": spec.window_features,
        })
        return bool(opened)

    async def popup_closed(self) -> bool:
        if self.page.is_closed():
            return True
        return bool(await self.page.evaluate(_POPUP_CLOSED_JS))

    async def close_popup(self) -> None:
        if self.page.is_closed():
            return
        await self.page.evaluate(_CLOSE_POPUP_JS)
