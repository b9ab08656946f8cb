"""Pytest configuration and shared doubles for the cdpwire test suite.

Path Setup:
    The src directory is added to sys.path so tests can import ``cdpwire``
    without installing the package.

Shared Doubles:
    FakeWebSocket stands in for a `websockets` client connection underneath
    WebSocketTransport. FakeTransport stands in for the transport underneath
    Connection: it records outgoing frames, auto-replies to configured
    methods and lets tests deliver protocol notifications by hand.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from cdpwire.browser.browser import Browser  # noqa: E402
from cdpwire.connection import Connection  # noqa: E402

WS_ENDPOINT = "ws://127.0.0.1:9222/devtools/browser/test"

_CLOSED = object()


# ---------------------------------------------------------------------------
# Websocket double (below WebSocketTransport)
# ---------------------------------------------------------------------------


class FakeWebSocket:
    """Minimal async websocket: frames are queued with feed() and read by iteration."""

    def __init__(self):
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.close_calls = 0
        self.send_error: BaseException | None = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    def feed(self, frame: Any) -> None:
        self._inbox.put_nowait(frame)

    def fail(self, error: BaseException) -> None:
        self._inbox.put_nowait(error)

    def remote_close(self, code: int = 1000, reason: str = "") -> None:
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    async def send(self, message: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_code is None:
            self.close_code = 1000
            self.close_reason = ""
            self._inbox.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


# ---------------------------------------------------------------------------
# Transport double (below Connection)
# ---------------------------------------------------------------------------


class FakeTransport:
    """Records sent frames and replies to methods listed in `responses`.

    A response may be a dict (the result) or a callable receiving the call
    params and returning the result. Replies are delivered on the next loop
    iteration, like a real browser would answer.
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        self.responses: dict[str, Any] = dict(responses or {})
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.errors: list[BaseException] = []
        self._on_message = None
        self._on_close = None

    def on_message(self, handler) -> None:
        self._on_message = handler

    def on_close(self, handler) -> None:
        self._on_close = handler

    async def send(self, text: str) -> None:
        message = json.loads(text)
        self.sent.append(message)
        method = message["method"]
        if method not in self.responses:
            return
        result = self.responses[method]
        if callable(result):
            result = result(message.get("params", {}))
        reply = {"id": message["id"], "result": result}
        if "sessionId" in message:
            reply["sessionId"] = message["sessionId"]
        asyncio.get_running_loop().call_soon(self.deliver, reply)

    async def close(self) -> None:
        self.remote_close("", 1000)

    def deliver(self, message: dict[str, Any]) -> None:
        self._on_message(json.dumps(message))

    def deliver_raw(self, data: str) -> None:
        self._on_message(data)

    def remote_close(self, reason: str = "", code: int = 1000) -> None:
        if self.closed:
            return
        self.closed = True
        self._on_close(reason, code)

    def report_error(self, error: BaseException) -> None:
        self.errors.append(error)

    def methods(self) -> list[str]:
        return [message["method"] for message in self.sent]


# ---------------------------------------------------------------------------
# Protocol message builders
# ---------------------------------------------------------------------------


def target_info(
    target_id: str,
    type: str = "page",
    url: str = "about:blank",
    context_id: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    info = {"targetId": target_id, "type": type, "title": "", "url": url, "attached": False, **extra}
    if context_id is not None:
        info["browserContextId"] = context_id
    return info


def target_created(target_id: str, **kwargs: Any) -> dict[str, Any]:
    return {"method": "Target.targetCreated", "params": {"targetInfo": target_info(target_id, **kwargs)}}


def target_destroyed(target_id: str) -> dict[str, Any]:
    return {"method": "Target.targetDestroyed", "params": {"targetId": target_id}}


def target_info_changed(target_id: str, **kwargs: Any) -> dict[str, Any]:
    return {"method": "Target.targetInfoChanged", "params": {"targetInfo": target_info(target_id, **kwargs)}}


async def settle() -> None:
    """Let pending loop callbacks and tasks run."""
    for _ in range(3):
        await asyncio.sleep(0)


class FakePage:
    """Stand-in for a page-automation handle."""

    def __init__(self, target):
        self.target = target


async def fake_page_factory(target) -> FakePage:
    return FakePage(target)


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport(
        responses={
            "Target.setDiscoverTargets": {},
            "Target.createBrowserContext": {"browserContextId": "C1"},
            "Target.disposeBrowserContext": {},
            "Browser.getVersion": {
                "product": "HeadlessChrome/120.0.6099.109",
                "protocolVersion": "1.3",
                "revision": "@abc",
                "userAgent": "Mozilla/5.0 HeadlessChrome/120.0.6099.109",
                "jsVersion": "12.0.267.8",
            },
            "Browser.grantPermissions": {},
            "Browser.resetPermissions": {},
            "Browser.close": {},
        }
    )


@pytest_asyncio.fixture()
async def make_browser():
    """Factory building Browsers over a real Connection driven by a FakeTransport.

    Every Browser built is disconnected on teardown, which also stops its
    event bus.
    """
    browsers: list[Browser] = []

    def factory(transport: FakeTransport, **kwargs: Any) -> Browser:
        browser = Browser(connection=Connection(WS_ENDPOINT, transport), **kwargs)
        browsers.append(browser)
        return browser

    yield factory

    for browser in browsers:
        await browser.disconnect()
