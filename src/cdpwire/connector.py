"""Connect to an already running browser."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from cdpwire.browser.browser import Browser
from cdpwire.config import CONFIG
from cdpwire.connection import Connection

logger = logging.getLogger(__name__)


async def fetch_websocket_endpoint(browser_url: str, transport: httpx.AsyncBaseTransport | None = None) -> str:
    """Resolve the browser websocket URL from its HTTP debugging endpoint.

    Args:
        browser_url: e.g. 'http://127.0.0.1:9222'. A trailing '/json/version'
            is accepted.
        transport: Optional httpx transport (used by tests).

    Returns:
        The `webSocketDebuggerUrl` reported by the browser.
    """
    url = browser_url.rstrip('/')
    if not url.endswith('/json/version'):
        url = url + '/json/version'

    async with httpx.AsyncClient(transport=transport) as client:
        response = await client.get(url)
        response.raise_for_status()
        return response.json()['webSocketDebuggerUrl']


async def connect(
    browser_ws_endpoint: str | None = None,
    browser_url: str | None = None,
    close_callback: Callable[[], Awaitable[Any]] | None = None,
    page_factory: Callable[..., Awaitable[Any]] | None = None,
    slow_mo: float | None = None,
) -> Browser:
    """Attach to a running browser.

    Exactly one of `browser_ws_endpoint` or `browser_url` must be given.

    Args:
        browser_ws_endpoint: Websocket debugger URL of the browser.
        browser_url: HTTP debugging URL, resolved through /json/version.
        close_callback: Coroutine function closing the browser. Defaults to
            sending `Browser.close`.
        page_factory: Builds page handles for page targets.
        slow_mo: Seconds to delay each inbound protocol message.

    Returns:
        A connected Browser with target discovery enabled.

    Raises:
        ValueError: Both or neither endpoint were given.
    """
    if (browser_ws_endpoint is None) == (browser_url is None):
        raise ValueError('Exactly one of browser_ws_endpoint or browser_url must be passed to connect')

    if browser_url is not None:
        browser_ws_endpoint = await fetch_websocket_endpoint(browser_url)
    assert browser_ws_endpoint is not None

    logger.debug(f'Connecting to browser at {browser_ws_endpoint}')
    connection = await Connection.create(browser_ws_endpoint, delay=CONFIG.SLOW_MO if slow_mo is None else slow_mo)
    result = await connection.send_message('Target.getBrowserContexts')

    if close_callback is None:

        async def close_callback() -> None:
            try:
                await connection.send_message('Browser.close')
            except Exception as e:
                logger.debug(f'Browser.close failed: {type(e).__name__}: {e}')

    return await Browser.create(
        connection=connection,
        context_ids=result.get('browserContextIds', []),
        close_callback=close_callback,
        page_factory=page_factory,
    )
