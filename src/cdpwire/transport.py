"""WebSocket transport carrying raw protocol frames to and from the browser.

The transport owns a single established websocket. Every inbound frame is
handed to the message handler in arrival order, and the close handler fires
exactly once per connection lifetime, whether the browser or the caller
closed the socket.

Transport-level errors (socket failures, frames the handler cannot digest)
are never raised to the layer above. They are reported to an internal
diagnostic hook only, which logs them at debug level unless replaced.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from cdpwire.config import CONFIG

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], None]
CloseHandler = Callable[[str | None, int | None], None]
ErrorHandler = Callable[[BaseException], None]

# Abnormal closure, used when the socket went away without a close frame
ABNORMAL_CLOSURE = 1006


class WebSocketTransport:
    """Wraps one established websocket connection.

    Example:
        >>> transport = await WebSocketTransport.create('ws://127.0.0.1:9222/devtools/browser/...')
        >>> transport.on_message(lambda frame: print(frame))
        >>> transport.on_close(lambda reason, code: print('closed', code))
        >>> await transport.send('{"id": 1, "method": "Browser.getVersion"}')
        >>> await transport.close()
    """

    def __init__(self, web_socket: Any):
        """Start reading from an already connected websocket.

        Args:
            web_socket: A connected websocket exposing async iteration over
                inbound frames, `send()`, `close()`, `close_code` and
                `close_reason` (a `websockets` client connection).
        """
        self._ws = web_socket
        self._on_message: MessageHandler | None = None
        self._on_close: CloseHandler | None = None
        self._on_error: ErrorHandler = self._log_error
        self._close_emitted = False
        self._reader_task: asyncio.Task[None] = asyncio.create_task(self._read_loop())

    @classmethod
    async def create(cls, url: str, max_payload_size: int | None = None) -> 'WebSocketTransport':
        """Open a websocket to the browser endpoint.

        Args:
            url: The browser's websocket debugger URL.
            max_payload_size: Largest accepted frame in bytes. Defaults to
                CONFIG.MAX_PAYLOAD_SIZE (256MB).

        Returns:
            A transport already reading from the socket.
        """
        web_socket = await connect(
            url,
            max_size=max_payload_size or CONFIG.MAX_PAYLOAD_SIZE,
            ping_interval=None,
        )
        logger.debug(f'Transport connected to {url}')
        return cls(web_socket)

    def on_message(self, handler: MessageHandler) -> None:
        self._on_message = handler

    def on_close(self, handler: CloseHandler) -> None:
        self._on_close = handler

    def on_error(self, handler: ErrorHandler) -> None:
        """Replace the diagnostic hook that receives swallowed transport errors."""
        self._on_error = handler

    async def send(self, message: str) -> None:
        """Send a single text frame. Failures propagate to the caller."""
        await self._ws.send(message)

    async def close(self) -> None:
        """Close the socket and wait until the close notification was delivered."""
        try:
            await self._ws.close()
        except Exception as e:
            self.report_error(e)
        if self._reader_task is not asyncio.current_task():
            await self._reader_task

    @property
    def closed(self) -> bool:
        return self._close_emitted

    async def _read_loop(self) -> None:
        try:
            async for data in self._ws:
                if isinstance(data, bytes):
                    data = data.decode('utf-8', errors='replace')
                self._emit_message(data)
        except ConnectionClosed:
            pass
        except Exception as e:
            self.report_error(e)
        finally:
            self._emit_close(getattr(self._ws, 'close_reason', None), getattr(self._ws, 'close_code', None))

    def _emit_message(self, data: str) -> None:
        if self._on_message is None:
            return
        try:
            self._on_message(data)
        except Exception as e:
            self.report_error(e)

    def _emit_close(self, reason: str | None, code: int | None) -> None:
        if self._close_emitted:
            return
        self._close_emitted = True
        if code is None:
            code = ABNORMAL_CLOSURE
        logger.debug(f'Transport closed (code={code}, reason={reason!r})')
        if self._on_close is None:
            return
        try:
            self._on_close(reason, code)
        except Exception as e:
            self.report_error(e)

    def report_error(self, error: BaseException) -> None:
        """Hand a swallowed error to the diagnostic hook."""
        try:
            self._on_error(error)
        except Exception:
            logger.debug('Transport error hook raised', exc_info=True)

    @staticmethod
    def _log_error(error: BaseException) -> None:
        logger.debug(f'Ignoring transport error: {type(error).__name__}: {error}')
