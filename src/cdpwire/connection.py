"""Protocol connection multiplexing remote calls and per-target sessions.

Key Components:
    Connection: Serializes outgoing calls over one transport, correlates
        replies by id, routes session-addressed frames and re-emits
        unsolicited notifications.
    CDPSession: A flattened per-target sub-session sharing the connection's
        transport.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from cdp_use.cdp.target import SessionID

from cdpwire.exceptions import ConnectionClosedError, ProtocolError, TargetClosedError
from cdpwire.logging_config import PROTOCOL_LOGGER_NAME
from cdpwire.transport import WebSocketTransport

if TYPE_CHECKING:
    from cdpwire.browser.views import TargetInfo

logger = logging.getLogger(__name__)
protocol_logger = logging.getLogger(PROTOCOL_LOGGER_NAME)

MessageListener = Callable[[dict[str, Any]], None]


class _PendingCall:
    """A remote call awaiting its correlated reply."""

    __slots__ = ('method', 'future')

    def __init__(self, method: str, future: asyncio.Future):
        self.method = method
        self.future = future


def _reply_result(pending: _PendingCall, message: dict[str, Any]) -> None:
    if pending.future.done():
        return
    if 'error' in message:
        error = message['error']
        pending.future.set_exception(
            ProtocolError(
                error.get('message', 'Unknown error'),
                method=pending.method,
                code=error.get('code'),
                data=error.get('data'),
            )
        )
    else:
        pending.future.set_result(message.get('result', {}))


class CDPSession:
    """A per-target protocol session multiplexed over the root connection.

    Created by the connection when the browser reports `Target.attachedToTarget`;
    obtain one through `Connection.create_session()` or `Target.create_cdp_session()`.
    """

    def __init__(self, connection: 'Connection', target_type: str, session_id: SessionID):
        self._connection: Connection | None = connection
        self._target_type = target_type
        self._session_id = session_id
        self._callbacks: dict[int, _PendingCall] = {}
        self._listeners: list[MessageListener] = []

    @property
    def session_id(self) -> SessionID:
        return self._session_id

    @property
    def target_type(self) -> str:
        return self._target_type

    @property
    def connection(self) -> 'Connection | None':
        return self._connection

    @property
    def detached(self) -> bool:
        return self._connection is None

    async def send_message(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue a remote call scoped to this session.

        Raises:
            TargetClosedError: The session was detached before or during the call.
            ProtocolError: The browser answered with an error.
        """
        if self._connection is None:
            raise TargetClosedError(
                f'Protocol error ({method}): Session closed. Most likely the {self._target_type} has been closed.'
            )
        future = asyncio.get_running_loop().create_future()
        message_id = self._connection._next_id()
        self._callbacks[message_id] = _PendingCall(method, future)
        try:
            await self._connection._raw_send(
                {'id': message_id, 'method': method, 'params': params or {}, 'sessionId': self._session_id}
            )
        except Exception:
            self._callbacks.pop(message_id, None)
            raise
        return await future

    def on_message(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def detach(self) -> None:
        """Detach from the target. The session becomes unusable."""
        if self._connection is None:
            raise TargetClosedError(f'Session already detached. Most likely the {self._target_type} has been closed.')
        await self._connection.send_message('Target.detachFromTarget', {'sessionId': self._session_id})

    def _on_message(self, message: dict[str, Any]) -> None:
        message_id = message.get('id')
        if message_id is not None:
            pending = self._callbacks.pop(message_id, None)
            if pending is not None:
                _reply_result(pending, message)
            return
        for listener in list(self._listeners):
            listener(message)

    def _on_closed(self) -> None:
        for pending in self._callbacks.values():
            if not pending.future.done():
                pending.future.set_exception(
                    TargetClosedError(f'Protocol error ({pending.method}): Target closed.')
                )
        self._callbacks.clear()
        self._connection = None


class Connection:
    """Root protocol connection to the browser.

    Example:
        >>> connection = await Connection.create('ws://127.0.0.1:9222/devtools/browser/...')
        >>> version = await connection.send_message('Browser.getVersion')
        >>> await connection.dispose()
    """

    def __init__(self, url: str, transport: Any, delay: float = 0):
        """Bind the connection to a transport.

        Args:
            url: The websocket endpoint the transport is connected to.
            transport: Object with `send`, `close`, `on_message`, `on_close`
                and `report_error` (normally a WebSocketTransport).
            delay: Seconds to wait before dispatching each inbound message.
        """
        self._url = url
        self._transport = transport
        self._delay = delay
        self._last_id = 0
        self._callbacks: dict[int, _PendingCall] = {}
        self._sessions: dict[SessionID, CDPSession] = {}
        self._message_listeners: list[MessageListener] = []
        self._disconnected_listeners: list[Callable[[], None]] = []
        self._closed = False
        self._close_reason: str | None = None

        self._transport.on_message(self._on_transport_message)
        self._transport.on_close(self._on_close)

    @classmethod
    async def create(cls, url: str, delay: float = 0) -> 'Connection':
        transport = await WebSocketTransport.create(url)
        return cls(url, transport, delay=delay)

    @property
    def url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        return self._closed

    def session(self, session_id: SessionID) -> CDPSession | None:
        return self._sessions.get(session_id)

    def on_message(self, listener: MessageListener) -> None:
        """Register a consumer of unsolicited protocol notifications."""
        self._message_listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._message_listeners:
            self._message_listeners.remove(listener)

    def on_connection_disconnected(self, listener: Callable[[], None]) -> None:
        self._disconnected_listeners.append(listener)

    async def send_message(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue one remote call and wait for the correlated reply.

        Raises:
            ConnectionClosedError: The connection is or becomes closed before the reply.
            ProtocolError: The browser answered with an error.
        """
        if self._closed:
            raise ConnectionClosedError(
                f'Protocol error ({method}): Connection closed.', method=method, reason=self._close_reason
            )
        future = asyncio.get_running_loop().create_future()
        message_id = self._next_id()
        self._callbacks[message_id] = _PendingCall(method, future)
        try:
            await self._raw_send({'id': message_id, 'method': method, 'params': params or {}})
        except Exception:
            self._callbacks.pop(message_id, None)
            raise
        return await future

    async def create_session(self, target_info: 'TargetInfo') -> CDPSession:
        """Attach to a target and return its flattened session."""
        result = await self.send_message('Target.attachToTarget', {'targetId': target_info.target_id, 'flatten': True})
        session_id = result['sessionId']
        session = self._sessions.get(session_id)
        if session is None:
            # attachedToTarget has not been seen yet on this connection
            session = CDPSession(self, target_info.type, session_id)
            self._sessions[session_id] = session
        return session

    async def dispose(self) -> None:
        """Fail pending calls, notify listeners and close the transport."""
        self._on_close(None, None)
        await self._transport.close()

    def _next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    async def _raw_send(self, message: dict[str, Any]) -> None:
        payload = json.dumps(message)
        protocol_logger.debug(f'SEND ► {payload}')
        await self._transport.send(payload)

    def _on_transport_message(self, data: str) -> None:
        if self._delay:
            asyncio.get_running_loop().call_later(self._delay, self._on_delayed_message, data)
        else:
            self._on_message(data)

    def _on_delayed_message(self, data: str) -> None:
        # Outside the transport read loop, so errors are reported here
        try:
            self._on_message(data)
        except Exception as e:
            self._transport.report_error(e)

    def _on_message(self, data: str) -> None:
        protocol_logger.debug(f'◀ RECV {data}')
        message = json.loads(data)
        method = message.get('method')

        if method == 'Target.attachedToTarget':
            params = message['params']
            session_id = params['sessionId']
            if session_id not in self._sessions:
                self._sessions[session_id] = CDPSession(self, params['targetInfo']['type'], session_id)
        elif method == 'Target.detachedFromTarget':
            session = self._sessions.pop(message['params']['sessionId'], None)
            if session is not None:
                session._on_closed()

        if message.get('sessionId'):
            session = self._sessions.get(message['sessionId'])
            if session is not None:
                session._on_message(message)
            else:
                logger.debug(f'Dropping message for unknown session {message["sessionId"]}')
        elif message.get('id') is not None:
            pending = self._callbacks.pop(message['id'], None)
            if pending is not None:
                _reply_result(pending, message)
        else:
            for listener in list(self._message_listeners):
                listener(message)

    def _on_close(self, reason: str | None, code: int | None) -> None:
        if self._closed:
            return
        self._closed = True
        self._close_reason = reason
        logger.debug(f'Connection to {self._url} closed (code={code}, reason={reason!r})')

        for pending in self._callbacks.values():
            if not pending.future.done():
                pending.future.set_exception(
                    ConnectionClosedError(
                        f'Protocol error ({pending.method}): Target closed.', method=pending.method, reason=reason
                    )
                )
        self._callbacks.clear()

        for session in self._sessions.values():
            session._on_closed()
        self._sessions.clear()

        for listener in list(self._disconnected_listeners):
            listener()
