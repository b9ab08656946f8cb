"""cdpwire - an asyncio client for the Chrome DevTools Protocol target model."""

__version__ = "0.1.0"

from cdpwire.browser import (
    Browser,
    BrowserContext,
    BrowserVersion,
    Target,
    TargetEvent,
    TargetInfo,
    TargetObserver,
)
from cdpwire.connection import CDPSession, Connection
from cdpwire.connector import connect, fetch_websocket_endpoint
from cdpwire.exceptions import (
    CdpWireError,
    ConnectionClosedError,
    ProtocolError,
    ProtocolInvariantError,
    TargetClosedError,
    TargetTimeoutError,
)
from cdpwire.transport import WebSocketTransport

__all__ = [
    # Version
    "__version__",
    # Browser
    "Browser",
    "BrowserContext",
    "BrowserVersion",
    "Target",
    "TargetEvent",
    "TargetInfo",
    "TargetObserver",
    # Protocol
    "CDPSession",
    "Connection",
    "WebSocketTransport",
    "connect",
    "fetch_websocket_endpoint",
    # Errors
    "CdpWireError",
    "ConnectionClosedError",
    "ProtocolError",
    "ProtocolInvariantError",
    "TargetClosedError",
    "TargetTimeoutError",
]
