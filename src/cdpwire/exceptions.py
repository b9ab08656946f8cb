"""Exceptions raised by the cdpwire protocol client."""

from typing import Any


class CdpWireError(Exception):
    """Base exception for all cdpwire errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f'{self.message} ({self.details})'
        return self.message


class ProtocolInvariantError(CdpWireError):
    """The remote side sent a notification that contradicts the local target model.

    Raised for a targetCreated of an already known target, or a targetDestroyed /
    targetInfoChanged of an unknown one. The local model can no longer be trusted.
    """

    def __init__(self, message: str, target_id: str | None = None, method: str | None = None):
        super().__init__(message, details={'target_id': target_id, 'method': method})
        self.target_id = target_id
        self.method = method


class TargetTimeoutError(CdpWireError, TimeoutError):
    """No target satisfied the predicate before the deadline."""

    def __init__(self, message: str, timeout: float | None = None):
        super().__init__(message)
        self.timeout = timeout


class ConnectionClosedError(CdpWireError):
    """The connection closed before a remote call could complete."""

    def __init__(self, message: str, method: str | None = None, reason: str | None = None):
        super().__init__(message)
        self.method = method
        self.reason = reason


class ProtocolError(CdpWireError):
    """The browser answered a remote call with an error object."""

    def __init__(self, message: str, method: str, code: int | None = None, data: Any = None):
        super().__init__(message)
        self.method = method
        self.code = code
        self.data = data

    def __str__(self) -> str:
        if self.data:
            return f'Protocol error ({self.method}): {self.message} {self.data}'
        return f'Protocol error ({self.method}): {self.message}'


class TargetClosedError(CdpWireError):
    """A call was made on a per-target session that has been detached."""
    pass
