"""Event definitions published on the browser's event bus."""

import os
from typing import Any

from bubus import BaseEvent
from cdp_use.cdp.target import TargetID
from pydantic import Field


def _get_timeout(env_var: str, default: float) -> float | None:
    """Safely parse environment variable timeout values with robust error handling.

    Args:
        env_var: Environment variable name (e.g. 'TIMEOUT_TargetCreatedEvent')
        default: Default timeout value as float (e.g. 10.0)

    Returns:
        Parsed float value or the default if parsing fails
    """
    env_value = os.getenv(env_var)
    if env_value:
        try:
            parsed = float(env_value)
            if parsed < 0:
                return default
            return parsed
        except (ValueError, TypeError):
            pass

    return default


# ============================================================================
# Target Lifecycle Events
# ============================================================================


class TargetCreatedEvent(BaseEvent[None]):
    """A target finished initializing and became visible."""

    target_id: TargetID
    target_type: str
    url: str
    browser_context_id: str | None = None

    event_timeout: float | None = _get_timeout('TIMEOUT_TargetCreatedEvent', 10.0)


class TargetDestroyedEvent(BaseEvent[None]):
    """An initialized target was destroyed."""

    target_id: TargetID
    target_type: str
    url: str
    browser_context_id: str | None = None

    event_timeout: float | None = _get_timeout('TIMEOUT_TargetDestroyedEvent', 10.0)


class TargetChangedEvent(BaseEvent[None]):
    """The url of an initialized target changed."""

    target_id: TargetID
    target_type: str
    url: str
    previous_url: str
    browser_context_id: str | None = None

    event_timeout: float | None = _get_timeout('TIMEOUT_TargetChangedEvent', 10.0)


# ============================================================================
# Browser Context Events
# ============================================================================


class BrowserContextCreatedEvent(BaseEvent[None]):
    """A named browser context was created."""

    browser_context_id: str

    event_timeout: float | None = _get_timeout('TIMEOUT_BrowserContextCreatedEvent', 10.0)


class BrowserContextDisposedEvent(BaseEvent[None]):
    """A named browser context was disposed."""

    browser_context_id: str

    event_timeout: float | None = _get_timeout('TIMEOUT_BrowserContextDisposedEvent', 10.0)


# ============================================================================
# Connection Events
# ============================================================================


class BrowserDisconnectedEvent(BaseEvent[None]):
    """The connection to the browser closed."""

    websocket_endpoint: str | None = None

    event_timeout: float | None = _get_timeout('TIMEOUT_BrowserDisconnectedEvent', 10.0)


# ============================================================================
# Error Events
# ============================================================================


class BrowserErrorEvent(BaseEvent[None]):
    """An error occurred in the browser layer."""

    error_type: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    event_timeout: float | None = _get_timeout('TIMEOUT_BrowserErrorEvent', 30.0)
