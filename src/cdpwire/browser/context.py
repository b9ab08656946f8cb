"""Browser contexts: logical partitions of targets."""

import logging
from typing import TYPE_CHECKING, Any

from cdpwire.browser.observers import TargetCallback, TargetEvent, TargetObserver, TargetObserverRegistry, TargetPredicate
from cdpwire.exceptions import CdpWireError

if TYPE_CHECKING:
    from cdpwire.browser.browser import Browser
    from cdpwire.browser.target import Target
    from cdpwire.connection import Connection

logger = logging.getLogger(__name__)

# Web permission names mapped to Browser.grantPermissions protocol names
WEB_PERMISSION_TO_PROTOCOL: dict[str, str] = {
    'geolocation': 'geolocation',
    'midi': 'midi',
    'notifications': 'notifications',
    'camera': 'videoCapture',
    'microphone': 'audioCapture',
    'background-sync': 'backgroundSync',
    'ambient-light-sensor': 'sensors',
    'accelerometer': 'sensors',
    'gyroscope': 'sensors',
    'magnetometer': 'sensors',
    'accessibility-events': 'accessibilityEvents',
    'clipboard-read': 'clipboardReadWrite',
    'clipboard-write': 'clipboardReadWrite',
    'clipboard-sanitized-write': 'clipboardSanitizedWrite',
    'payment-handler': 'paymentHandler',
    'persistent-storage': 'durableStorage',
    'idle-detection': 'idleDetection',
    'midi-sysex': 'midiSysex',
}


class BrowserContext:
    """A group of targets sharing one browsing profile.

    The default context has id None and always exists. Named (incognito)
    contexts are created with `Browser.create_incognito_browser_context()`.
    Membership is derived from the browser's target registry on every query,
    nothing is cached here.
    """

    def __init__(self, connection: 'Connection', browser: 'Browser', context_id: str | None):
        self._connection = connection
        self._browser = browser
        self._id = context_id
        self._observers = TargetObserverRegistry(name=f'context:{context_id or "default"}')

    def __repr__(self) -> str:
        return f'<BrowserContext {self._id or "default"}>'

    @property
    def id(self) -> str | None:
        return self._id

    @property
    def browser(self) -> 'Browser':
        return self._browser

    def is_incognito(self) -> bool:
        return self._id is not None

    def targets(self) -> list['Target']:
        """Initialized targets that belong to this context."""
        return [target for target in self._browser.targets() if target.browser_context is self]

    async def pages(self) -> list[Any]:
        """Page handles of this context's page targets."""
        pages = []
        for target in self.targets():
            if target.type in ('page', 'background_page'):
                page = await target.page()
                if page is not None:
                    pages.append(page)
        return pages

    async def wait_for_target(self, predicate: TargetPredicate, timeout: float | None = None) -> 'Target':
        """Wait for a target of this context satisfying `predicate`."""
        return await self._browser.wait_for_target(
            lambda target: target.browser_context is self and predicate(target),
            timeout=timeout,
        )

    async def new_page(self) -> Any:
        return await self._browser._create_page_in_context(self._id)

    async def override_permissions(self, origin: str, permissions: list[str]) -> None:
        """Grant web permissions to `origin` within this context.

        Raises:
            ValueError: A permission name is unknown.
        """
        protocol_permissions = []
        for permission in permissions:
            protocol_permission = WEB_PERMISSION_TO_PROTOCOL.get(permission)
            if protocol_permission is None:
                raise ValueError(f'Unknown permission: {permission}')
            protocol_permissions.append(protocol_permission)

        params: dict[str, Any] = {'origin': origin, 'permissions': protocol_permissions}
        if self._id is not None:
            params['browserContextId'] = self._id
        await self._connection.send_message('Browser.grantPermissions', params)

    async def clear_permission_overrides(self) -> None:
        params = {'browserContextId': self._id} if self._id is not None else {}
        await self._connection.send_message('Browser.resetPermissions', params)

    async def close(self) -> None:
        """Dispose this context. The default context cannot be closed."""
        if self._id is None:
            raise CdpWireError('Non-incognito profiles cannot be closed!')
        await self._browser.dispose_context(self._id)

    # Membership observers

    def add_target_observer(self, event: TargetEvent, callback: TargetCallback) -> TargetObserver:
        return self._observers.subscribe(event, callback)

    def remove_target_observer(self, observer: TargetObserver) -> None:
        self._observers.unsubscribe(observer)

    def observer_count(self, event: TargetEvent | None = None) -> int:
        return self._observers.count(event)

    def handle_browser_context_target_created(self, target: 'Target') -> None:
        self._observers.emit(TargetEvent.CREATED, target)

    def handle_browser_context_target_destroyed(self, target: 'Target') -> None:
        self._observers.emit(TargetEvent.DESTROYED, target)

    def handle_browser_context_target_changed(self, target: 'Target') -> None:
        self._observers.emit(TargetEvent.CHANGED, target)
