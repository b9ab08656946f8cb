"""Browser: target registry and notification reconciliation.

The Browser keeps the client-side view of the remote target graph consistent
with the Target domain notifications delivered by the connection:

    Target.targetCreated      -> register a Target, fan out once initialized
    Target.targetDestroyed    -> unregister it, fan out if it was initialized
    Target.targetInfoChanged  -> update in place, fan out on url changes

Handlers run synchronously on the connection's delivery path and never
suspend. Consumers observe the registry through `targets()`, the browser
contexts, explicit target observers, `wait_for_target()` and the events
published on `event_bus`.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from bubus import EventBus
from cdp_use.cdp.target import TargetID
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from cdpwire.browser.context import BrowserContext
from cdpwire.browser.events import (
    BrowserContextCreatedEvent,
    BrowserContextDisposedEvent,
    BrowserDisconnectedEvent,
    BrowserErrorEvent,
    TargetChangedEvent,
    TargetCreatedEvent,
    TargetDestroyedEvent,
)
from cdpwire.browser.observers import (
    TargetCallback,
    TargetEvent,
    TargetObserver,
    TargetObserverRegistry,
    TargetPredicate,
    wait_for_target,
)
from cdpwire.browser.target import Target
from cdpwire.browser.views import BrowserVersion, TargetInfo
from cdpwire.config import CONFIG
from cdpwire.exceptions import CdpWireError, ProtocolInvariantError

logger = logging.getLogger(__name__)


class Browser(BaseModel):
    """Client-side model of a browser reached over one protocol connection.

    Attributes:
        event_bus: EventBus receiving target, context and connection events.
        connection: The protocol Connection (send_message, on_message,
            on_connection_disconnected, create_session, dispose, closed, url).
        context_ids: Ids of browser contexts that already exist remotely.
        close_callback: Coroutine function closing the remote browser.
        page_factory: Coroutine function building a page-level handle for a
            page Target. Supplied by the page-automation layer.

    Example:
        >>> connection = await Connection.create(ws_endpoint)
        >>> browser = await Browser.create(connection=connection)
        >>> target = await browser.wait_for_target(lambda t: t.type == 'page', timeout=5)
        >>> await browser.disconnect()
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra='forbid',
        revalidate_instances='never',
    )

    event_bus: EventBus = Field(default_factory=EventBus)
    connection: Any
    context_ids: list[str] = Field(default_factory=list)
    close_callback: Optional[Callable[[], Awaitable[Any]]] = None
    page_factory: Optional[Callable[..., Awaitable[Any]]] = None

    _default_context: BrowserContext | None = PrivateAttr(default=None)
    _contexts: dict[str, BrowserContext] = PrivateAttr(default_factory=dict)
    _targets: dict[TargetID, Target] = PrivateAttr(default_factory=dict)
    _observers: TargetObserverRegistry = PrivateAttr(default_factory=lambda: TargetObserverRegistry(name='browser'))
    _disconnected_callbacks: list[Callable[[], None]] = PrivateAttr(default_factory=list)
    _event_bus_stop_task: Optional[asyncio.Task[None]] = PrivateAttr(default=None)
    _logger: Optional[logging.Logger] = PrivateAttr(default=None)

    def model_post_init(self, __context) -> None:
        """Build the contexts and subscribe to the connection."""
        self._default_context = BrowserContext(self.connection, self, None)
        for context_id in self.context_ids:
            self._contexts[context_id] = BrowserContext(self.connection, self, context_id)

        self.connection.on_connection_disconnected(self._on_disconnected)
        self.connection.on_message(self._on_message)

    @classmethod
    async def create(
        cls,
        connection: Any,
        context_ids: list[str] | None = None,
        close_callback: Callable[[], Awaitable[Any]] | None = None,
        page_factory: Callable[..., Awaitable[Any]] | None = None,
        **kwargs: Any,
    ) -> 'Browser':
        """Create a Browser and enable target discovery.

        Args:
            connection: An open protocol Connection.
            context_ids: Browser context ids that already exist.
            close_callback: Coroutine function used by `close()`.
            page_factory: Builds page handles for page targets.

        Returns:
            The Browser, already receiving Target domain notifications.
        """
        browser = cls(
            connection=connection,
            context_ids=list(context_ids or []),
            close_callback=close_callback,
            page_factory=page_factory,
            **kwargs,
        )
        await connection.send_message('Target.setDiscoverTargets', {'discover': True})
        return browser

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = logging.getLogger('cdpwire.browser')
        return self._logger

    # ------------------------------------------------------------------
    # Browser contexts
    # ------------------------------------------------------------------

    @property
    def default_browser_context(self) -> BrowserContext:
        assert self._default_context is not None
        return self._default_context

    def browser_contexts(self) -> list[BrowserContext]:
        return [self.default_browser_context, *self._contexts.values()]

    async def create_incognito_browser_context(self) -> BrowserContext:
        """Create a new isolated browser context."""
        result = await self.connection.send_message('Target.createBrowserContext')
        context_id = result['browserContextId']
        context = BrowserContext(self.connection, self, context_id)
        self._contexts[context_id] = context
        self.logger.debug(f'Created browser context {context_id}')
        self.event_bus.dispatch(BrowserContextCreatedEvent(browser_context_id=context_id))
        return context

    async def dispose_context(self, context_id: str) -> None:
        """Release a named context remotely and forget it locally.

        Targets still bound to it are not touched; their targetDestroyed
        notifications clean them up.
        """
        if context_id is None:
            raise CdpWireError('The default browser context cannot be disposed')
        await self.connection.send_message('Target.disposeBrowserContext', {'browserContextId': context_id})
        self._contexts.pop(context_id, None)
        self.logger.debug(f'Disposed browser context {context_id}')
        self.event_bus.dispatch(BrowserContextDisposedEvent(browser_context_id=context_id))

    def _resolve_context(self, context_id: str | None) -> BrowserContext:
        if context_id and context_id in self._contexts:
            return self._contexts[context_id]
        if context_id:
            self.logger.debug(f'Unknown browser context {context_id}, falling back to the default context')
        return self.default_browser_context

    # ------------------------------------------------------------------
    # Notification handling
    # ------------------------------------------------------------------

    def _on_message(self, message: dict[str, Any]) -> None:
        method = message.get('method')
        if method == 'Target.targetCreated':
            handler = self._handle_target_created
        elif method == 'Target.targetDestroyed':
            handler = self._handle_target_destroyed
        elif method == 'Target.targetInfoChanged':
            handler = self._handle_target_info_changed
        else:
            return

        try:
            handler(message.get('params', {}))
        except ProtocolInvariantError as e:
            self.logger.error(f'Protocol invariant violated by {method}: {e.message} (target {e.target_id})')
            self.event_bus.dispatch(
                BrowserErrorEvent(
                    error_type='ProtocolInvariantError',
                    message=e.message,
                    details={'target_id': e.target_id, 'method': method},
                )
            )
            raise

    def _handle_target_created(self, event: dict[str, Any]) -> None:
        target_info = TargetInfo.model_validate(event['targetInfo'])
        if target_info.target_id in self._targets:
            raise ProtocolInvariantError(
                'Target should not exist before targetCreated',
                target_id=target_info.target_id,
                method='Target.targetCreated',
            )

        context = self._resolve_context(target_info.browser_context_id)

        async def session_factory():
            return await self.connection.create_session(target.target_info)

        target = Target(
            target_info=target_info,
            browser_context=context,
            session_factory=session_factory,
            page_factory=self.page_factory,
        )
        self._targets[target_info.target_id] = target
        self.logger.debug(f'Target created: {target!r} in {context!r}')

        def on_initialized(success: bool) -> None:
            if not success:
                return
            self._observers.emit(TargetEvent.CREATED, target)
            context.handle_browser_context_target_created(target)
            self.event_bus.dispatch(
                TargetCreatedEvent(
                    target_id=target.target_id,
                    target_type=target.type,
                    url=target.url,
                    browser_context_id=context.id,
                )
            )

        target.on_initialize_completed(on_initialized)

    def _handle_target_destroyed(self, event: dict[str, Any]) -> None:
        target_id = event['targetId']
        target = self._targets.get(target_id)
        if target is None:
            raise ProtocolInvariantError(
                'Target should exist before targetDestroyed',
                target_id=target_id,
                method='Target.targetDestroyed',
            )

        target.initialized_callback(False)
        del self._targets[target_id]
        target.closed_callback()
        self.logger.debug(f'Target destroyed: {target!r}')

        def on_initialized(success: bool) -> None:
            if not success:
                return
            self._observers.emit(TargetEvent.DESTROYED, target)
            target.browser_context.handle_browser_context_target_destroyed(target)
            self.event_bus.dispatch(
                TargetDestroyedEvent(
                    target_id=target.target_id,
                    target_type=target.type,
                    url=target.url,
                    browser_context_id=target.browser_context.id,
                )
            )

        target.on_initialize_completed(on_initialized)

    def _handle_target_info_changed(self, event: dict[str, Any]) -> None:
        target_info = TargetInfo.model_validate(event['targetInfo'])
        target = self._targets.get(target_info.target_id)
        if target is None:
            raise ProtocolInvariantError(
                'Target should exist before targetInfoChanged',
                target_id=target_info.target_id,
                method='Target.targetInfoChanged',
            )

        previous_url = target.url
        was_initialized = target.is_initialized
        target.handle_target_info_changed(target_info)

        if was_initialized and previous_url != target.url:
            self._observers.emit(TargetEvent.CHANGED, target)
            target.browser_context.handle_browser_context_target_changed(target)
            self.event_bus.dispatch(
                TargetChangedEvent(
                    target_id=target.target_id,
                    target_type=target.type,
                    url=target.url,
                    previous_url=previous_url,
                    browser_context_id=target.browser_context.id,
                )
            )

    def _on_disconnected(self) -> None:
        self.logger.debug(f'Disconnected from {self.connection.url}')
        for callback in list(self._disconnected_callbacks):
            callback()
        self.event_bus.dispatch(BrowserDisconnectedEvent(websocket_endpoint=self.connection.url))
        self._stop_event_bus()

    def _stop_event_bus(self) -> asyncio.Task[None]:
        """Stop the event bus once, letting queued events drain first."""
        if self._event_bus_stop_task is None:
            self._event_bus_stop_task = asyncio.ensure_future(self.event_bus.stop(clear=True, timeout=5))
        return self._event_bus_stop_task

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_target_observer(self, event: TargetEvent, callback: TargetCallback) -> TargetObserver:
        """Subscribe `callback` to created, destroyed or changed notifications."""
        return self._observers.subscribe(event, callback)

    def remove_target_observer(self, observer: TargetObserver) -> None:
        self._observers.unsubscribe(observer)

    def observer_count(self, event: TargetEvent | None = None) -> int:
        return self._observers.count(event)

    def on_disconnected(self, callback: Callable[[], None]) -> None:
        self._disconnected_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Targets and pages
    # ------------------------------------------------------------------

    def targets(self) -> list[Target]:
        """All initialized targets. Uninitialized ones are not exposed."""
        return [target for target in self._targets.values() if target.is_initialized]

    def target(self) -> Target | None:
        """The browser-level target."""
        return next((target for target in self.targets() if target.type == 'browser'), None)

    def get_target(self, target_id: TargetID) -> Target | None:
        return self._targets.get(target_id)

    async def wait_for_target(self, predicate: TargetPredicate, timeout: float | None = None) -> Target:
        """Wait for a target satisfying `predicate`.

        Args:
            predicate: Called with candidate targets.
            timeout: Seconds to wait. Defaults to CONFIG.WAIT_FOR_TARGET_TIMEOUT (30).

        Returns:
            The matching target. Returns without suspending when an
            initialized target already matches.

        Raises:
            TargetTimeoutError: No target matched in time.
        """
        timeout = CONFIG.WAIT_FOR_TARGET_TIMEOUT if timeout is None else timeout
        return await wait_for_target(self._observers, self.targets, predicate, timeout)

    async def pages(self) -> list[Any]:
        pages = []
        for context in self.browser_contexts():
            pages.extend(await context.pages())
        return pages

    async def new_page(self) -> Any:
        return await self.default_browser_context.new_page()

    async def _create_page_in_context(self, context_id: str | None) -> Any:
        params: dict[str, Any] = {'url': 'about:blank'}
        if context_id:
            params['browserContextId'] = context_id
        result = await self.connection.send_message('Target.createTarget', params)
        target_id = result['targetId']
        target = self._targets.get(target_id)
        if target is None:
            raise CdpWireError(f'Target {target_id} was created but never reported by targetCreated')
        if not await target.initialized:
            raise CdpWireError('Failed to create target for page')
        return await target.page()

    # ------------------------------------------------------------------
    # Browser-level calls and lifecycle
    # ------------------------------------------------------------------

    @property
    def websocket_endpoint(self) -> str:
        return self.connection.url

    async def version(self) -> str:
        return (await self._get_version()).product

    async def user_agent(self) -> str:
        return (await self._get_version()).user_agent

    async def _get_version(self) -> BrowserVersion:
        result = await self.connection.send_message('Browser.getVersion')
        return BrowserVersion.model_validate(result)

    async def close(self) -> None:
        """Close the remote browser (through the close callback) and disconnect."""
        if self.close_callback is not None:
            await self.close_callback()
        await self.disconnect()

    async def disconnect(self) -> None:
        """Dispose the connection and stop the event bus."""
        await self.connection.dispose()
        await self._stop_event_bus()

    def is_connected(self) -> bool:
        return not self.connection.closed
