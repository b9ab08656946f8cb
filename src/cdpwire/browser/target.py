"""Target: one remote debuggable unit (page, worker, browser)."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from cdp_use.cdp.target import TargetID

from cdpwire.browser.views import TargetInfo
from cdpwire.exceptions import CdpWireError

if TYPE_CHECKING:
    from cdpwire.browser.browser import Browser
    from cdpwire.browser.context import BrowserContext
    from cdpwire.connection import CDPSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Awaitable['CDPSession']]
PageFactory = Callable[['Target'], Awaitable[Any]]

PAGE_TARGET_TYPES = ('page', 'background_page')


class Target:
    """Client-side model of a remote target.

    A target is tracked from its targetCreated notification, but only becomes
    visible to consumers once initialized: non-page targets are initialized
    right away, page targets once they report a url.

    Attributes:
        target_info: Latest TargetInfo reported by the browser.
        browser_context: Context the target belongs to.
    """

    def __init__(
        self,
        target_info: TargetInfo,
        browser_context: 'BrowserContext',
        session_factory: SessionFactory,
        page_factory: PageFactory | None = None,
    ):
        self.target_info = target_info
        self.browser_context = browser_context
        self._session_factory = session_factory
        self._page_factory = page_factory
        self._page_task: asyncio.Task[Any] | None = None

        loop = asyncio.get_running_loop()
        self._initialized_future: asyncio.Future[bool] = loop.create_future()
        self._closed_future: asyncio.Future[None] = loop.create_future()
        self._initialize_continuations: list[Callable[[bool], None]] = []

        self._is_initialized = target_info.type not in PAGE_TARGET_TYPES or target_info.url != ''
        if self._is_initialized:
            self.initialized_callback(True)

    def __repr__(self) -> str:
        return f'<Target {self.target_id} type={self.type} url={self.url!r}>'

    @property
    def target_id(self) -> TargetID:
        return self.target_info.target_id

    @property
    def type(self) -> str:
        return self.target_info.type

    @property
    def url(self) -> str:
        return self.target_info.url

    @property
    def browser(self) -> 'Browser':
        return self.browser_context.browser

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def is_closed(self) -> bool:
        return self._closed_future.done()

    @property
    def initialized(self) -> asyncio.Future[bool]:
        """Resolves once with True when initialized, or False if destroyed first.

        Shielded: cancelling or timing out an await on it leaves the
        target's own signal untouched.
        """
        return asyncio.shield(self._initialized_future)

    @property
    def closed(self) -> asyncio.Future[None]:
        return asyncio.shield(self._closed_future)

    def initialized_callback(self, success: bool) -> None:
        """Resolve the initialization signal unless it already resolved.

        Pending continuations run synchronously, in registration order.
        """
        if self._initialized_future.done():
            return
        self._initialized_future.set_result(success)
        continuations, self._initialize_continuations = self._initialize_continuations, []
        for callback in continuations:
            callback(success)

    def on_initialize_completed(self, callback: Callable[[bool], None]) -> None:
        """Run `callback(success)` once the initialization signal resolves.

        Runs immediately when the signal has already resolved.
        """
        if self._initialized_future.done():
            callback(self._initialized_future.result())
        else:
            self._initialize_continuations.append(callback)

    def closed_callback(self) -> None:
        if not self._closed_future.done():
            self._closed_future.set_result(None)

    def opener(self) -> 'Target | None':
        opener_id = self.target_info.opener_id
        if opener_id is None:
            return None
        return self.browser.get_target(opener_id)

    async def create_cdp_session(self) -> 'CDPSession':
        """Open a protocol session attached to this target."""
        return await self._session_factory()

    async def page(self) -> Any:
        """Page-level handle for page targets, built once by the page factory.

        Returns:
            The handle, or None when the target is not a page.

        Raises:
            CdpWireError: No page factory was configured for the browser.
        """
        if self.type not in PAGE_TARGET_TYPES:
            return None
        if self._page_factory is None:
            raise CdpWireError(f'No page factory configured, cannot build a page for target {self.target_id}')
        if self._page_task is None:
            self._page_task = asyncio.ensure_future(self._page_factory(self))
        return await self._page_task

    def handle_target_info_changed(self, target_info: TargetInfo) -> None:
        """Apply new info in place. Identity is preserved."""
        self.target_info = target_info
        if not self._is_initialized and (self.type not in PAGE_TARGET_TYPES or self.url != ''):
            self._is_initialized = True
            self.initialized_callback(True)
