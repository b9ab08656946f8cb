"""Tests for waiting on targets.

Validates the immediate path, resolution through created/changed
notifications, timeouts, cancellation and that every exit path leaves no
observer behind.
"""

import asyncio

import pytest

from cdpwire.browser.observers import TargetEvent
from cdpwire.exceptions import TargetTimeoutError
from conftest import settle, target_created, target_info_changed


class TestImmediateMatch:
    """An already initialized match is returned without suspending."""

    @pytest.mark.asyncio
    async def test_returns_without_suspending(self, make_browser, transport):
        browser = make_browser(transport)
        transport.deliver(target_created('T1', url='https://example.com/'))
        target = browser.get_target('T1')

        coro = browser.wait_for_target(lambda t: t.url == 'https://example.com/', timeout=1)
        with pytest.raises(StopIteration) as exc_info:
            coro.send(None)

        assert exc_info.value.value is target
        assert browser.observer_count() == 0

    @pytest.mark.asyncio
    async def test_uninitialized_target_not_matched(self, make_browser, transport):
        browser = make_browser(transport)
        transport.deliver(target_created('T1', url=''))

        with pytest.raises(TargetTimeoutError):
            await browser.wait_for_target(lambda t: t.target_id == 'T1', timeout=0.05)


class TestNotificationMatch:
    """Waits resolve through created and changed notifications."""

    @pytest.mark.asyncio
    async def test_resolved_by_created(self, make_browser, transport):
        browser = make_browser(transport)

        waiter = asyncio.create_task(browser.wait_for_target(lambda t: t.type == 'page', timeout=1))
        await settle()
        transport.deliver(target_created('T1'))

        assert await waiter is browser.get_target('T1')
        assert browser.observer_count() == 0

    @pytest.mark.asyncio
    async def test_resolved_by_url_change_in_context(self, make_browser, transport):
        browser = make_browser(transport, context_ids=['C1'])
        named = browser.browser_contexts()[1]
        transport.deliver(target_created('T1', context_id='C1'))

        waiter = asyncio.create_task(
            named.wait_for_target(lambda t: t.url == 'https://example.com/', timeout=1)
        )
        await settle()
        transport.deliver(target_info_changed('T1', context_id='C1', url='https://example.com/'))

        assert await waiter is browser.get_target('T1')
        assert browser.observer_count() == 0

    @pytest.mark.asyncio
    async def test_context_wait_ignores_other_contexts(self, make_browser, transport):
        browser = make_browser(transport, context_ids=['C1'])
        named = browser.browser_contexts()[1]

        waiter = asyncio.create_task(named.wait_for_target(lambda t: t.type == 'page', timeout=1))
        await settle()
        transport.deliver(target_created('T1'))
        transport.deliver(target_created('T2', context_id='C1'))

        assert await waiter is browser.get_target('T2')

    @pytest.mark.asyncio
    async def test_concurrent_waits(self, make_browser, transport):
        browser = make_browser(transport)

        first = asyncio.create_task(browser.wait_for_target(lambda t: t.target_id == 'A', timeout=1))
        second = asyncio.create_task(browser.wait_for_target(lambda t: t.target_id == 'B', timeout=1))
        await settle()
        assert browser.observer_count(TargetEvent.CREATED) == 2

        transport.deliver(target_created('B'))
        transport.deliver(target_created('A'))

        assert (await first).target_id == 'A'
        assert (await second).target_id == 'B'
        assert browser.observer_count() == 0

    @pytest.mark.asyncio
    async def test_predicate_error_propagates(self, make_browser, transport):
        browser = make_browser(transport)

        def predicate(target):
            raise RuntimeError('bad predicate')

        waiter = asyncio.create_task(browser.wait_for_target(predicate, timeout=1))
        await settle()
        transport.deliver(target_created('T1'))

        with pytest.raises(RuntimeError, match='bad predicate'):
            await waiter
        assert browser.observer_count() == 0


class TestTimeoutAndCancellation:
    """Every exit path leaves zero transient observers."""

    @pytest.mark.asyncio
    async def test_timeout_raises_and_cleans_up(self, make_browser, transport):
        browser = make_browser(transport)

        with pytest.raises(TargetTimeoutError, match='waiting for target failed: timeout 0.05s exceeded') as exc_info:
            await browser.wait_for_target(lambda t: False, timeout=0.05)

        assert exc_info.value.timeout == 0.05
        assert isinstance(exc_info.value, TimeoutError)
        assert browser.observer_count() == 0

    @pytest.mark.asyncio
    async def test_zero_timeout_is_respected(self, make_browser, transport):
        browser = make_browser(transport)

        with pytest.raises(TargetTimeoutError):
            await browser.wait_for_target(lambda t: False, timeout=0)
        assert browser.observer_count() == 0

    @pytest.mark.asyncio
    async def test_default_timeout_from_environment(self, make_browser, transport, monkeypatch):
        monkeypatch.setenv('CDPWIRE_WAIT_FOR_TARGET_TIMEOUT', '0.05')
        browser = make_browser(transport)

        with pytest.raises(TargetTimeoutError) as exc_info:
            await browser.wait_for_target(lambda t: False)

        assert exc_info.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_cancellation_cleans_up(self, make_browser, transport):
        browser = make_browser(transport)

        waiter = asyncio.create_task(browser.wait_for_target(lambda t: False, timeout=10))
        await settle()
        assert browser.observer_count() == 2

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert browser.observer_count() == 0

    @pytest.mark.asyncio
    async def test_disconnect_does_not_resolve_wait(self, make_browser, transport):
        browser = make_browser(transport)

        waiter = asyncio.create_task(browser.wait_for_target(lambda t: False, timeout=0.05))
        await settle()
        transport.remote_close()

        with pytest.raises(TargetTimeoutError):
            await waiter
        assert browser.observer_count() == 0
