"""Target observers and the wait-for-target coordinator.

Observers are plain synchronous callbacks invoked on the connection's
delivery path, so they must never block. `wait_for_target` bridges that
path to a waiting coroutine through a single `asyncio.Future`: the observer
resolves it with `set_result`, the caller awaits it under a deadline, and
both transient observers are removed on every exit path.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from cdpwire.exceptions import TargetTimeoutError

if TYPE_CHECKING:
    from cdpwire.browser.target import Target

logger = logging.getLogger(__name__)

TargetCallback = Callable[['Target'], None]
TargetPredicate = Callable[['Target'], bool]


class TargetEvent(str, Enum):
    CREATED = 'targetcreated'
    DESTROYED = 'targetdestroyed'
    CHANGED = 'targetchanged'


@dataclass(eq=False)
class TargetObserver:
    """One subscription to a target event kind."""

    event: TargetEvent
    callback: TargetCallback
    name: str = field(default='')


class TargetObserverRegistry:
    """Explicit multi-subscriber observer lists, one per target event kind."""

    def __init__(self, name: str = 'targets'):
        self._name = name
        self._observers: dict[TargetEvent, list[TargetObserver]] = {event: [] for event in TargetEvent}

    def subscribe(self, event: TargetEvent, callback: TargetCallback, name: str = '') -> TargetObserver:
        observer = TargetObserver(event=TargetEvent(event), callback=callback, name=name)
        self._observers[observer.event].append(observer)
        return observer

    def unsubscribe(self, observer: TargetObserver) -> None:
        """Remove an observer. Removing one twice is a no-op."""
        observers = self._observers[observer.event]
        if observer in observers:
            observers.remove(observer)

    def emit(self, event: TargetEvent, target: 'Target') -> None:
        """Invoke every observer of `event` with `target`.

        Iterates over a snapshot so callbacks may (un)subscribe while being
        notified. A failing callback is logged and does not stop the others.
        """
        for observer in list(self._observers[event]):
            try:
                observer.callback(target)
            except Exception:
                logger.exception(
                    f'[{self._name}] {event.value} observer {observer.name or observer.callback!r} failed '
                    f'for target {target.target_id}'
                )

    def count(self, event: TargetEvent | None = None) -> int:
        if event is not None:
            return len(self._observers[TargetEvent(event)])
        return sum(len(observers) for observers in self._observers.values())


async def wait_for_target(
    registry: TargetObserverRegistry,
    candidates: Callable[[], Iterable['Target']],
    predicate: TargetPredicate,
    timeout: float,
) -> 'Target':
    """Wait until a target satisfies `predicate`.

    Args:
        registry: Observer registry receiving created/changed notifications.
        candidates: Returns the currently initialized targets.
        predicate: Called with each candidate target.
        timeout: Deadline in seconds.

    Returns:
        The first already initialized target matching the predicate, or the
        first one that comes to match through a created/changed notification.

    Raises:
        TargetTimeoutError: Nothing matched before the deadline.
    """
    existing_target = next((target for target in candidates() if predicate(target)), None)
    if existing_target is not None:
        return existing_target

    rendezvous: asyncio.Future['Target'] = asyncio.get_running_loop().create_future()

    def check(target: 'Target') -> None:
        if rendezvous.done():
            return
        try:
            matched = predicate(target)
        except Exception as e:
            rendezvous.set_exception(e)
            return
        if matched:
            rendezvous.set_result(target)

    created_observer = registry.subscribe(TargetEvent.CREATED, check, name='wait_for_target')
    changed_observer = registry.subscribe(TargetEvent.CHANGED, check, name='wait_for_target')
    try:
        return await asyncio.wait_for(rendezvous, timeout)
    except asyncio.TimeoutError:
        raise TargetTimeoutError(f'waiting for target failed: timeout {timeout}s exceeded', timeout=timeout) from None
    finally:
        registry.unsubscribe(created_observer)
        registry.unsubscribe(changed_observer)
