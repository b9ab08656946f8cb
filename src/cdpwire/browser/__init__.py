"""Browser module: target registry, browser contexts and target waiting."""

from cdpwire.browser.browser import Browser
from cdpwire.browser.context import BrowserContext
from cdpwire.browser.observers import TargetEvent, TargetObserver, TargetObserverRegistry
from cdpwire.browser.target import Target
from cdpwire.browser.views import BrowserVersion, TargetInfo

__all__ = [
    "Browser",
    "BrowserContext",
    "BrowserVersion",
    "Target",
    "TargetEvent",
    "TargetInfo",
    "TargetObserver",
    "TargetObserverRegistry",
]
