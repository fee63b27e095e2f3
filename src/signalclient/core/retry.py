"""
Deferred reconnect timer.

A one-shot timer tied to the session that owns it. Every arm() gets a
fresh token; a firing whose token is no longer current (because the timer
was cancelled or re-armed meanwhile) does nothing, so a retry can never
outlive the session that scheduled it.
"""

import asyncio
import logging
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)

# call_later(delay, callback, *args) -> handle with cancel()
Scheduler = Callable[..., Any]


def loop_scheduler(delay: float, callback: Callable[..., None], *args: Any) -> asyncio.TimerHandle:
    """Schedule on the running event loop."""
    return asyncio.get_running_loop().call_later(delay, callback, *args)


class RetryTimer:
    """
    Cancelable one-shot timer.

    Only one firing can be pending: arm() on an armed timer is refused, so
    repeated failures never stack up retries.
    """

    def __init__(self, delay: float, scheduler: Optional[Scheduler] = None):
        self.delay = delay
        self._scheduler = scheduler or loop_scheduler
        self._handle: Optional[Any] = None
        self._token: Optional[object] = None

    @property
    def armed(self) -> bool:
        return self._token is not None

    def arm(self, callback: Callable[[], None]) -> bool:
        """Schedule callback after delay. Returns False if already armed."""
        if self.armed:
            return False
        token = object()
        self._token = token
        self._handle = self._scheduler(self.delay, self._fire, token, callback)
        return True

    def _fire(self, token: object, callback: Callable[[], None]) -> None:
        if token is not self._token:
            logger.debug("Dropping stale retry")
            return
        self._token = None
        self._handle = None
        callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._token = None
