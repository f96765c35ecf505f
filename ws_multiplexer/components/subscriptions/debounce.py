"""
Debounced Unsubscribe Scheduler.

Delays the teardown of a subscription whose last listener just left. Views
often unmount and immediately remount the same watch (route changes, list
re-renders); sending CLOSE and REQUEST for each blip causes flicker and
backend churn, so teardown waits a short delay and is cancelled if a new
listener claims the key in the meantime.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from shared.config.logging import get_logger
from ws_multiplexer.components.core.constants import MuxConstants
from ws_multiplexer.components.subscriptions.keys import SubscriptionKey

logger = get_logger(__name__)


class DebouncedUnsubscribeScheduler:
    """
    One cancellable timer per subscription key.

    Usage:
        scheduler = DebouncedUnsubscribeScheduler(0.1, on_expire=teardown)
        scheduler.schedule(key)   # teardown(key) runs in 100 ms...
        scheduler.cancel(key)     # ...unless cancelled first
    """

    def __init__(
        self,
        delay: float = MuxConstants.UNSUBSCRIBE_DEBOUNCE,
        on_expire: Callable[[SubscriptionKey], None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """
        Args:
            delay: Seconds to wait before tearing a key down.
            on_expire: Called with the key when its timer fires.
            loop: Event loop for the timers (default: the running loop).
        """
        if delay < 0:
            raise ValueError("delay must not be negative")
        self._delay = delay
        self._on_expire = on_expire
        self._loop = loop
        self._pending: dict[SubscriptionKey, asyncio.TimerHandle] = {}

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, key: SubscriptionKey) -> bool:
        return key in self._pending

    def schedule(self, key: SubscriptionKey) -> None:
        """
        Schedule teardown of a key, replacing any timer already pending for it.

        Raises:
            RuntimeError: If called outside a running event loop and no loop
                was injected.
        """
        self.cancel(key)
        loop = self._loop or asyncio.get_running_loop()
        self._pending[key] = loop.call_later(self._delay, self._fire, key)
        logger.debug("Teardown scheduled", key=str(key), delay=self._delay)

    def cancel(self, key: SubscriptionKey) -> bool:
        """
        Cancel the pending teardown for a key.

        Safe for keys whose timer already fired or was cancelled.

        Returns:
            True if a pending timer was cancelled.
        """
        handle = self._pending.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every pending teardown. Returns the number cancelled."""
        count = len(self._pending)
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
        return count

    def _fire(self, key: SubscriptionKey) -> None:
        self._pending.pop(key, None)
        if self._on_expire is None:
            return
        try:
            self._on_expire(key)
        except Exception as e:
            logger.error(
                "Error tearing down subscription",
                key=str(key),
                error=str(e),
                exc_info=True,
            )
