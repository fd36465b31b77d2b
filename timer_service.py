from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[["TimerSubscription"], None]


class TimerSubscription:
    """Handle for one periodic callback registered with a timer source."""

    def __init__(self, interval: float, callback: TimerCallback) -> None:
        self.interval = interval
        self.callback = callback
        self._cancelled = threading.Event()

    @property
    def active(self) -> bool:
        return not self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def fire(self) -> None:
        if self.active:
            self.callback(self)


class TimerSource:
    """Schedules periodic callbacks."""

    def schedule(self, interval: float, callback: TimerCallback) -> TimerSubscription:
        raise NotImplementedError()


class _IntervalThread(threading.Thread):
    """Background thread firing a subscription every ``interval`` seconds."""

    def __init__(self, subscription: TimerSubscription) -> None:
        super().__init__(daemon=True)
        self.subscription = subscription

    def run(self) -> None:
        sub = self.subscription
        while not sub._cancelled.wait(sub.interval):
            try:
                sub.fire()
            except Exception:
                logger.exception("Timer callback failed")


class IntervalTimerSource(TimerSource):
    """Fires callbacks from a daemon thread per subscription."""

    def schedule(self, interval: float, callback: TimerCallback) -> TimerSubscription:
        if interval <= 0:
            raise ValueError("interval must be positive")
        sub = TimerSubscription(interval, callback)
        _IntervalThread(sub).start()
        logger.debug(f"Scheduled interval timer every {interval}s")
        return sub


class ManualTimerSource(TimerSource):
    """Fires callbacks only when told to.

    Used when the display drives the countdown itself and reports each elapsed
    second, and for deterministic tests.
    """

    def __init__(self) -> None:
        self.subscriptions: list[TimerSubscription] = []
        self._lock = threading.Lock()

    def schedule(self, interval: float, callback: TimerCallback) -> TimerSubscription:
        sub = TimerSubscription(interval, callback)
        with self._lock:
            self.subscriptions = [s for s in self.subscriptions if s.active]
            self.subscriptions.append(sub)
        return sub

    @property
    def active_subscriptions(self) -> list[TimerSubscription]:
        with self._lock:
            return [s for s in self.subscriptions if s.active]

    def fire(self, count: int = 1) -> int:
        """Fire every active subscription ``count`` times.

        Subscriptions created while firing are not fired until the next round.
        Returns the number of callbacks delivered.
        """
        delivered = 0
        for _ in range(count):
            for sub in self.active_subscriptions:
                if sub.active:
                    sub.fire()
                    delivered += 1
        return delivered
