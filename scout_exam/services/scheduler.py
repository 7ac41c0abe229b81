"""
services/scheduler.py — virtual-time callback queue for one exam session

Timer ticks and the integrity grace period are scheduled here instead of on
threads. The owner advances the clock:
  - tests call advance() directly
  - the web app's ticker thread calls advance(1.0) once per wall-clock second

Callbacks run synchronously inside advance(), in due-time order, so a
session never sees two handlers at once.
"""

import heapq
import itertools
import logging
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class ScheduledCall:
    """Handle returned by Scheduler.call_later()."""

    __slots__ = ("when", "callback", "cancelled", "done")

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.done = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, ScheduledCall]] = []

    @property
    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        call = ScheduledCall(self._now + delay, callback)
        heapq.heappush(self._queue, (call.when, next(self._seq), call))
        return call

    def pending_count(self) -> int:
        return sum(1 for _, _, c in self._queue if c.pending)

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, running every callback that falls due.
        Callbacks scheduled while advancing run too if they fall inside the window.
        Returns the number of callbacks run.
        """
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, call = heapq.heappop(self._queue)
            if not call.pending:
                continue
            self._now = when
            call.done = True
            call.callback()
            ran += 1
        self._now = target
        return ran

    def clear(self) -> None:
        for _, _, call in self._queue:
            call.cancel()
        self._queue.clear()
