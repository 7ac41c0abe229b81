"""
services/timer.py

Exam countdown. Default limit: 60 minutes (3600 s).
Decrements once per tick and fires on_expire exactly once at zero.
"""

import logging
from typing import Callable, Optional

from scout_exam.services.scheduler import ScheduledCall, Scheduler

from config import EXAM_DURATION_SECONDS, TIME_WARNING_SECONDS

logger = logging.getLogger(__name__)

_TICK_SECONDS = 1.0


def format_time(seconds: int) -> str:
    """3725 -> '01:02:05'"""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class SessionTimer:
    def __init__(
        self,
        scheduler: Scheduler,
        on_expire: Callable[[], None],
        duration: int = EXAM_DURATION_SECONDS,
    ):
        self._scheduler = scheduler
        self._on_expire = on_expire
        self.remaining = duration
        self.expired = False
        self._next: Optional[ScheduledCall] = None

    @property
    def running(self) -> bool:
        return self._next is not None and self._next.pending

    @property
    def is_warning(self) -> bool:
        return self.remaining <= TIME_WARNING_SECONDS

    def start(self) -> None:
        if self.running or self.expired:
            return
        self._schedule()

    def stop(self) -> None:
        if self._next is not None:
            self._next.cancel()
            self._next = None

    def _schedule(self) -> None:
        self._next = self._scheduler.call_later(_TICK_SECONDS, self.tick)

    def tick(self) -> None:
        """One second elapsed. A tick after expiry is a no-op."""
        if self.expired:
            return
        self.remaining = max(0, self.remaining - 1)
        if self.remaining > 0:
            self._schedule()
            return

        self.expired = True
        self._next = None
        logger.info("Exam time is up, submitting")
        self._on_expire()
