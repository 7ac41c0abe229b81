"""
services/integrity_monitor.py

Tab-switch (visibility loss) counter with escalation:
  - below the limit  → non-blocking warning "n/limit"
  - at the limit     → final warning + auto-submit after a grace period

The pending auto-submit cannot be cancelled by the student; it is cancelled
only when the attempt has already been submitted some other way.
Does not read or write answers.
"""

import logging
from typing import Callable, Dict, Optional

from scout_exam.services.scheduler import ScheduledCall, Scheduler

from config import AUTO_SUBMIT_GRACE_SECONDS, TAB_SWITCH_LIMIT

logger = logging.getLogger(__name__)


def severity_for(count: int, limit: int = TAB_SWITCH_LIMIT) -> str:
    if count >= limit:
        return "high"
    if count > 1:
        return "medium"
    return "low"


class IntegrityMonitor:
    def __init__(
        self,
        scheduler: Scheduler,
        on_auto_submit: Callable[[], None],
        limit: int = TAB_SWITCH_LIMIT,
        grace_seconds: float = AUTO_SUBMIT_GRACE_SECONDS,
        enforce: bool = True,
        on_violation: Optional[Callable[[int], None]] = None,
    ):
        if limit < 1:
            raise ValueError("tab-switch limit must be at least 1")
        self._scheduler = scheduler
        self._on_auto_submit = on_auto_submit
        self._on_violation = on_violation
        self.limit = limit
        self.grace_seconds = grace_seconds
        self.enforce = enforce

        self.count = 0
        self.final_warning = False
        self.active = False
        self._pending: Optional[ScheduledCall] = None

    @property
    def auto_submit_pending(self) -> bool:
        return self._pending is not None and self._pending.pending

    def start(self) -> None:
        self.active = True

    def stop(self) -> None:
        """Stop observing and drop any pending auto-submit."""
        self.active = False
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def visibility_lost(self) -> Dict[str, object]:
        """Observer entry point: the student's page was hidden."""
        if not self.active:
            return self.status()

        self.count += 1
        logger.info(f"Visibility lost ({self.count}/{self.limit})")
        if self._on_violation is not None:
            self._on_violation(self.count)

        if self.count >= self.limit and self.enforce:
            self.final_warning = True
            if self._pending is None:
                logger.warning(
                    f"Tab-switch limit reached, auto-submit in {self.grace_seconds:g}s"
                )
                self._pending = self._scheduler.call_later(self.grace_seconds, self._fire)
        return self.status()

    def _fire(self) -> None:
        if not self.active:
            return
        self._on_auto_submit()

    def warning_message(self) -> Optional[str]:
        if self.final_warning:
            return (
                "Multiple cheating attempts detected. The exam will be submitted "
                f"automatically in {self.grace_seconds:g} seconds."
            )
        if self.count > 0:
            return (
                f"Window change detected ({self.count}/{self.limit}). "
                f"The exam is submitted automatically at {self.limit}."
            )
        return None

    def status(self) -> Dict[str, object]:
        return {
            "tab_switches": self.count,
            "limit": self.limit,
            "final_warning": self.final_warning,
            "auto_submit_pending": self.auto_submit_pending,
            "warning": self.warning_message(),
        }
