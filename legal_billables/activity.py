from __future__ import annotations

import logging

from .clock import Clock, TimeSource
from .loop import EventLoop, ScheduledTask

LOGGER = logging.getLogger(__name__)

DEFAULT_THRESHOLD_MS = 30_000
DEFAULT_CHECK_INTERVAL_MS = 5_000


class ActivityMonitor:
    """Pauses a clock once input has been idle longer than the threshold.

    Gaps shorter than the threshold keep accumulating time; longer ones stop
    the clock without discarding what it already holds.
    """

    def __init__(
        self,
        clock: Clock,
        now: TimeSource,
        threshold_ms: float = DEFAULT_THRESHOLD_MS,
        resume_on_activity: bool = True,
    ):
        self.clock = clock
        self._now = now
        self.threshold_ms = float(threshold_ms)
        self.resume_on_activity = resume_on_activity
        self.last_activity = now()

    def touch(self) -> None:
        self.last_activity = self._now()

    def record_activity(self) -> None:
        self.touch()
        if self.resume_on_activity and not self.clock.is_tracking:
            self.clock.start()

    def idle_ms(self) -> float:
        return max(0.0, self._now() - self.last_activity)

    def check(self) -> bool:
        if self.clock.is_tracking and self.idle_ms() > self.threshold_ms:
            LOGGER.info("No activity for %.0f ms, pausing clock", self.idle_ms())
            return self.clock.pause()
        return False

    def schedule(self, loop: EventLoop, interval_ms: float = DEFAULT_CHECK_INTERVAL_MS) -> ScheduledTask:
        return loop.every(interval_ms, self.check)
