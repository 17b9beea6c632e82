from __future__ import annotations

import logging
import time
from typing import Callable

LOGGER = logging.getLogger(__name__)

TimeSource = Callable[[], float]
ClockListener = Callable[["Clock"], None]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class Clock:
    """Elapsed-time accumulator for one compose surface.

    ``accumulated_ms`` only grows between resets, and ``start_time`` is set
    exactly while ``is_tracking`` is true. Times are milliseconds from the
    injected monotonic source.
    """

    def __init__(self, now: TimeSource = monotonic_ms):
        self._now = now
        self.is_tracking = False
        self.start_time: float | None = None
        self.accumulated_ms = 0
        self._listeners: list[ClockListener] = []

    def start(self) -> bool:
        if self.is_tracking:
            return False
        self.start_time = self._now()
        self.is_tracking = True
        LOGGER.debug("Clock started at %.0f ms", self.start_time)
        self._notify()
        return True

    def pause(self) -> bool:
        if not self.is_tracking or self.start_time is None:
            return False
        self.accumulated_ms += max(0, int(self._now() - self.start_time))
        self.is_tracking = False
        self.start_time = None
        LOGGER.debug("Clock paused with %d ms accumulated", self.accumulated_ms)
        self._notify()
        return True

    def reset(self) -> None:
        self.accumulated_ms = 0
        self.start_time = None
        self.is_tracking = False
        self._notify()

    def elapsed(self) -> int:
        if self.is_tracking and self.start_time is not None:
            return self.accumulated_ms + max(0, int(self._now() - self.start_time))
        return self.accumulated_ms

    def has_time(self) -> bool:
        return self.accumulated_ms > 0 or self.is_tracking

    def subscribe(self, listener: ClockListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)


def format_elapsed(elapsed_ms: int) -> str:
    seconds = max(0, int(elapsed_ms)) // 1000
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
