from __future__ import annotations

from typing import Callable

from .activity import ActivityMonitor
from .clock import Clock, format_elapsed
from .loop import EventLoop, ScheduledTask


class TimerWidget:
    """Floating HH:MM:SS display with Start/Pause/Reset controls."""

    def __init__(self, loop: EventLoop, refresh_ms: float = 1000):
        self.loop = loop
        self.refresh_ms = refresh_ms
        self.clock: Clock | None = None
        self.monitor: ActivityMonitor | None = None
        self.display = format_elapsed(0)
        self._ticker: ScheduledTask | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def start_visible(self) -> bool:
        return self.clock is None or not self.clock.is_tracking

    @property
    def pause_visible(self) -> bool:
        return not self.start_visible

    def bind(self, clock: Clock, monitor: ActivityMonitor | None = None) -> None:
        if clock is self.clock:
            return
        self.unbind()
        self.clock = clock
        self.monitor = monitor
        self._unsubscribe = clock.subscribe(self._on_clock_change)
        self._on_clock_change(clock)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._stop_ticker()
        self.clock = None
        self.monitor = None
        self.display = format_elapsed(0)

    def press_start(self) -> None:
        if self.clock is None:
            return
        # A manual start counts as activity.
        if self.monitor is not None:
            self.monitor.touch()
        self.clock.start()

    def press_pause(self) -> None:
        if self.clock is not None:
            self.clock.pause()

    def press_reset(self) -> None:
        if self.clock is not None:
            self.clock.reset()

    def refresh(self) -> str:
        self.display = format_elapsed(self.clock.elapsed() if self.clock is not None else 0)
        return self.display

    def _on_clock_change(self, clock: Clock) -> None:
        self.refresh()
        if clock.is_tracking and self._ticker is None:
            self._ticker = self.loop.every(self.refresh_ms, self.refresh)
        elif not clock.is_tracking:
            self._stop_ticker()

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
