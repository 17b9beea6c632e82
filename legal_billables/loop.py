from __future__ import annotations

import heapq
import itertools
import logging
import queue
import threading
import time
from typing import Any, Callable

from .clock import TimeSource, monotonic_ms

LOGGER = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


class ScheduledTask:
    def __init__(self, due: float, callback: Callable[[], None], interval_ms: float | None):
        self.due = due
        self.callback = callback
        self.interval_ms = interval_ms
        self.cancelled = False

    @property
    def repeating(self) -> bool:
        return self.interval_ms is not None

    def cancel(self) -> None:
        self.cancelled = True


class EventLoop:
    """Single-threaded loop for timers, posted events and background work.

    Timer callbacks and event handlers only ever run on the thread calling
    ``run_pending``. Background workers never touch tracker state; they post
    ``(kind, payload)`` events that are handled on the loop thread.
    """

    def __init__(self, now: TimeSource = monotonic_ms):
        self._now = now
        self._timers: list[tuple[float, int, ScheduledTask]] = []
        self._sequence = itertools.count()
        self.events: queue.Queue[tuple[str, Any]] = queue.Queue()
        self._handlers: dict[str, EventHandler] = {}
        self._idle = threading.Condition()
        self._active_workers = 0
        self._wakeup = threading.Event()
        self._stop_event = threading.Event()

    def now(self) -> float:
        return self._now()

    def after(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(self._now() + max(0.0, float(delay_ms)), callback, None)
        self._push(task)
        return task

    def every(self, interval_ms: float, callback: Callable[[], None]) -> ScheduledTask:
        interval_ms = max(1.0, float(interval_ms))
        task = ScheduledTask(self._now() + interval_ms, callback, interval_ms)
        self._push(task)
        return task

    def on(self, kind: str, handler: EventHandler) -> None:
        self._handlers[kind] = handler

    def post(self, kind: str, payload: Any = None) -> None:
        self.events.put((kind, payload))
        self._wakeup.set()

    def run_in_background(
        self,
        name: str,
        work: Callable[[], Any],
        done_kind: str,
        error_kind: str,
        token: Any = None,
    ) -> None:
        """Run ``work`` on a daemon thread and post ``(token, result)`` back."""
        with self._idle:
            self._active_workers += 1

        def _worker() -> None:
            try:
                result = work()
                self.post(done_kind, (token, result))
            except Exception as exc:  # noqa: BLE001
                self.post(error_kind, (token, exc))
            finally:
                with self._idle:
                    self._active_workers -= 1
                    self._idle.notify_all()

        threading.Thread(target=_worker, name=name, daemon=True).start()

    def run_pending(self) -> int:
        handled = self._fire_due_timers()
        handled += self._drain_events()
        return handled

    def run_until_idle(self, timeout_seconds: float = 5.0) -> None:
        deadline = time.monotonic() + timeout_seconds
        while True:
            self.run_pending()
            with self._idle:
                if self._active_workers == 0 and self.events.empty():
                    return
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("Background work did not finish in time.")
                self._idle.wait(min(remaining, 0.05))

    def run_forever(self) -> None:
        self._stop_event.clear()
        while not self._stop_event.is_set():
            self.run_pending()
            wait_seconds = 0.25
            next_due = self._next_due()
            if next_due is not None:
                wait_seconds = min(wait_seconds, max(0.0, (next_due - self._now()) / 1000.0))
            self._wakeup.wait(wait_seconds)
            self._wakeup.clear()

    def stop(self) -> None:
        self._stop_event.set()
        self._wakeup.set()

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, task in self._timers if not task.cancelled)

    def _push(self, task: ScheduledTask) -> None:
        heapq.heappush(self._timers, (task.due, next(self._sequence), task))
        self._wakeup.set()

    def _next_due(self) -> float | None:
        while self._timers and self._timers[0][2].cancelled:
            heapq.heappop(self._timers)
        return self._timers[0][0] if self._timers else None

    def _fire_due_timers(self) -> int:
        fired = 0
        now = self._now()
        while self._timers and self._timers[0][0] <= now:
            _, _, task = heapq.heappop(self._timers)
            if task.cancelled:
                continue
            if task.interval_ms is not None:
                # Missed ticks coalesce into one callback.
                task.due = task.due + task.interval_ms
                if task.due <= now:
                    task.due = now + task.interval_ms
                self._push(task)
            try:
                task.callback()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Scheduled callback failed")
            fired += 1
        return fired

    def _drain_events(self) -> int:
        handled = 0
        while True:
            try:
                kind, payload = self.events.get_nowait()
            except queue.Empty:
                break

            handler = self._handlers.get(kind)
            if handler is None:
                LOGGER.warning("No handler registered for event %r", kind)
                continue
            try:
                handler(payload)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Handler for event %r failed", kind)
            handled += 1
        return handled
