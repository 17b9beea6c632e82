from __future__ import annotations

import logging
from dataclasses import dataclass

from .loop import EventLoop

LOGGER = logging.getLogger(__name__)

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    message: str
    level: str
    created_at: float


class Notifier:
    """Transient user-visible messages that disappear after a few seconds."""

    def __init__(self, loop: EventLoop, duration_ms: float = 3000):
        self.loop = loop
        self.duration_ms = duration_ms
        self.active: list[Notification] = []
        self.history: list[Notification] = []

    def notify(self, message: str, level: str = "info") -> Notification:
        notification = Notification(message=message, level=level, created_at=self.loop.now())
        self.active.append(notification)
        self.history.append(notification)
        LOGGER.log(_LOG_LEVELS.get(level, logging.INFO), "%s", message)
        self.loop.after(self.duration_ms, lambda: self._expire(notification))
        return notification

    def info(self, message: str) -> Notification:
        return self.notify(message, "info")

    def success(self, message: str) -> Notification:
        return self.notify(message, "success")

    def error(self, message: str) -> Notification:
        return self.notify(message, "error")

    def last(self) -> Notification | None:
        return self.history[-1] if self.history else None

    def _expire(self, notification: Notification) -> None:
        if notification in self.active:
            self.active.remove(notification)
