from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from .backend import LogResult
from .errors import StorageFailure
from .loop import EventLoop
from .models import BillableEntry
from .notifications import Notifier
from .observer import TrackingSession
from .sync import EntrySync, PersistTarget

LOGGER = logging.getLogger(__name__)

LOG_DONE = "log_done"
LOG_ERROR = "log_error"


def _parse_number(value: object) -> float:
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return parsed if parsed >= 0 else 0.0


class ConfirmationView:
    """Editable draft shown after a send; nothing is persisted until confirmed."""

    def __init__(
        self,
        entry: BillableEntry,
        session: TrackingSession,
        sync: EntrySync,
        loop: EventLoop,
        notifier: Notifier,
        on_close: Callable[[ConfirmationView], None] | None = None,
    ):
        self.entry = entry
        self.session = session
        self.sync = sync
        self.loop = loop
        self.notifier = notifier
        self.on_close = on_close
        self.client = entry.recipient
        self.hours = entry.hours
        self.description = entry.summary
        self.rate = entry.rate
        self.is_open = True
        self.log_in_flight = False

    @staticmethod
    def install(loop: EventLoop) -> None:
        loop.on(LOG_DONE, lambda payload: payload[0]._on_logged(payload[1]))
        loop.on(LOG_ERROR, lambda payload: payload[0]._on_log_failed(payload[1]))

    @property
    def total(self) -> float:
        return self.hours * self.rate

    @property
    def hours_text(self) -> str:
        return f"{self.hours:.2f}"

    @property
    def total_text(self) -> str:
        return f"{self.total:.2f}"

    def set_hours(self, value: object) -> None:
        self.hours = _parse_number(value)

    def set_rate(self, value: object) -> None:
        self.rate = _parse_number(value)

    def current_entry(self) -> BillableEntry:
        return replace(
            self.entry,
            recipient=self.client,
            hours=self.hours,
            summary=self.description,
            rate=self.rate,
        )

    def save_locally(self) -> BillableEntry | None:
        if not self.is_open:
            return None
        try:
            stored = self.sync.persist(self.current_entry(), PersistTarget.LOCAL)
        except StorageFailure as exc:
            LOGGER.error("Local save failed: %s", exc)
            self.notifier.error("Error saving locally")
            return None
        self.entry = stored
        self.notifier.success("Saved locally! Sync later from dashboard.")
        self.close()
        self.session.clock.reset()
        return stored

    def log(self) -> bool:
        if not self.is_open or self.log_in_flight:
            return False
        entry = self.current_entry()
        self.entry = entry
        self.log_in_flight = True
        self.notifier.info("Saving to backend...")
        self.loop.run_in_background(
            "billables-log",
            lambda: self.sync.push(entry),
            LOG_DONE,
            LOG_ERROR,
            token=self,
        )
        return True

    def cancel(self) -> None:
        self.close()

    def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        if self.on_close is not None:
            self.on_close(self)

    def _on_logged(self, result: LogResult) -> None:
        self.log_in_flight = False
        try:
            self.entry = self.sync.mark_logged(self.entry, result)
        except StorageFailure as exc:
            LOGGER.error("Entry %s logged remotely but local copy not updated: %s", self.entry.id, exc)
        if not self.is_open:
            LOGGER.debug("Log result for closed view of entry %s", self.entry.id)
            return
        self.notifier.success("Entry logged to backend.")
        self.close()
        self.session.clock.reset()

    def _on_log_failed(self, exc: Exception) -> None:
        self.log_in_flight = False
        LOGGER.error("Backend error for entry %s: %s", self.entry.id, exc)
        try:
            self.entry = self.sync.save_local(self.entry)
        except StorageFailure as storage_exc:
            LOGGER.error("Could not queue entry %s locally: %s", self.entry.id, storage_exc)
        if not self.is_open:
            return
        self.notifier.error(f"Failed to save to backend: {exc}")
