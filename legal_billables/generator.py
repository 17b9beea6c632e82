from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable

from .backend import BackendClient
from .loop import EventLoop
from .models import (
    MS_PER_HOUR,
    BillableEntry,
    DraftSnapshot,
    EntrySource,
    EntryStatus,
    Settings,
    new_entry_id,
    utc_timestamp,
)
from .notifications import Notifier
from .observer import TrackingSession

LOGGER = logging.getLogger(__name__)

HOURS_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hours?|hrs?)", re.IGNORECASE)

SUMMARY_DONE = "summary_done"
SUMMARY_ERROR = "summary_error"

PresentDraft = Callable[[TrackingSession, BillableEntry], object]


def parse_hours(content: str) -> float | None:
    """Return the first explicit "<n> hours"/"<n> hrs" value in ``content``."""
    match = HOURS_PATTERN.search(content or "")
    if match is None:
        return None
    return float(match.group(1))


def billable_hours(duration_ms: int, content: str) -> float:
    explicit = parse_hours(content)
    if explicit is not None:
        return explicit
    return max(0, duration_ms) / MS_PER_HOUR


def fallback_summary(snapshot: DraftSnapshot) -> str:
    recipient = snapshot.recipient or "client"
    subject = snapshot.subject or "client matter"
    return f"Email correspondence with {recipient} regarding {subject}"


@dataclass(frozen=True)
class SummaryRequest:
    session: TrackingSession
    generation: int
    duration_ms: int
    snapshot: DraftSnapshot
    timestamp: str


class EntryGenerator:
    """Turns a send action into a draft entry awaiting confirmation."""

    def __init__(
        self,
        loop: EventLoop,
        backend: BackendClient,
        notifier: Notifier,
        settings: Settings,
        present: PresentDraft,
        timestamp: Callable[[], str] = utc_timestamp,
    ):
        self.loop = loop
        self.backend = backend
        self.notifier = notifier
        self.settings = settings
        self.present = present
        self._timestamp = timestamp
        loop.on(SUMMARY_DONE, self._on_summary_done)
        loop.on(SUMMARY_ERROR, self._on_summary_error)

    def handle_send(self, session: TrackingSession) -> SummaryRequest | None:
        if not session.clock.has_time():
            LOGGER.debug("Send on untracked session %d, nothing to bill", session.id)
            return None

        session.clock.pause()
        session.generation += 1
        request = SummaryRequest(
            session=session,
            generation=session.generation,
            duration_ms=session.clock.accumulated_ms,
            snapshot=session.draft.snapshot(),
            timestamp=self._timestamp(),
        )
        self.notifier.info("Generating billable entry...")

        if not self.settings.ai_summaries:
            self._finish(request, fallback_summary(request.snapshot))
            return request

        snapshot = request.snapshot
        self.loop.run_in_background(
            "billables-summary",
            lambda: self.backend.summarize(snapshot.recipient, snapshot.subject, snapshot.content),
            SUMMARY_DONE,
            SUMMARY_ERROR,
            token=request,
        )
        return request

    def build_entry(self, request: SummaryRequest, summary: str) -> BillableEntry:
        snapshot = request.snapshot
        return BillableEntry(
            id=new_entry_id(),
            recipient=snapshot.recipient,
            subject=snapshot.subject,
            content=snapshot.content,
            summary=summary,
            hours=billable_hours(request.duration_ms, snapshot.content),
            rate=self.settings.default_rate,
            timestamp=request.timestamp,
            source=EntrySource.EMAIL,
            status=EntryStatus.DRAFT,
            synced=False,
            duration_ms=request.duration_ms,
        )

    def _finish(self, request: SummaryRequest, summary: str) -> None:
        entry = self.build_entry(request, summary)
        LOGGER.info(
            "Draft entry for session %d: %.4f h from %d ms",
            request.session.id,
            entry.hours,
            request.duration_ms,
        )
        self.present(request.session, entry)

    def _is_stale(self, request: SummaryRequest) -> bool:
        return request.generation != request.session.generation

    def _on_summary_done(self, payload: tuple[SummaryRequest, str]) -> None:
        request, summary = payload
        if self._is_stale(request):
            LOGGER.debug("Discarding stale summary for session %d", request.session.id)
            return
        self._finish(request, summary)

    def _on_summary_error(self, payload: tuple[SummaryRequest, Exception]) -> None:
        request, exc = payload
        if self._is_stale(request):
            return
        LOGGER.error("Billable generation error: %s", exc)
        self.notifier.error("Error generating billable entry")
