from __future__ import annotations

import itertools
import logging
from typing import Callable

from .activity import ActivityMonitor
from .clock import Clock
from .document import Document, Event, InsertionWatch, MutationRecord, Node
from .loop import EventLoop, ScheduledTask
from .models import DraftContext, Settings

LOGGER = logging.getLogger(__name__)

COMPOSE_MARKER = "data-billables-tracked"
SEND_MARKER = "data-billables-listener"

SendHandler = Callable[["TrackingSession"], object]
FocusHandler = Callable[["TrackingSession"], None]

_session_ids = itertools.count(1)


def is_compose_surface(node: Node) -> bool:
    return node.get_attribute("role") == "dialog"


def is_send_control(node: Node) -> bool:
    tooltip = node.get_attribute("data-tooltip") or ""
    label = node.get_attribute("aria-label") or ""
    return tooltip.startswith("Send") or "Send" in label


def is_compose_body(node: Node) -> bool:
    return node.get_attribute("contenteditable") == "true"


def is_subject_field(node: Node) -> bool:
    return node.tag == "input" and node.get_attribute("name") == "subjectbox"


def is_recipient_chip(node: Node) -> bool:
    return node.tag == "span" and node.has_attribute("email")


def read_recipients(surface: Node) -> str:
    emails = [chip.get_attribute("email") or "" for chip in surface.find_all(is_recipient_chip)]
    return ", ".join(email for email in emails if email)


class TrackingSession:
    """Clock, draft buffer and timers owned by one compose surface."""

    def __init__(self, surface: Node, clock: Clock, monitor: ActivityMonitor):
        self.id = next(_session_ids)
        self.surface = surface
        self.clock = clock
        self.monitor = monitor
        self.draft = DraftContext()
        self.tasks: list[ScheduledTask] = []
        self.listeners: list[tuple[str, Callable[[Event], None]]] = []
        self.generation = 0
        self.closed = False

    def __repr__(self) -> str:
        return f"TrackingSession(id={self.id}, elapsed={self.clock.elapsed()}ms, closed={self.closed})"

    def close(self) -> None:
        if self.closed:
            return
        for task in self.tasks:
            task.cancel()
        self.tasks.clear()
        for event_type, listener in self.listeners:
            self.surface.remove_event_listener(event_type, listener)
        self.listeners.clear()
        self.clock.pause()
        self.closed = True


class SurfaceObserver:
    """Wires compose surfaces and send controls exactly once each.

    Every compose surface gets its own ``TrackingSession``; sessions never
    share a clock. A send control is routed to the session of the surface
    that contains it, falling back to the most recently focused session.
    """

    def __init__(
        self,
        document: Document,
        loop: EventLoop,
        settings: Settings,
        on_send: SendHandler,
        on_focus: FocusHandler | None = None,
    ):
        self.document = document
        self.loop = loop
        self.settings = settings
        self.on_send = on_send
        self.on_focus = on_focus
        self.sessions: dict[Node, TrackingSession] = {}
        self.last_focused: TrackingSession | None = None
        self._compose_watch = InsertionWatch(document, is_compose_surface, self._attach_surface, COMPOSE_MARKER)
        self._send_watch = InsertionWatch(document, is_send_control, self._attach_send_control, SEND_MARKER)
        self._disconnect_removals: Callable[[], None] | None = None

    def start(self) -> None:
        if self._disconnect_removals is None:
            self._disconnect_removals = self.document.observe(self._on_mutation)
        self._compose_watch.start()
        self._send_watch.start()
        LOGGER.info("Surface observer started")

    def stop(self) -> None:
        self._compose_watch.stop()
        self._send_watch.stop()
        if self._disconnect_removals is not None:
            self._disconnect_removals()
            self._disconnect_removals = None
        for surface in list(self.sessions):
            self._teardown(surface)

    def session_for(self, node: Node) -> TrackingSession | None:
        surface = node.closest(lambda candidate: candidate in self.sessions)
        if surface is not None:
            return self.sessions[surface]
        if self.last_focused is not None and not self.last_focused.closed:
            return self.last_focused
        return None

    def _attach_surface(self, surface: Node) -> None:
        clock = Clock(self.loop.now)
        monitor = ActivityMonitor(
            clock,
            self.loop.now,
            threshold_ms=self.settings.inactivity_threshold_seconds * 1000,
            resume_on_activity=self.settings.auto_tracking,
        )
        session = TrackingSession(surface, clock, monitor)
        self.sessions[surface] = session

        session.listeners = [
            ("focusin", lambda event: self._on_focus_in(session, event)),
            ("focusout", lambda event: self._on_focus_out(session, event)),
            ("input", lambda event: self._on_input(session, event)),
        ]
        for event_type, listener in session.listeners:
            surface.add_event_listener(event_type, listener)

        session.tasks.append(monitor.schedule(self.loop, self.settings.activity_check_seconds * 1000))
        session.tasks.append(
            self.loop.every(
                self.settings.recipient_poll_seconds * 1000,
                lambda: self._poll_recipient(session),
            )
        )
        self._poll_recipient(session)
        LOGGER.info("Tracking compose surface (session %d)", session.id)

    def _attach_send_control(self, control: Node) -> None:
        control.add_event_listener("click", lambda event: self._on_send_click(control))

    def _on_focus_in(self, session: TrackingSession, event: Event) -> None:
        if session.closed:
            return
        self.last_focused = session
        if self.on_focus is not None:
            self.on_focus(session)
        session.monitor.touch()
        if is_compose_body(event.target) and self.settings.auto_tracking:
            session.clock.start()

    def _on_focus_out(self, session: TrackingSession, event: Event) -> None:
        if session.closed or not is_compose_body(event.target):
            return
        # Focus moving between controls of the same surface must not pause.
        self.loop.after(self.settings.blur_grace_ms, lambda: self._pause_if_focus_left(session))

    def _pause_if_focus_left(self, session: TrackingSession) -> None:
        if session.closed:
            return
        active = self.document.active_element
        if active is None or not session.surface.contains(active):
            session.clock.pause()

    def _on_input(self, session: TrackingSession, event: Event) -> None:
        if session.closed:
            return
        target = event.target
        if is_compose_body(target):
            session.draft.content = target.inner_text
        elif is_subject_field(target):
            session.draft.subject = target.value
        else:
            return
        session.monitor.record_activity()

    def _poll_recipient(self, session: TrackingSession) -> None:
        current = read_recipients(session.surface)
        if current and current != session.draft.recipient:
            session.draft.recipient = current

    def _on_send_click(self, control: Node) -> None:
        session = self.session_for(control)
        if session is None:
            LOGGER.debug("Send clicked outside any tracked surface")
            return
        self.on_send(session)

    def _on_mutation(self, record: MutationRecord) -> None:
        for removed in record.removed:
            for surface in list(self.sessions):
                if removed.contains(surface):
                    self._teardown(surface)

    def _teardown(self, surface: Node) -> None:
        session = self.sessions.pop(surface, None)
        if session is None:
            return
        session.close()
        # A surface moved to a new parent is re-inserted and gets a fresh session.
        self._compose_watch.forget(surface)
        if self.last_focused is session:
            self.last_focused = None
        LOGGER.info("Compose surface removed (session %d)", session.id)
