from __future__ import annotations

import argparse
import logging
import sys

from . import __version__
from .backend import BackendClient
from .config import apply_setting, load_settings
from .confirmation import ConfirmationView
from .document import Document
from .errors import BillablesError
from .generator import EntryGenerator
from .loop import EventLoop
from .models import BillableEntry, Settings
from .notifications import Notifier
from .observer import SurfaceObserver, TrackingSession
from .paths import database_path, ensure_directories
from .store import EntryStore
from .sync import EntrySync
from .widget import TimerWidget

LOGGER = logging.getLogger(__name__)


class BillablesTracker:
    """Coordinates observer, generator, confirmation views and storage for one page."""

    def __init__(
        self,
        document: Document,
        store: EntryStore,
        backend: BackendClient | None = None,
        loop: EventLoop | None = None,
        settings: Settings | None = None,
    ):
        self.document = document
        self.store = store
        self.settings = settings or load_settings(store)
        self.loop = loop or EventLoop()
        self.backend = backend or BackendClient(
            self.settings.backend_url,
            timeout_seconds=self.settings.request_timeout_seconds,
        )
        self.notifier = Notifier(self.loop, duration_ms=self.settings.notification_seconds * 1000)
        self.sync = EntrySync(store, self.backend)
        self.widget = TimerWidget(self.loop)
        self.views: list[ConfirmationView] = []
        self.badge_text = ""

        ConfirmationView.install(self.loop)
        self.generator = EntryGenerator(
            self.loop,
            self.backend,
            self.notifier,
            self.settings,
            present=self._open_confirmation,
        )
        self.observer = SurfaceObserver(
            document,
            self.loop,
            self.settings,
            on_send=self.generator.handle_send,
            on_focus=self._on_session_focus,
        )
        self._unsubscribe_store = store.subscribe(self._refresh_badge)

    @property
    def current_view(self) -> ConfirmationView | None:
        return self.views[-1] if self.views else None

    def start(self) -> None:
        self.observer.start()
        self._refresh_badge(self.store.list_entries())

    def stop(self) -> None:
        self.observer.stop()
        self.widget.unbind()
        self._unsubscribe_store()

    def run(self) -> None:
        self.start()
        try:
            self.loop.run_forever()
        finally:
            self.stop()

    def _on_session_focus(self, session: TrackingSession) -> None:
        self.widget.bind(session.clock, session.monitor)

    def _open_confirmation(self, session: TrackingSession, entry: BillableEntry) -> ConfirmationView:
        view = ConfirmationView(
            entry,
            session,
            self.sync,
            self.loop,
            self.notifier,
            on_close=self._on_view_closed,
        )
        self.views.append(view)
        return view

    def _on_view_closed(self, view: ConfirmationView) -> None:
        if view in self.views:
            self.views.remove(view)

    def _refresh_badge(self, entries: list[BillableEntry]) -> None:
        unsynced = sum(1 for entry in entries if not entry.synced)
        self.badge_text = str(unsynced) if unsynced else ""


def _open_store() -> EntryStore:
    ensure_directories()
    return EntryStore(database_path())


def _status_cli(store: EntryStore) -> int:
    entries = store.list_entries()
    unsynced = sum(1 for entry in entries if not entry.synced)
    print(f"entries={len(entries)} unsynced={unsynced}")
    return 0


def _entries_cli(store: EntryStore) -> int:
    entries = store.list_entries()
    if not entries:
        print("No entries yet. Start tracking!")
        return 0
    for entry in entries:
        marker = "synced" if entry.synced else "pending"
        description = entry.summary or entry.subject or "Email correspondence"
        print(f"{entry.timestamp} {entry.hours:.2f}h ${entry.total:.2f} [{marker}] {entry.recipient}: {description}")
    return 0


def _sync_cli(store: EntryStore) -> int:
    settings = load_settings(store)
    backend = BackendClient(settings.backend_url, timeout_seconds=settings.request_timeout_seconds)
    report = EntrySync(store, backend).sync_pending()
    print(f"synced={report.synced} failed={report.failed}")
    for error in report.errors:
        print(f"  {error}", file=sys.stderr)
    return 0 if report.failed == 0 else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="legal-billables")
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("status", help="Show stored and unsynced entry counts")
    commands.add_parser("entries", help="List locally stored entries")
    commands.add_parser("sync", help="Push unsynced entries to the backend log")
    set_parser = commands.add_parser("set", help="Change a setting")
    set_parser.add_argument("key")
    set_parser.add_argument("value")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.version:
        print(__version__)
        return 0
    if args.command is None:
        parser.print_help()
        return 0

    try:
        store = _open_store()
        if args.command == "status":
            return _status_cli(store)
        if args.command == "entries":
            return _entries_cli(store)
        if args.command == "sync":
            return _sync_cli(store)
        apply_setting(store, args.key, args.value)
        print(f"{args.key}={store.get_setting(args.key)}")
        return 0
    except (BillablesError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
