from __future__ import annotations

import io
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

from legal_billables.app import BillablesTracker, main
from legal_billables.backend import BackendClient
from legal_billables.document import Document
from legal_billables.loop import EventLoop
from legal_billables.models import Settings
from legal_billables.store import EntryStore
from tests.support import ComposeWindow, FakeTime, backend_session, response


class TrackerEndToEndTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = EntryStore(Path(self._tmp.name) / "billables.sqlite3")
        self.time = FakeTime()
        self.loop = EventLoop(self.time)
        self.document = Document()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _tracker(self, *responses) -> BillablesTracker:
        self.session = backend_session(*responses)
        tracker = BillablesTracker(
            self.document,
            self.store,
            backend=BackendClient(session=self.session),
            loop=self.loop,
            settings=Settings(),
        )
        tracker.start()
        return tracker

    def _advance(self, ms: int) -> None:
        self.time.advance(ms)
        self.loop.run_pending()

    def _compose_for_90_seconds(self) -> ComposeWindow:
        window = ComposeWindow(self.document, recipients=("client@example.com",))
        self.document.focus(window.body)
        window.subject.type_text("Lease amendment")
        for step in range(4):
            window.body.type_text(f"Draft {step}")
            self._advance(20_000)
        window.body.type_text("Attached is the amended lease.")
        self._advance(10_000)
        return window

    def test_send_then_save_locally_then_log(self) -> None:
        tracker = self._tracker(
            response(200, {"summary": "Drafted lease amendment for client"}),
            response(200, {"success": True, "result": {"_id": "m-42"}}),
        )
        window = self._compose_for_90_seconds()
        self.assertEqual(tracker.widget.display, "00:01:30")

        window.send.click()
        window.surface.remove()
        self.loop.run_until_idle()

        view = tracker.current_view
        self.assertIsNotNone(view)
        self.assertEqual(view.entry.hours, 0.025)
        self.assertEqual(view.client, "client@example.com")
        self.assertEqual(view.description, "Drafted lease amendment for client")
        self.assertEqual(view.hours_text, "0.03")

        saved = view.save_locally()
        self.assertIsNotNone(saved)
        self.assertFalse(view.is_open)
        self.assertIsNone(tracker.current_view)
        self.assertEqual(view.session.clock.elapsed(), 0)
        stored = self.store.list_entries()
        self.assertEqual(len(stored), 1)
        self.assertFalse(stored[0].synced)
        self.assertEqual(tracker.badge_text, "1")

        tracker.sync.sync_pending()

        stored = self.store.list_entries()
        self.assertEqual(len(stored), 1)
        self.assertTrue(stored[0].synced)
        self.assertEqual(stored[0].remote_id, "m-42")
        self.assertEqual(tracker.badge_text, "")
        log_payload = self.session.request.call_args.kwargs["json"]
        self.assertEqual(log_payload["timeSpent"], 90_000)

    def test_edited_draft_is_logged_and_failure_is_queued(self) -> None:
        tracker = self._tracker(
            response(200, {"summary": "Call prep"}),
            response(502, text="bad gateway"),
            response(200, {"success": True}),
        )
        window = self._compose_for_90_seconds()
        window.send.click()
        self.loop.run_until_idle()

        view = tracker.current_view
        view.set_hours("1.5")
        view.set_rate("200")
        self.assertEqual(view.total_text, "300.00")

        self.assertTrue(view.log())
        self.assertFalse(view.log())
        self.loop.run_until_idle()

        self.assertTrue(view.is_open)
        self.assertEqual(tracker.notifier.last().level, "error")
        self.assertIn("bad gateway", tracker.notifier.last().message)
        queued = self.store.list_entries()
        self.assertEqual(len(queued), 1)
        self.assertFalse(queued[0].synced)
        self.assertEqual(queued[0].hours, 1.5)
        self.assertEqual(tracker.badge_text, "1")

        view.log()
        self.loop.run_until_idle()

        self.assertFalse(view.is_open)
        stored = self.store.list_entries()
        self.assertEqual(len(stored), 1)
        self.assertTrue(stored[0].synced)
        self.assertEqual(tracker.badge_text, "")

    def test_summary_failure_creates_no_entry(self) -> None:
        tracker = self._tracker(response(500, text="summarizer down"))
        window = self._compose_for_90_seconds()
        window.send.click()
        self.loop.run_until_idle()

        self.assertIsNone(tracker.current_view)
        self.assertEqual(self.store.list_entries(), [])
        self.assertEqual(tracker.notifier.last().message, "Error generating billable entry")

    def test_log_result_after_cancel_does_not_touch_closed_view(self) -> None:
        tracker = self._tracker(
            response(200, {"summary": "Reply"}),
            response(200, {"success": True}),
        )
        window = self._compose_for_90_seconds()
        window.send.click()
        self.loop.run_until_idle()
        view = tracker.current_view

        view.log()
        view.cancel()
        self.loop.run_until_idle()

        self.assertFalse(view.is_open)
        self.assertEqual(tracker.notifier.last().message, "Saving to backend...")
        self.assertEqual(view.session.clock.elapsed(), 90_000)
        self.assertEqual(self.store.list_entries(), [])

    def test_notifications_expire(self) -> None:
        tracker = self._tracker()
        tracker.notifier.info("hello")
        self.assertEqual(len(tracker.notifier.active), 1)
        self._advance(3000)
        self.assertEqual(tracker.notifier.active, [])

    def test_widget_controls_follow_focused_session(self) -> None:
        tracker = self._tracker()
        window = ComposeWindow(self.document)
        self.document.focus(window.body)
        self.assertTrue(tracker.widget.pause_visible)
        self._advance(2000)
        tracker.widget.press_pause()
        self.assertTrue(tracker.widget.start_visible)
        self.assertEqual(tracker.widget.display, "00:00:02")
        tracker.widget.press_reset()
        self.assertEqual(tracker.widget.display, "00:00:00")

    def test_manual_start_after_idle_keeps_tracking(self) -> None:
        tracker = self._tracker()
        window = ComposeWindow(self.document)
        self.document.focus(window.body)
        tracker.widget.press_pause()
        self._advance(40_000)

        tracker.widget.press_start()
        self._advance(5_000)

        self.assertTrue(tracker.widget.pause_visible)
        self.assertEqual(tracker.widget.display, "00:00:05")


class CliTests(unittest.TestCase):
    def test_status_and_set(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            with mock.patch.dict(os.environ, {"LEGAL_BILLABLES_HOME": tmp_dir}):
                out = io.StringIO()
                with redirect_stdout(out):
                    self.assertEqual(main(["set", "defaultRate", "300"]), 0)
                    self.assertEqual(main(["status"]), 0)
                self.assertIn("defaultRate=300.0", out.getvalue())
                self.assertIn("entries=0 unsynced=0", out.getvalue())
                self.assertEqual(main(["set", "nope", "1"]), 1)


if __name__ == "__main__":
    unittest.main()
