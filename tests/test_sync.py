from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from legal_billables.backend import BackendClient
from legal_billables.errors import NetworkFailure
from legal_billables.models import BillableEntry, EntryStatus
from legal_billables.store import EntryStore
from legal_billables.sync import EntrySync, PersistTarget
from tests.support import backend_session, response


def _draft(entry_id: str = "e1") -> BillableEntry:
    return BillableEntry(
        id=entry_id,
        recipient="client@example.com",
        subject="Contract",
        content="Spent 2.5 hours reviewing the contract",
        summary="Contract review",
        hours=2.5,
        rate=350.0,
        timestamp="2026-01-02T10:00:00+00:00",
    )


class EntrySyncTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = EntryStore(Path(self._tmp.name) / "billables.sqlite3")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _sync(self, *responses) -> EntrySync:
        return EntrySync(self.store, BackendClient(session=backend_session(*responses)))

    def test_local_then_remote_updates_single_record(self) -> None:
        sync = self._sync(response(200, {"success": True, "result": {"_id": "m1"}}))

        saved = sync.persist(_draft(), PersistTarget.LOCAL)
        self.assertFalse(saved.synced)
        self.assertEqual(len(self.store.list_entries()), 1)
        self.assertEqual(sync.unsynced_count(), 1)

        logged = sync.persist(saved, PersistTarget.REMOTE)

        entries = self.store.list_entries()
        self.assertEqual(len(entries), 1)
        self.assertTrue(entries[0].synced)
        self.assertEqual(entries[0].status, EntryStatus.LOGGED)
        self.assertEqual(entries[0].remote_id, "m1")
        self.assertEqual(logged, entries[0])
        self.assertEqual(sync.unsynced_count(), 0)

    def test_remote_only_entry_is_not_added_locally(self) -> None:
        sync = self._sync(response(200, {"success": True}))
        logged = sync.persist(_draft(), PersistTarget.REMOTE)
        self.assertTrue(logged.synced)
        self.assertEqual(self.store.list_entries(), [])

    def test_remote_failure_leaves_local_entry_unsynced(self) -> None:
        sync = self._sync(response(503, text="maintenance"))
        sync.persist(_draft(), PersistTarget.LOCAL)

        with self.assertRaises(NetworkFailure) as ctx:
            sync.persist(_draft(), PersistTarget.REMOTE)

        self.assertIn("maintenance", str(ctx.exception))
        entries = self.store.list_entries()
        self.assertEqual(len(entries), 1)
        self.assertFalse(entries[0].synced)

    def test_saving_locally_twice_does_not_duplicate(self) -> None:
        sync = self._sync()
        sync.persist(_draft(), PersistTarget.LOCAL)
        sync.persist(_draft(), PersistTarget.LOCAL)
        self.assertEqual(len(self.store.list_entries()), 1)

    def test_sync_pending_pushes_each_unsynced_entry_once(self) -> None:
        sync = self._sync(
            response(200, {"success": True}),
            response(500, text="oops"),
        )
        sync.persist(_draft("e1"), PersistTarget.LOCAL)
        sync.persist(_draft("e2"), PersistTarget.LOCAL)

        report = sync.sync_pending()

        self.assertEqual(report.synced, 1)
        self.assertEqual(report.failed, 1)
        self.assertEqual(len(report.errors), 1)
        by_id = {entry.id: entry for entry in self.store.list_entries()}
        self.assertTrue(by_id["e1"].synced)
        self.assertFalse(by_id["e2"].synced)


if __name__ == "__main__":
    unittest.main()
