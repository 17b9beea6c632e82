from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from .backend import BackendClient, LogResult
from .errors import NetworkFailure
from .models import BillableEntry, EntryStatus
from .store import EntryStore

LOGGER = logging.getLogger(__name__)


class PersistTarget(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class SyncReport:
    synced: int = 0
    failed: int = 0
    errors: tuple[str, ...] = field(default_factory=tuple)


class EntrySync:
    """Persists confirmed entries to the local queue or the remote log.

    Remote logging never retries on its own; a failed entry simply stays
    unsynced until ``sync_pending`` or another manual log attempt.
    """

    def __init__(self, store: EntryStore, backend: BackendClient):
        self.store = store
        self.backend = backend

    def persist(self, entry: BillableEntry, target: PersistTarget) -> BillableEntry:
        if target is PersistTarget.LOCAL:
            return self.save_local(entry)
        return self.mark_logged(entry, self.push(entry))

    def save_local(self, entry: BillableEntry) -> BillableEntry:
        stored = replace(entry, synced=False)
        self.store.upsert_entry(stored)
        LOGGER.info("Saved entry %s locally (%.2f h)", stored.id, stored.hours)
        return stored

    def push(self, entry: BillableEntry) -> LogResult:
        return self.backend.log_entry(entry)

    def mark_logged(self, entry: BillableEntry, result: LogResult) -> BillableEntry:
        status = EntryStatus.LOGGED if entry.status is EntryStatus.DRAFT else entry.status
        logged = replace(
            entry,
            synced=True,
            status=status,
            remote_id=result.remote_id or entry.remote_id,
        )
        # Entries that were never saved locally stay remote-only.
        self.store.update_entry(logged)
        return logged

    def sync_pending(self) -> SyncReport:
        synced = 0
        failed = 0
        errors: list[str] = []
        for entry in self.store.list_entries():
            if entry.synced:
                continue
            try:
                self.persist(entry, PersistTarget.REMOTE)
                synced += 1
            except NetworkFailure as exc:
                failed += 1
                errors.append(f"{entry.id}: {exc}")
                LOGGER.warning("Could not sync entry %s: %s", entry.id, exc)
        return SyncReport(synced=synced, failed=failed, errors=tuple(errors))

    def unsynced_count(self) -> int:
        return self.store.unsynced_count()
