from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from .errors import StorageFailure
from .models import BillableEntry

LOGGER = logging.getLogger(__name__)

ENTRIES_KEY = "billableEntries"

EntriesListener = Callable[[list[BillableEntry]], None]


class EntryStore:
    """Durable local queue of billable entries plus application settings.

    Entries are kept as one JSON list under ``billableEntries``; every write
    replaces the whole list, so concurrent writers resolve last-write-wins.
    """

    def __init__(self, db_file: Path):
        self._db_file = Path(db_file)
        self._db_file.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._listeners: list[EntriesListener] = []
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_file, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def _connection(self):
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageFailure(f"Could not open {self._db_file}: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StorageFailure(f"Storage operation failed: {exc}") from exc
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS local_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS app_settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )
            conn.commit()

    # Key/value storage

    def read_value(self, key: str, default: Any = None) -> Any:
        with self._lock, self._connection() as conn:
            row = conn.execute("SELECT value FROM local_storage WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(str(row["value"]))
        except json.JSONDecodeError as exc:
            raise StorageFailure(f"Stored value for {key!r} is not valid JSON.") from exc

    def write_value(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise StorageFailure(f"Value for {key!r} is not serializable: {exc}") from exc
        now = datetime.now().astimezone().isoformat()
        with self._lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO local_storage(key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, encoded, now),
            )
            conn.commit()

    # Entries

    def list_entries(self) -> list[BillableEntry]:
        raw = self.read_value(ENTRIES_KEY, [])
        if not isinstance(raw, list):
            return []
        entries: list[BillableEntry] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                entries.append(BillableEntry.from_dict(item))
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Skipping malformed stored entry: %s", exc)
        return entries

    def replace_entries(self, entries: list[BillableEntry]) -> None:
        self.write_value(ENTRIES_KEY, [entry.to_dict() for entry in entries])
        self._notify(entries)

    def get_entry(self, entry_id: str) -> BillableEntry | None:
        for entry in self.list_entries():
            if entry.id == entry_id:
                return entry
        return None

    def append_entry(self, entry: BillableEntry) -> BillableEntry:
        entries = self.list_entries()
        entries.append(entry)
        self.replace_entries(entries)
        return entry

    def update_entry(self, entry: BillableEntry) -> bool:
        entries = self.list_entries()
        for index, existing in enumerate(entries):
            if existing.id == entry.id:
                entries[index] = entry
                self.replace_entries(entries)
                return True
        return False

    def upsert_entry(self, entry: BillableEntry) -> BillableEntry:
        if not self.update_entry(entry):
            self.append_entry(entry)
        return entry

    def unsynced_count(self) -> int:
        return sum(1 for entry in self.list_entries() if not entry.synced)

    def subscribe(self, listener: EntriesListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, entries: list[BillableEntry]) -> None:
        for listener in list(self._listeners):
            try:
                listener(list(entries))
            except Exception:  # noqa: BLE001
                LOGGER.exception("Entry listener failed")

    # Settings

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM app_settings WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return default
        return str(row["value"])

    def get_setting_float(self, key: str, default: float) -> float:
        value = self.get_setting(key)
        if value is None:
            return default
        try:
            parsed = float(value)
        except ValueError:
            return default
        if parsed < 0:
            return default
        return parsed

    def get_setting_bool(self, key: str, default: bool) -> bool:
        value = self.get_setting(key)
        if value is None:
            return default
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        return default

    def set_setting(self, key: str, value: str) -> None:
        with self._lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO app_settings(key, value)
                VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
            conn.commit()
