"""SQLite workspace store for provider records and their ledgers.

This module is the durable store every client instance shares. It holds
one record per provider plus the append-only activity log and journal
feed. Each client instance opens its own connection and commits after
every write, so instances see each other only through the database file.

The store offers plain reads and writes, no compare-and-swap: mutual
exclusion between instances is the job of synchub.lock.

Uses aiosqlite for async SQLite access.

Example:
    store = WorkspaceStore(".synchub/workspace.db")
    await store.initialize()

    record, created = await store.create_record("github-sync", name="GitHub")
    await store.update_fields("github-sync", status="syncing")

    await store.close()
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from synchub.constants import (
    DEFAULT_INTERVAL,
    NEW_RECORD_JOURNAL,
    NEW_RECORD_LOG_LEVEL,
    NEW_RECORD_TOAST,
    SQLITE_BUSY_TIMEOUT_SECONDS,
    STATUS_IDLE,
)
from synchub.exceptions import StoreError
from synchub.logging import get_logger
from synchub.models import ActivityEntry, JournalEntry, ProviderRecord, SyncLock

logger = get_logger(__name__)

# Columns callers may change through update_fields(); plugin_id is immutable
UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "icon",
        "enabled",
        "status",
        "interval",
        "last_run",
        "last_error",
        "sync_lock",
        "log_level",
        "toast",
        "journal",
    }
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS provider_records (
        plugin_id TEXT PRIMARY KEY,
        name TEXT,
        icon TEXT,
        enabled INTEGER,
        status TEXT,
        interval TEXT,
        last_run TEXT,
        last_error TEXT,
        sync_lock TEXT,
        log_level TEXT,
        toast TEXT,
        journal TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activity_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        plugin_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        kind TEXT NOT NULL,
        level TEXT NOT NULL,
        message TEXT NOT NULL,
        verb TEXT,
        title TEXT,
        subject TEXT,
        major INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_activity_plugin
    ON activity_entries (plugin_id, id)
    """,
    """
    CREATE TABLE IF NOT EXISTS journal_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        day TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        plugin_id TEXT NOT NULL,
        verb TEXT,
        subject TEXT,
        text TEXT,
        parent_id INTEGER
    )
    """,
)


def _to_column(key: str, value: Any) -> Any:
    """Convert a model value to its column representation."""
    if value is None:
        return None
    if key == "enabled":
        return 1 if value else 0
    if key == "sync_lock":
        return value.to_json() if isinstance(value, SyncLock) else json.dumps(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class WorkspaceStore:
    """SQLite store for provider records, activity and journal entries.

    Schema:
        provider_records: one row per plugin_id with the durable fields
            plugin_id, enabled, status, interval, last_run, last_error,
            sync_lock (JSON), log_level, toast, journal, name, icon.
        activity_entries: append-only per-provider ledger.
        journal_entries: append-only dated feed of major changes.
    """

    def __init__(self, db_path: str = ".synchub/workspace.db") -> None:
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def initialize(self) -> None:
        """Open the database and create tables if needed.

        Creates the parent directory if it doesn't exist.
        """
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path, timeout=SQLITE_BUSY_TIMEOUT_SECONDS)
        self._conn.row_factory = aiosqlite.Row

        if self._db_path != ":memory:":
            await self._conn.execute("PRAGMA journal_mode=WAL")

        for statement in _SCHEMA:
            await self._conn.execute(statement)
        await self._conn.commit()

        logger.info("Workspace store initialized", extra={"db_path": self._db_path})

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreError("Store not initialized. Call initialize() first.")
        return self._conn

    # =========================================================================
    # PROVIDER RECORDS
    # =========================================================================

    async def get_record(self, plugin_id: str) -> ProviderRecord | None:
        """Read a record fresh from the database.

        Args:
            plugin_id: Provider id to look up.

        Returns:
            ProviderRecord if found, None otherwise.
        """
        conn = self._require_conn()
        cursor = await conn.execute(
            "SELECT * FROM provider_records WHERE plugin_id = ?",
            (plugin_id,),
        )
        row = await cursor.fetchone()
        await cursor.close()

        if row is None:
            return None
        return ProviderRecord.from_row(row)

    async def list_records(self) -> list[ProviderRecord]:
        """List every provider record, ordered by plugin_id."""
        conn = self._require_conn()
        cursor = await conn.execute("SELECT * FROM provider_records ORDER BY plugin_id")
        rows = await cursor.fetchall()
        await cursor.close()
        return [ProviderRecord.from_row(row) for row in rows]

    async def create_record(
        self,
        plugin_id: str,
        *,
        name: str = "",
        icon: str = "",
        interval: str = DEFAULT_INTERVAL,
    ) -> tuple[ProviderRecord, bool]:
        """Create a record with registration defaults unless one exists.

        Two instances registering the same provider at once both end up
        with the single row; INSERT OR IGNORE keeps the first one.

        Returns:
            Tuple of the stored record and whether this call created it.
        """
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            INSERT OR IGNORE INTO provider_records
            (plugin_id, name, icon, enabled, status, interval,
             last_run, last_error, sync_lock, log_level, toast, journal)
            VALUES (?, ?, ?, 1, ?, ?, NULL, NULL, NULL, ?, ?, ?)
            """,
            (
                plugin_id,
                name or plugin_id,
                icon,
                STATUS_IDLE,
                interval or DEFAULT_INTERVAL,
                NEW_RECORD_LOG_LEVEL,
                NEW_RECORD_TOAST,
                NEW_RECORD_JOURNAL,
            ),
        )
        await conn.commit()
        created = cursor.rowcount > 0
        await cursor.close()

        record = await self.get_record(plugin_id)
        if record is None:
            raise StoreError("Record vanished after creation", {"plugin_id": plugin_id})

        if created:
            logger.info("Created provider record", extra={"plugin_id": plugin_id})

        return record, created

    async def update_fields(self, plugin_id: str, /, **fields: Any) -> bool:
        """Write the given fields of one record.

        Args:
            plugin_id: Provider id of the record.
            **fields: Field names from UPDATABLE_FIELDS and their new values.

        Returns:
            True if a record was updated, False if none exists.

        Raises:
            StoreError: If a field name is not updatable.
        """
        if not fields:
            return False

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise StoreError("Unknown record fields", {"fields": sorted(unknown)})

        conn = self._require_conn()
        assignments = ", ".join(f"{key} = ?" for key in fields)
        values = [_to_column(key, value) for key, value in fields.items()]

        cursor = await conn.execute(
            f"UPDATE provider_records SET {assignments} WHERE plugin_id = ?",  # noqa: S608
            (*values, plugin_id),
        )
        await conn.commit()
        updated = cursor.rowcount > 0
        await cursor.close()
        return updated

    async def write_lock(self, plugin_id: str, lock: SyncLock | None) -> bool:
        """Overwrite the sync_lock field; None clears it."""
        return await self.update_fields(plugin_id, sync_lock=lock)

    # =========================================================================
    # ACTIVITY LOG
    # =========================================================================

    async def append_activity(
        self,
        plugin_id: str,
        *,
        timestamp: datetime,
        message: str = "",
        level: str = "info",
        kind: str = "message",
        verb: str | None = None,
        title: str | None = None,
        subject: str | None = None,
        major: bool = False,
    ) -> int:
        """Append one activity entry and return its id."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            INSERT INTO activity_entries
            (plugin_id, timestamp, kind, level, message, verb, title, subject, major)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                plugin_id,
                timestamp.isoformat(),
                kind,
                level,
                message,
                verb,
                title,
                subject,
                1 if major else 0,
            ),
        )
        await conn.commit()
        entry_id = cursor.lastrowid
        await cursor.close()
        return int(entry_id or 0)

    async def list_activity(self, plugin_id: str, limit: int | None = None) -> list[ActivityEntry]:
        """List a provider's activity, oldest to newest.

        Args:
            plugin_id: Provider id.
            limit: If given, only the newest `limit` entries (still oldest first).
        """
        conn = self._require_conn()
        if limit is None:
            cursor = await conn.execute(
                "SELECT * FROM activity_entries WHERE plugin_id = ? ORDER BY id",
                (plugin_id,),
            )
        else:
            cursor = await conn.execute(
                """
                SELECT * FROM (
                    SELECT * FROM activity_entries WHERE plugin_id = ?
                    ORDER BY id DESC LIMIT ?
                ) ORDER BY id
                """,
                (plugin_id, limit),
            )
        rows = await cursor.fetchall()
        await cursor.close()

        return [
            ActivityEntry(
                id=row["id"],
                plugin_id=row["plugin_id"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                kind=row["kind"],
                level=row["level"],
                message=row["message"],
                verb=row["verb"],
                title=row["title"],
                subject=row["subject"],
                major=bool(row["major"]),
            )
            for row in rows
        ]

    # =========================================================================
    # JOURNAL FEED
    # =========================================================================

    async def append_journal(
        self,
        *,
        day: str,
        timestamp: datetime,
        plugin_id: str,
        verb: str | None = None,
        subject: str | None = None,
        text: str | None = None,
        parent_id: int | None = None,
    ) -> int:
        """Append one journal line and return its id."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            INSERT INTO journal_entries
            (day, timestamp, plugin_id, verb, subject, text, parent_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (day, timestamp.isoformat(), plugin_id, verb, subject, text, parent_id),
        )
        await conn.commit()
        entry_id = cursor.lastrowid
        await cursor.close()
        return int(entry_id or 0)

    async def list_journal(self, day: str) -> list[JournalEntry]:
        """List a day's journal lines in insertion order."""
        conn = self._require_conn()
        cursor = await conn.execute(
            "SELECT * FROM journal_entries WHERE day = ? ORDER BY id",
            (day,),
        )
        rows = await cursor.fetchall()
        await cursor.close()

        return [
            JournalEntry(
                id=row["id"],
                day=row["day"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                plugin_id=row["plugin_id"],
                verb=row["verb"],
                subject=row["subject"],
                text=row["text"],
                parent_id=row["parent_id"],
            )
            for row in rows
        ]

    async def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.debug("Store connection closed")


class WorkspaceView:
    """Read-only view of the workspace handed to provider routines."""

    def __init__(self, store: WorkspaceStore) -> None:
        self._store = store

    async def get_record(self, plugin_id: str) -> ProviderRecord | None:
        return await self._store.get_record(plugin_id)

    async def list_records(self) -> list[ProviderRecord]:
        return await self._store.list_records()

    async def list_activity(self, plugin_id: str, limit: int | None = None) -> list[ActivityEntry]:
        return await self._store.list_activity(plugin_id, limit)

    async def list_journal(self, day: str) -> list[JournalEntry]:
        return await self._store.list_journal(day)
