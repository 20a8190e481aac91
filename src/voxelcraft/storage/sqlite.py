"""SQLite implementation of the SyncStore protocol."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from voxelcraft.models.records import ActivityRecord

SCHEMA = """
-- Event cursor per network, for resumption after restart
CREATE TABLE IF NOT EXISTS cursor (
    network TEXT PRIMARY KEY,
    cursor TEXT NOT NULL,
    last_ledger INTEGER,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Activity log (sync errors, dropped forwards, CLI operations)
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    message TEXT NOT NULL,
    tx_hash TEXT,
    network TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_log(created_at);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteSyncStore:
    """SQLite-backed implementation of the SyncStore protocol.

    Only the event cursor and an activity log live here; sagas are never
    persisted.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        path = self._db_path
        if path != ":memory:":
            path = str(Path(path).expanduser())
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Cursor ─────────────────────────────────────────────

    async def get_cursor(self, network: str) -> str | None:
        async with self.db.execute(
            "SELECT cursor FROM cursor WHERE network=?", (network,)
        ) as cur:
            row = await cur.fetchone()
            return row["cursor"] if row else None

    async def get_last_ledger(self, network: str) -> int | None:
        async with self.db.execute(
            "SELECT last_ledger FROM cursor WHERE network=?", (network,)
        ) as cur:
            row = await cur.fetchone()
            return row["last_ledger"] if row else None

    async def set_cursor(self, network: str, cursor: str, ledger: int | None = None) -> None:
        await self.db.execute(
            "INSERT INTO cursor (network, cursor, last_ledger, updated_at) VALUES (?, ?, ?, ?)"
            " ON CONFLICT(network) DO UPDATE SET cursor=excluded.cursor,"
            " last_ledger=COALESCE(excluded.last_ledger, cursor.last_ledger),"
            " updated_at=excluded.updated_at",
            (network, cursor, ledger, _now()),
        )
        await self.db.commit()

    async def clear_cursor(self, network: str) -> None:
        await self.db.execute("DELETE FROM cursor WHERE network=?", (network,))
        await self.db.commit()

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        tx_hash: str | None = None,
        network: str | None = None,
    ) -> None:
        await self.db.execute(
            "INSERT INTO activity_log (event_type, message, tx_hash, network, created_at)"
            " VALUES (?, ?, ?, ?, ?)",
            (event_type, message, tx_hash, network, _now()),
        )
        await self.db.commit()

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        async with self.db.execute(
            "SELECT * FROM activity_log ORDER BY id DESC LIMIT ?", (limit,)
        ) as cur:
            return [
                ActivityRecord(
                    id=row["id"],
                    event_type=row["event_type"],
                    message=row["message"],
                    tx_hash=row["tx_hash"],
                    network=row["network"],
                    created_at=row["created_at"],
                )
                async for row in cur
            ]
