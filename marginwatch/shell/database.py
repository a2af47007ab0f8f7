"""SQLite database — keyed JSON records for positions and alert state."""

from __future__ import annotations

import json
from typing import Any

import aiosqlite
import structlog

log = structlog.get_logger()

SCHEMA = """
-- Keyed records: one JSON document per key, no schema versioning
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT (datetime('now'))
);
"""

# Fixed record keys
POSITIONS_KEY = "trade-risk-tracking"
ALERT_STATE_KEY = "trade-risk-alerts"


class Database:
    def __init__(self, db_path: str):
        self._path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._conn = await aiosqlite.connect(self._path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()
        log.info("database.connected", path=self._path)

    async def close(self) -> None:
        if self._conn:
            await self._conn.commit()
            await self._conn.close()
            self._conn = None
            log.info("database.closed")

    @property
    def conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Database not connected")
        return self._conn

    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        return await self.conn.execute(sql, params)

    async def fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        cursor = await self.conn.execute(sql, params)
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def commit(self) -> None:
        await self.conn.commit()

    async def load_json(self, key: str, default: Any = None) -> Any:
        """Read a keyed record. Missing or unparseable records return default."""
        try:
            row = await self.fetchone("SELECT value FROM kv_store WHERE key = ?", (key,))
        except aiosqlite.Error as e:
            log.error("database.read_failed", key=key, error=str(e))
            return default
        if not row:
            return default
        try:
            return json.loads(row["value"])
        except (TypeError, ValueError) as e:
            log.error("database.parse_failed", key=key, error=str(e))
            return default

    async def save_json(self, key: str, value: Any) -> bool:
        """Overwrite a keyed record. Returns False when the write fails."""
        try:
            await self.execute(
                """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, datetime('now'))
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                (key, json.dumps(value, default=str)),
            )
            await self.commit()
        except aiosqlite.Error as e:
            log.error("database.write_failed", key=key, error=str(e))
            return False
        return True
