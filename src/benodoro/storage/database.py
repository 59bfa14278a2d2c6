"""WAL-mode SQLite file holding the shared defaults suites."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

-- One row per key: a reader can see some keys of a write but not others
CREATE TABLE IF NOT EXISTS defaults (
    suite TEXT NOT NULL,
    key TEXT NOT NULL,
    value JSON NOT NULL,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (suite, key)
);
"""


class Database:
    """Connection to the shared defaults file.

    The app process writes while widget processes read, so the file runs in
    WAL mode in autocommit: every key write is its own transaction.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        if self._connection is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self.db_path, isolation_level=None)
        self._connection.row_factory = aiosqlite.Row

        for pragma in ("journal_mode=WAL", "synchronous=NORMAL", "busy_timeout=5000"):
            await self._connection.execute(f"PRAGMA {pragma}")

        await self._migrate()
        logger.info(f"Shared defaults opened: {self.db_path}")

    async def close(self) -> None:
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.debug(f"Shared defaults closed: {self.db_path}")

    async def _migrate(self) -> None:
        conn = self._require()
        await conn.executescript(SCHEMA)

        async with conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version") as cursor:
            (version,) = await cursor.fetchone()

        if version < SCHEMA_VERSION:
            await conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            logger.info(f"Shared defaults schema at version {SCHEMA_VERSION}")

    def _require(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database not connected")
        return self._connection

    async def read_value(self, suite: str, key: str) -> tuple[bool, Any]:
        """Return ``(found, value)`` for one key of a suite."""
        conn = self._require()
        async with conn.execute(
            "SELECT value FROM defaults WHERE suite = ? AND key = ?",
            (suite, key),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return False, None
        return True, json.loads(row["value"])

    async def write_value(self, suite: str, key: str, value: Any) -> None:
        """Upsert one key; other keys of the suite are left untouched."""
        conn = self._require()
        async with self._write_lock:
            await conn.execute(
                """INSERT INTO defaults (suite, key, value) VALUES (?, ?, ?)
                   ON CONFLICT(suite, key)
                   DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP""",
                (suite, key, json.dumps(value)),
            )

    async def delete_value(self, suite: str, key: str) -> None:
        conn = self._require()
        async with self._write_lock:
            await conn.execute("DELETE FROM defaults WHERE suite = ? AND key = ?", (suite, key))
