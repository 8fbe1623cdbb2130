"""Embedded SQLite storage engine.

One ``aiosqlite`` connection per process.  Every logical operation runs as a
single transaction through :meth:`Database.transaction`; an ``asyncio.Lock``
keeps transactions on the shared connection from interleaving.  Write
transactions start with ``BEGIN IMMEDIATE`` so SQLite's reserved lock is
taken up front, which serializes writers in other processes as well.

Engine errors never leak out as ``sqlite3`` exceptions; they surface as
:class:`~fitsync.storage.exceptions.StorageFault`.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Sequence

import aiosqlite

from fitsync.config import Settings, get_settings
from fitsync.storage.exceptions import StorageFault

logger = logging.getLogger("fitsync.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS records (
    id TEXT PRIMARY KEY,
    userId TEXT NOT NULL,
    type TEXT NOT NULL,
    category TEXT,
    payload TEXT,
    timestamp DATETIME NOT NULL,
    calories REAL DEFAULT 0,
    xp INTEGER DEFAULT 0,
    FOREIGN KEY (userId) REFERENCES users(id)
);

CREATE INDEX IF NOT EXISTS idx_records_userId_timestamp ON records(userId, timestamp);
CREATE INDEX IF NOT EXISTS idx_records_type ON records(type);
"""


class Database:
    """A single SQLite database file (or ``:memory:``) with serialized transactions."""

    def __init__(self, path: str, busy_timeout_ms: int = 5000) -> None:
        self.path = path
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open the connection, apply pragmas and create the schema."""
        if self._conn is not None:
            return
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = await aiosqlite.connect(self.path, isolation_level=None)
            conn.row_factory = aiosqlite.Row
            await conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            await conn.execute("PRAGMA journal_mode = WAL")
            await conn.execute("PRAGMA foreign_keys = ON")
            await conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise StorageFault(f"Could not open database at {self.path}: {exc}") from exc
        self._conn = conn
        logger.info("Database opened at %s", self.path)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Database closed")

    @asynccontextmanager
    async def transaction(
        self, *, write: bool = False
    ) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Run the enclosed statements as one atomic unit.

        Usage::

            async with db.transaction(write=True) as conn:
                await conn.execute("DELETE FROM records WHERE id = ?", (record_id,))

        Commits on normal exit, rolls back on any exception.  ``sqlite3``
        errors are re-raised as ``StorageFault``; anything else propagates
        unchanged after the rollback.
        """
        if self._conn is None:
            raise StorageFault("Database not initialized: call connect() first")
        conn = self._conn
        async with self._lock:
            try:
                await conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            except sqlite3.Error as exc:
                raise StorageFault(str(exc)) from exc
            try:
                yield conn
            except sqlite3.Error as exc:
                await self._rollback(conn)
                raise StorageFault(str(exc)) from exc
            except BaseException:
                await self._rollback(conn)
                raise
            else:
                try:
                    await conn.execute("COMMIT")
                except sqlite3.Error as exc:
                    await self._rollback(conn)
                    raise StorageFault(str(exc)) from exc

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            await conn.execute("ROLLBACK")
        except sqlite3.Error as exc:
            logger.error("Rollback failed: %s", exc)

    async def fetch(self, query: str, params: Sequence[Any] = ()) -> list[aiosqlite.Row]:
        """Fetch rows in a read transaction."""
        async with self.transaction() as conn:
            async with conn.execute(query, params) as cursor:
                return list(await cursor.fetchall())

    async def fetchval(self, query: str, params: Sequence[Any] = ()) -> Any:
        """Fetch the first column of the first row, or None."""
        async with self.transaction() as conn:
            async with conn.execute(query, params) as cursor:
                row = await cursor.fetchone()
        return row[0] if row else None


# Module-level database: initialized once at app startup
_db: Database | None = None


async def init_db(settings: Settings | None = None) -> Database:
    """Open the process-wide database. Call once at app startup."""
    global _db
    s = settings or get_settings()
    db = Database(s.database_path, busy_timeout_ms=s.sqlite_busy_timeout_ms)
    await db.connect()
    _db = db
    return db


async def close_db() -> None:
    """Close the process-wide database. Call at app shutdown."""
    global _db
    if _db:
        await _db.close()
        _db = None


def get_db() -> Database:
    if _db is None:
        raise StorageFault("Database not initialized: call init_db() first")
    return _db
