"""Record repository: durable keyed storage for wellness records.

Each record is written once as a single row carrying both forms of the
data: denormalized ``type``/``category``/``calories``/``xp`` columns for
filtering, and the full record as a JSON ``payload`` for exact round trips.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator

import aiosqlite
from pydantic import ValidationError

from fitsync.models.records import WellnessRecord, WellnessRecordCreate
from fitsync.services.database import Database
from fitsync.storage.dedup import Fingerprint
from fitsync.storage.exceptions import RecordValidationError, WriteError
from fitsync.storage.timestamps import day_bounds, format_instant, parse_instant

logger = logging.getLogger("fitsync.storage.records")

_COLUMNS = "id, userId, type, category, payload, timestamp, calories, xp"
_PLACEHOLDERS = ", ".join("?" for _ in _COLUMNS.split(", "))

INSERT_SQL = f"INSERT INTO records ({_COLUMNS}) VALUES ({_PLACEHOLDERS})"
INSERT_OR_IGNORE_SQL = f"INSERT OR IGNORE INTO records ({_COLUMNS}) VALUES ({_PLACEHOLDERS})"
ENSURE_USER_SQL = "INSERT OR IGNORE INTO users (id, email) VALUES (?, ?)"
DELETE_SQL = "DELETE FROM records WHERE userId = ? AND id = ?"
FINGERPRINT_SQL = """
    SELECT id FROM records
    WHERE userId = ? AND type = ? AND timestamp >= ? AND timestamp < ? AND calories = ?
    LIMIT 1
"""


def generate_id() -> str:
    """System-assigned record id: ``record_<epoch ms>_<9 random chars>``."""
    return f"record_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "record"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def prepare_record(user_id: str, record: WellnessRecordCreate | dict[str, Any]) -> WellnessRecord:
    """Assign an id if absent, stamp the owner and normalize the timestamp.

    Raises:
        RecordValidationError: if the record has no usable ``type`` or ``timestamp``.
    """
    if not user_id:
        raise RecordValidationError("userId is required")
    try:
        if not isinstance(record, WellnessRecordCreate):
            if not isinstance(record, dict):
                raise RecordValidationError(
                    f"Record must be an object, got {type(record).__name__}"
                )
            record = WellnessRecordCreate.model_validate(record)
        data = record.model_dump(by_alias=True)
        data["id"] = record.id or generate_id()
        data["userId"] = user_id
        return WellnessRecord.model_validate(data)
    except ValidationError as exc:
        raise RecordValidationError(describe_validation_error(exc)) from exc


def _row(record: WellnessRecord) -> tuple[Any, ...]:
    return (
        record.id,
        record.user_id,
        record.type,
        record.category,
        record.to_payload(),
        format_instant(record.timestamp),
        record.metrics.calories or 0,
        record.metrics.xp_earned or 0,
    )


def _from_row(row: aiosqlite.Row) -> WellnessRecord:
    if row["payload"]:
        record = WellnessRecord.model_validate_json(row["payload"])
    else:
        record = WellnessRecord.model_validate(
            {
                "id": row["id"],
                "userId": row["userId"],
                "type": row["type"],
                "category": row["category"],
                "timestamp": row["timestamp"],
                "metrics": {"calories": row["calories"], "xpEarned": row["xp"]},
            }
        )
    # The column is authoritative for the instant.
    record.timestamp = parse_instant(row["timestamp"])
    return record


class RecordRepository:
    """CRUD primitives over the ``records`` table.

    Every public method runs as one transaction.  ``find_fingerprint_match``
    and ``insert_if_absent`` also accept an open connection from
    :meth:`write_transaction` so a caller can run check-then-insert as one
    atomic unit.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    @asynccontextmanager
    async def write_transaction(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        async with self._db.transaction(write=True) as conn:
            yield conn

    @asynccontextmanager
    async def _use(
        self, conn: aiosqlite.Connection | None, *, write: bool
    ) -> AsyncGenerator[aiosqlite.Connection, None]:
        if conn is not None:
            yield conn
        else:
            async with self._db.transaction(write=write) as own:
                yield own

    @staticmethod
    async def _ensure_user(conn: aiosqlite.Connection, user_id: str) -> None:
        email = user_id if "@" in user_id else None
        await conn.execute(ENSURE_USER_SQL, (user_id, email))

    # ---------- Writes ----------

    async def insert(
        self, user_id: str, record: WellnessRecordCreate | dict[str, Any]
    ) -> WellnessRecord:
        """Store a new record and return it as stored.

        Raises:
            RecordValidationError: malformed record.
            WriteError:            the insert reported no affected row.
            StorageFault:          engine failure, including an id that already exists.
        """
        prepared = prepare_record(user_id, record)
        async with self._db.transaction(write=True) as conn:
            await self._ensure_user(conn, user_id)
            cursor = await conn.execute(INSERT_SQL, _row(prepared))
            if cursor.rowcount == 0:
                raise WriteError("Failed to insert record into database")
        logger.debug("Inserted record %s for %s", prepared.id, user_id)
        return prepared

    async def insert_if_absent(
        self,
        user_id: str,
        record: WellnessRecordCreate | WellnessRecord | dict[str, Any],
        *,
        conn: aiosqlite.Connection | None = None,
    ) -> bool:
        """Insert-or-ignore keyed by id. Returns True if a row was written."""
        if isinstance(record, WellnessRecord) and record.user_id == user_id:
            prepared = record
        else:
            if isinstance(record, WellnessRecord):
                record = record.model_dump(by_alias=True)
            prepared = prepare_record(user_id, record)
        async with self._use(conn, write=True) as c:
            await self._ensure_user(c, user_id)
            cursor = await c.execute(INSERT_OR_IGNORE_SQL, _row(prepared))
            return cursor.rowcount > 0

    async def delete(self, user_id: str, record_id: str) -> bool:
        """Delete a record owned by ``user_id``. False when nothing matched."""
        async with self._db.transaction(write=True) as conn:
            cursor = await conn.execute(DELETE_SQL, (user_id, record_id))
            removed = cursor.rowcount > 0
        if removed:
            logger.debug("Deleted record %s for %s", record_id, user_id)
        return removed

    # ---------- Reads ----------

    async def list(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        from_instant: datetime | str | None = None,
        to_instant: datetime | str | None = None,
    ) -> list[WellnessRecord]:
        """Records for a user, newest first.

        Both range bounds are inclusive.  ``limit`` of None or 0 means no cap.
        """
        conditions = ["userId = ?"]
        params: list[Any] = [user_id]

        if from_instant is not None:
            conditions.append("timestamp >= ?")
            params.append(format_instant(parse_instant(from_instant)))
        if to_instant is not None:
            conditions.append("timestamp <= ?")
            params.append(format_instant(parse_instant(to_instant)))

        query = f"SELECT * FROM records WHERE {' AND '.join(conditions)} ORDER BY timestamp DESC, id DESC"

        if limit:
            if limit < 0:
                raise RecordValidationError("limit must be positive")
            query += " LIMIT ?"
            params.append(int(limit))

        rows = await self._db.fetch(query, params)
        return [_from_row(r) for r in rows]

    async def find_fingerprint_match(
        self,
        fingerprint: Fingerprint,
        *,
        conn: aiosqlite.Connection | None = None,
    ) -> str | None:
        """Id of any stored record sharing the fingerprint, or None."""
        start, end = day_bounds(fingerprint.day)
        params = (
            fingerprint.user_id,
            fingerprint.type,
            format_instant(start),
            format_instant(end),
            fingerprint.calories,
        )
        async with self._use(conn, write=False) as c:
            async with c.execute(FINGERPRINT_SQL, params) as cursor:
                row = await cursor.fetchone()
        return row["id"] if row else None
