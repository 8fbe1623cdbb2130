"""Shared fixtures for the record store test suite.

Every test gets its own SQLite file under pytest's ``tmp_path``.
"""

from __future__ import annotations

from datetime import date
from typing import Any, AsyncGenerator, Callable

import pytest
import pytest_asyncio

from fitsync.services.database import Database
from fitsync.storage.aggregator import DailyAggregator
from fitsync.storage.migration import MigrationEngine
from fitsync.storage.records import RecordRepository


# ---------------------------------------------------------------------------
# Identities and dates
# ---------------------------------------------------------------------------


@pytest.fixture
def user_id() -> str:
    return "runner@example.com"


@pytest.fixture
def other_user_id() -> str:
    return "swimmer@example.com"


@pytest.fixture
def test_day() -> date:
    return date(2026, 3, 14)


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    db = Database(str(tmp_path / "fitsync.sqlite"))
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def repository(database: Database) -> RecordRepository:
    return RecordRepository(database)


@pytest.fixture
def engine(repository: RecordRepository) -> MigrationEngine:
    return MigrationEngine(repository)


@pytest.fixture
def aggregator(repository: RecordRepository) -> DailyAggregator:
    return DailyAggregator(repository, max_range_days=31)


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------


@pytest.fixture
def make_record() -> Callable[..., dict[str, Any]]:
    """Build a client-shaped record dict.

    Usage::

        make_record("meal", "2026-03-14T08:00:00Z", calories=350, id="m-1")
    """

    def _make(
        type: str = "meal",
        timestamp: Any = "2026-03-14T08:00:00.000Z",
        *,
        id: str | None = None,
        category: str | None = None,
        metadata: dict[str, Any] | None = None,
        **metrics: Any,
    ) -> dict[str, Any]:
        record: dict[str, Any] = {"type": type, "timestamp": timestamp, "metrics": metrics}
        if id is not None:
            record["id"] = id
        if category is not None:
            record["category"] = category
        if metadata is not None:
            record["metadata"] = metadata
        return record

    return _make
