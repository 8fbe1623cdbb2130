"""Record store endpoints: single-record CRUD, daily summaries, bulk migration.

Every ``/{user_id}/...`` route only serves the caller's own data.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Query
from pydantic import ValidationError

from fitsync.dependencies import Aggregator, AuthContext, CurrentUser, Migrator, Repository
from fitsync.models.records import (
    DailySummary,
    LegacyPayload,
    MigrationOutcome,
    WellnessRecord,
)
from fitsync.storage.legacy import collect_legacy_records
from fitsync.storage.records import describe_validation_error
from fitsync.storage.timestamps import utc_now

router = APIRouter(prefix="/storage", tags=["storage"])
logger = logging.getLogger("fitsync.routers.storage")


def _require_owner(user: AuthContext, user_id: str) -> None:
    if user.user_id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden: Cannot access other user's data")


# ---------- Records ----------

@router.post("/{user_id}/record", response_model=WellnessRecord, status_code=201)
async def add_record(
    user_id: str,
    user: CurrentUser,
    repository: Repository,
    body: dict[str, Any] = Body(...),
) -> Any:
    _require_owner(user, user_id)
    if not body.get("type") or not body.get("timestamp"):
        raise HTTPException(status_code=400, detail="Missing required fields: type and timestamp")
    return await repository.insert(user_id, body)


@router.get("/{user_id}/records", response_model=list[WellnessRecord])
async def list_records(
    user_id: str,
    user: CurrentUser,
    repository: Repository,
    limit: int | None = Query(default=None, ge=1, le=1000),
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = Query(default=None),
) -> Any:
    _require_owner(user, user_id)
    return await repository.list(user_id, limit=limit, from_instant=from_, to_instant=to)


@router.delete("/{user_id}/record/{record_id}", status_code=204)
async def delete_record(
    user_id: str, record_id: str, user: CurrentUser, repository: Repository
) -> None:
    _require_owner(user, user_id)
    if not await repository.delete(user_id, record_id):
        raise HTTPException(status_code=404, detail="Record not found or could not be deleted")


# ---------- Summaries ----------

@router.get("/{user_id}/daily-summary", response_model=DailySummary)
async def daily_summary(
    user_id: str,
    user: CurrentUser,
    aggregator: Aggregator,
    date_: str | None = Query(default=None, alias="date"),
) -> Any:
    """Totals for one UTC day; today when no date is given."""
    _require_owner(user, user_id)
    return await aggregator.summarize(user_id, date_ or utc_now().date())


@router.get("/{user_id}/daily-summaries", response_model=list[DailySummary])
async def daily_summaries(
    user_id: str,
    user: CurrentUser,
    aggregator: Aggregator,
    start: str = Query(...),
    end: str = Query(...),
) -> Any:
    _require_owner(user, user_id)
    return await aggregator.summarize_range(user_id, start, end)


# ---------- Migration ----------

@router.post("/migrate", response_model=MigrationOutcome)
async def migrate(user: CurrentUser, migrator: Migrator, body: Any = Body(...)) -> Any:
    """Ingest the caller's client-side history.

    Body: ``{"records": [...], "legacy": {"activities": [...], "meals": [...], "sleep": [...]}}``.
    Both keys are optional; converted legacy entries follow ``records``.
    """
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid body: expected an object")

    records = body.get("records")
    if records is None:
        records = []
    if not isinstance(records, list):
        raise HTTPException(status_code=400, detail="Invalid records format: expected array")

    if body.get("legacy") is not None:
        try:
            legacy = LegacyPayload.model_validate(body["legacy"])
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=f"Invalid legacy payload: {describe_validation_error(exc)}"
            ) from exc
        records = records + collect_legacy_records(
            user.user_id, legacy.activities, legacy.meals, legacy.sleep
        )

    return await migrator.migrate(user.user_id, records)
