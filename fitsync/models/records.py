"""Pydantic models for wellness records, daily summaries and migration results."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, field_serializer, field_validator

from fitsync.models.base import FitSyncBase
from fitsync.storage.timestamps import format_instant, parse_instant


# ---------- Enums ----------

class RecordType(str, Enum):
    """Record types with aggregation rules. Other type strings are stored as-is."""

    meal = "meal"
    activity = "activity"
    sleep = "sleep"


# ---------- Record parts ----------

def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), sort_keys=True)
    return str(value)


def _id_as_text(value: Any) -> Any:
    # Older clients used epoch-millisecond numbers as ids.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class RecordMetrics(FitSyncBase):
    """Numeric measurements. Unknown keys are kept verbatim; known ones must be finite."""

    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    calories: float | None = None
    xp_earned: float | None = None
    duration: float | None = None  # minutes
    quantity: float | None = None  # steps for activities, servings for meals
    quality: float | None = None


class RecordMetadata(FitSyncBase):
    """Advisory annotations; never used in aggregation."""

    model_config = ConfigDict(extra="allow")

    confidence: float | None = None
    ai_insights: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("ai_insights", "tags", mode="before")
    @classmethod
    def _as_string_list(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            v = [v]
        return [_as_text(item) for item in v if item is not None]

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


# ---------- Records ----------

class _RecordFields(FitSyncBase):
    model_config = ConfigDict(extra="allow")

    type: str = Field(min_length=1)
    category: str | None = None
    timestamp: datetime
    metrics: RecordMetrics = Field(default_factory=RecordMetrics)
    metadata: RecordMetadata = Field(default_factory=RecordMetadata)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v: Any) -> datetime:
        return parse_instant(v)

    @field_validator("metrics", "metadata", mode="before")
    @classmethod
    def _none_as_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_serializer("timestamp")
    def _serialize_timestamp(self, v: datetime) -> str:
        return format_instant(v)


class WellnessRecordCreate(_RecordFields):
    """Record payload as sent by a client. ``id`` and ``userId`` are optional."""

    id: str | None = None
    user_id: str | None = None

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _ids_as_text(cls, v: Any) -> Any:
        return _id_as_text(v)


class WellnessRecord(_RecordFields):
    """A stored record."""

    id: str
    user_id: str

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _ids_as_text(cls, v: Any) -> Any:
        return _id_as_text(v)

    def to_payload(self) -> str:
        """Full JSON serialization stored alongside the denormalized columns."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ---------- Derived results ----------

class DailySummary(FitSyncBase):
    date: str  # YYYY-MM-DD, UTC day
    steps: float = 0
    calories_in: float = 0
    calories_out: float = 0
    net_calories: float = 0
    sleep_hours: float = 0
    xp: float = 0
    records: list[WellnessRecord] = Field(default_factory=list)


class MigrationOutcome(FitSyncBase):
    total_processed: int = 0
    total_inserted: int = 0
    duplicates_skipped: int = 0
    id_collisions: int = 0
    errors: list[str] = Field(default_factory=list)


# ---------- Request bodies ----------

class LegacyPayload(FitSyncBase):
    """Old per-kind local stores, as scraped by the web client."""

    activities: list[dict[str, Any]] = Field(default_factory=list)
    meals: list[dict[str, Any]] = Field(default_factory=list)
    sleep: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("sleep", mode="before")
    @classmethod
    def _wrap_single_sleep(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return [v]
        return [] if v is None else v

    @field_validator("activities", "meals", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v
