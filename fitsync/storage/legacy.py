"""Convert pre-unified client stores into record-shaped dicts.

Older web clients kept activities, meals and sleep in separate local stores,
each in its own shape.  These converters produce dicts the migration engine
accepts as-is; they do no validation beyond filling defaults.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Iterable

from fitsync.storage.timestamps import format_instant, utc_now


def _legacy_id(prefix: str) -> str:
    return f"migrated-{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _timestamp(entry: dict[str, Any]) -> Any:
    return entry.get("timestamp") or format_instant(utc_now())


def from_legacy_activity(user_id: str, activity: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": _legacy_id("act"),
        "userId": user_id,
        "timestamp": _timestamp(activity),
        "type": "activity",
        "category": activity.get("type") or "general",
        "metrics": {
            "duration": activity.get("duration") or 0,
            "calories": activity.get("calories") or 0,
            "xpEarned": activity.get("xpEarned") or 0,
            "intensity": activity.get("intensity") or 5,
        },
        "metadata": {
            "confidence": 1.0,
            "aiInsights": [],
            "tags": activity.get("tags") or [],
        },
    }


def from_legacy_meal(user_id: str, meal: dict[str, Any]) -> dict[str, Any]:
    metrics: dict[str, Any] = {
        "calories": meal.get("calories") or 0,
        "xpEarned": meal.get("xpEarned") or 0,
        "quantity": meal.get("quantity") or 1,
    }
    if meal.get("nutrition"):
        metrics["nutrition"] = meal["nutrition"]
    return {
        "id": _legacy_id("meal"),
        "userId": user_id,
        "timestamp": _timestamp(meal),
        "type": "meal",
        "category": meal.get("mealType") or "general",
        "metrics": metrics,
        "metadata": {
            "confidence": meal.get("confidence") or 0.8,
            "aiInsights": meal.get("insights") or [],
            "tags": meal.get("tags") or [],
        },
    }


def from_legacy_sleep(user_id: str, sleep: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": _legacy_id("sleep"),
        "userId": user_id,
        "timestamp": _timestamp(sleep),
        "type": "sleep",
        "category": "sleep",
        "metrics": {
            "duration": sleep.get("duration") or 0,
            "xpEarned": sleep.get("xpEarned") or 0,
            "quality": sleep.get("quality") or 0.5,
        },
        "metadata": {
            "confidence": 1.0,
            "aiInsights": [],
            "tags": sleep.get("tags") or [],
        },
    }


def collect_legacy_records(
    user_id: str,
    activities: Iterable[dict[str, Any]] = (),
    meals: Iterable[dict[str, Any]] = (),
    sleep: Iterable[dict[str, Any]] = (),
) -> list[dict[str, Any]]:
    """Convert all legacy entries, activities first, then meals, then sleep."""
    records = [from_legacy_activity(user_id, a) for a in activities]
    records.extend(from_legacy_meal(user_id, m) for m in meals)
    records.extend(from_legacy_sleep(user_id, s) for s in sleep)
    return records
