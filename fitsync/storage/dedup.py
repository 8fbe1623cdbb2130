"""Duplicate fingerprinting for client-originated records.

Records re-sent by a client across sessions usually come back with a new
``id`` and re-serialized fields, so exact equality is useless for spotting
them.  A record is instead considered already present when a stored record
shares its fingerprint:

    (user_id, type, UTC calendar date of timestamp, calories or 0)

This is a heuristic.  Two genuinely distinct same-day, same-type,
same-calorie events collapse into one.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from fitsync.models.records import WellnessRecord
from fitsync.storage.timestamps import calendar_date


@dataclass(frozen=True)
class Fingerprint:
    """Duplicate key for one record.

    Attributes:
        user_id:  Owning user.
        type:     Record type tag.
        day:      UTC calendar date of the record's timestamp.
        calories: ``metrics.calories``, 0 when absent.
    """

    user_id: str
    type: str
    day: date
    calories: float

    @classmethod
    def of(cls, record: WellnessRecord) -> Fingerprint:
        return cls(
            user_id=record.user_id,
            type=record.type,
            day=calendar_date(record.timestamp),
            calories=float(record.metrics.calories or 0),
        )

    def key(self) -> str:
        """Colon-separated form, for logs."""
        return f"{self.user_id}:{self.type}:{self.day.isoformat()}:{self.calories:g}"
