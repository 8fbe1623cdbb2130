"""Daily rollups computed from stored records.

Summaries are never cached: every call re-reads the day's records and folds
them in one pass.  Day boundaries are UTC.

Fold rules by record type:
    meal:     calories_in  += calories
    activity: calories_out += calories, steps += quantity, xp += xp_earned
    sleep:    sleep_hours  += duration / 60, xp += xp_earned
    other:    no totals; still listed in ``records``
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable

from fitsync.models.records import DailySummary, RecordType, WellnessRecord
from fitsync.storage.exceptions import RecordValidationError
from fitsync.storage.records import RecordRepository
from fitsync.storage.timestamps import ONE_MILLISECOND, calendar_date, day_bounds, day_start, parse_day

logger = logging.getLogger("fitsync.storage.aggregator")


def _num(value: float | None) -> float:
    return value or 0


def fold_day(day: date, records: Iterable[WellnessRecord]) -> DailySummary:
    """Fold one day's records into a summary. ``records`` keeps its order."""
    summary = DailySummary(date=day.isoformat())

    for record in records:
        summary.records.append(record)
        m = record.metrics
        if record.type == RecordType.meal:
            summary.calories_in += _num(m.calories)
        elif record.type == RecordType.activity:
            summary.calories_out += _num(m.calories)
            summary.steps += _num(m.quantity)
            summary.xp += _num(m.xp_earned)
        elif record.type == RecordType.sleep:
            summary.sleep_hours += _num(m.duration) / 60
            summary.xp += _num(m.xp_earned)

    summary.net_calories = summary.calories_in - summary.calories_out
    return summary


class DailyAggregator:
    """Read-only rollups over a :class:`RecordRepository`."""

    def __init__(self, repository: RecordRepository, max_range_days: int = 92) -> None:
        self._repository = repository
        self._max_range_days = max_range_days

    async def summarize(self, user_id: str, day: Any) -> DailySummary:
        """Totals for one UTC day.

        Args:
            user_id: Owner.
            day:     A date, a datetime (its UTC date is used) or an ISO string.

        Raises:
            RecordValidationError: if ``day`` cannot be read as a date.
        """
        target = parse_day(day)
        start, end = day_bounds(target)
        records = await self._repository.list(
            user_id, from_instant=start, to_instant=end - ONE_MILLISECOND
        )
        return fold_day(target, records)

    async def summarize_range(self, user_id: str, start_day: Any, end_day: Any) -> list[DailySummary]:
        """One summary per UTC day in ``[start_day, end_day]``, oldest first."""
        first = parse_day(start_day)
        last = parse_day(end_day)
        if last < first:
            raise RecordValidationError("end date is before start date")
        span = (last - first).days + 1
        if span > self._max_range_days:
            raise RecordValidationError(
                f"Date range of {span} days exceeds the maximum of {self._max_range_days}"
            )

        records = await self._repository.list(
            user_id,
            from_instant=day_start(first),
            to_instant=day_start(last + timedelta(days=1)) - ONE_MILLISECOND,
        )
        by_day: dict[date, list[WellnessRecord]] = defaultdict(list)
        for record in records:
            by_day[calendar_date(record.timestamp)].append(record)

        summaries = [
            fold_day(first + timedelta(days=i), by_day.get(first + timedelta(days=i), []))
            for i in range(span)
        ]
        logger.debug(
            "Summarized %d days (%d records) for %s", span, len(records), user_id
        )
        return summaries
