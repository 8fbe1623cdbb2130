"""FitSync wellness record store.

Persists meals, activities and sleep per user, ingests client-held history
without duplicating it, and rolls records up into daily totals.

Core modules:
    records     RecordRepository; insert, list, delete, insert-or-ignore
    dedup       duplicate fingerprint (user, type, UTC day, calories)
    migration   MigrationEngine; sequential, failure-tolerant bulk ingestion
    aggregator  DailyAggregator; per-day and per-range rollups
    legacy      converters for the old per-kind client stores
    timestamps  canonical instants and UTC day boundaries
    exceptions  RecordValidationError, StorageFault, WriteError

Only the model-independent pieces are re-exported here; the record models
import ``timestamps`` from this package.
"""

from fitsync.storage.exceptions import RecordValidationError, StorageFault, WriteError
from fitsync.storage.timestamps import format_instant, parse_instant

__all__ = [
    "RecordValidationError",
    "StorageFault",
    "WriteError",
    "format_instant",
    "parse_instant",
]
