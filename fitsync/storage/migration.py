"""Bulk ingestion of client-held records with duplicate suppression.

Clients migrate their local history on login, and a retried login sends the
same history again, often with fresh ids.  Each candidate is therefore
checked against stored records by :class:`~fitsync.storage.dedup.Fingerprint`
before being written.

Processing is strictly sequential in input order.  The fingerprint check and
the insert for one record share a single ``BEGIN IMMEDIATE`` transaction, so
a concurrent migration for the same user (even from another process on the
same database file) cannot slip a duplicate in between.

A failing record never aborts the batch; its error is recorded in the
outcome and the next record is processed.

Usage::

    engine = MigrationEngine(repository)
    outcome = await engine.migrate(user_id, records)
    logger.info("Inserted %d of %d", outcome.total_inserted, outcome.total_processed)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import ValidationError

from fitsync.models.records import MigrationOutcome, WellnessRecord
from fitsync.storage.dedup import Fingerprint
from fitsync.storage.records import RecordRepository, describe_validation_error, prepare_record

logger = logging.getLogger("fitsync.storage.migration")


def _record_label(raw: Any, index: int, prepared: WellnessRecord | None) -> str:
    if prepared is not None:
        return prepared.id
    record_id = raw.get("id") if isinstance(raw, dict) else getattr(raw, "id", None)
    if record_id is None or record_id == "":
        return f"#{index}"
    return str(record_id)


def _describe(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return describe_validation_error(exc)
    return str(exc) or exc.__class__.__name__


class MigrationEngine:
    """Ingest a batch of candidate records exactly once per fingerprint."""

    def __init__(self, repository: RecordRepository) -> None:
        self._repository = repository

    async def migrate(self, user_id: str, records: Iterable[Any]) -> MigrationOutcome:
        """Process ``records`` in order and report what happened to each.

        Every record lands in exactly one bucket: inserted, duplicate,
        id collision (fingerprint is new but the id is taken), or error.

        Args:
            user_id: Trusted owner id. Overrides any ``userId`` on the records.
            records: Record-shaped objects, unvalidated.

        Returns:
            The batch outcome. Never raises for per-record failures.
        """
        outcome = MigrationOutcome()

        for index, raw in enumerate(records):
            outcome.total_processed += 1
            prepared: WellnessRecord | None = None
            try:
                prepared = prepare_record(user_id, raw)
                fingerprint = Fingerprint.of(prepared)

                async with self._repository.write_transaction() as conn:
                    existing = await self._repository.find_fingerprint_match(
                        fingerprint, conn=conn
                    )
                    if existing is not None:
                        outcome.duplicates_skipped += 1
                        logger.debug(
                            "Skipping duplicate %s (matches %s)", fingerprint.key(), existing
                        )
                        continue

                    inserted = await self._repository.insert_if_absent(
                        user_id, prepared, conn=conn
                    )

                if inserted:
                    outcome.total_inserted += 1
                else:
                    outcome.id_collisions += 1
                    logger.warning(
                        "Record id %s already exists under a different fingerprint; not inserted",
                        prepared.id,
                    )
            except Exception as exc:
                label = _record_label(raw, index, prepared)
                message = f"Error processing record {label}: {_describe(exc)}"
                outcome.errors.append(message)
                logger.warning(message)

        logger.info(
            "Migration for %s: processed=%d inserted=%d duplicates=%d collisions=%d errors=%d",
            user_id,
            outcome.total_processed,
            outcome.total_inserted,
            outcome.duplicates_skipped,
            outcome.id_collisions,
            len(outcome.errors),
        )
        return outcome
