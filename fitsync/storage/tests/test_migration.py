"""Tests for bulk migration: fingerprint dedup, idempotency, per-record failures."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from fitsync.models.records import WellnessRecord
from fitsync.storage.dedup import Fingerprint
from fitsync.storage.legacy import collect_legacy_records
from fitsync.storage.migration import MigrationEngine
from fitsync.storage.records import RecordRepository


def _assert_balanced(outcome) -> None:
    assert outcome.total_processed == (
        outcome.total_inserted
        + outcome.duplicates_skipped
        + outcome.id_collisions
        + len(outcome.errors)
    )


class TestFingerprint:
    def test_fingerprint_uses_utc_day_and_calories(self, user_id) -> None:
        record = WellnessRecord.model_validate(
            {
                "id": "x",
                "userId": user_id,
                "type": "meal",
                "timestamp": "2026-03-14T23:30:00-02:00",  # 01:30 UTC on the 15th
                "metrics": {"calories": 350},
            }
        )
        fp = Fingerprint.of(record)
        assert fp.day == date(2026, 3, 15)
        assert fp.calories == 350.0
        assert fp.key() == f"{user_id}:meal:2026-03-15:350"

    def test_missing_calories_is_zero(self, user_id) -> None:
        record = WellnessRecord.model_validate(
            {"id": "x", "userId": user_id, "type": "sleep", "timestamp": "2026-03-14T06:00:00Z"}
        )
        assert Fingerprint.of(record).calories == 0.0


class TestMigrate:
    @pytest.mark.asyncio
    async def test_fresh_batch_inserted(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        batch = [
            make_record("meal", calories=350),
            make_record("activity", calories=200, quantity=1000),
            make_record("sleep", duration=420),
        ]
        outcome = await engine.migrate(user_id, batch)
        assert outcome.total_processed == 3
        assert outcome.total_inserted == 3
        assert outcome.duplicates_skipped == 0
        assert outcome.errors == []
        assert len(await repository.list(user_id)) == 3

    @pytest.mark.asyncio
    async def test_sleep_migrated_twice_is_skipped(self, engine: MigrationEngine, user_id) -> None:
        batch = [{"type": "sleep", "timestamp": "2026-03-14T06:00:00Z", "metrics": {"duration": 420, "xpEarned": 10}}]
        first = await engine.migrate(user_id, batch)
        second = await engine.migrate(user_id, batch)
        assert first.total_inserted == 1
        assert second.duplicates_skipped == 1
        assert second.total_inserted == 0

    @pytest.mark.asyncio
    async def test_idempotent_with_new_ids(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        first_pass = [
            make_record("meal", "2026-03-14T08:00:00Z", id="m-1", calories=350),
            make_record("meal", "2026-03-14T13:00:00Z", id="m-2", calories=600),
            make_record("activity", "2026-03-14T18:00:00Z", id="a-1", calories=200),
        ]
        second_pass = [dict(r, id=f"{r['id']}-retry") for r in first_pass]

        await engine.migrate(user_id, first_pass)
        outcome = await engine.migrate(user_id, second_pass)

        assert outcome.total_inserted == 0
        assert outcome.duplicates_skipped == 3
        assert len(await repository.list(user_id)) == 3

    @pytest.mark.asyncio
    async def test_differs_only_in_id_and_metadata(self, engine: MigrationEngine, user_id, make_record) -> None:
        batch = [
            make_record("meal", "2026-03-14T08:00:00Z", id="a", calories=350, metadata={"tags": ["x"]}),
            make_record("meal", "2026-03-14T19:45:00Z", id="b", calories=350, metadata={"confidence": 0.2}),
        ]
        outcome = await engine.migrate(user_id, batch)
        assert outcome.total_inserted == 1
        assert outcome.duplicates_skipped == 1

    @pytest.mark.asyncio
    async def test_different_calories_not_duplicate(self, engine: MigrationEngine, user_id, make_record) -> None:
        outcome = await engine.migrate(
            user_id, [make_record("meal", calories=350), make_record("meal", calories=351)]
        )
        assert outcome.total_inserted == 2

    @pytest.mark.asyncio
    async def test_different_day_not_duplicate(self, engine: MigrationEngine, user_id, make_record) -> None:
        outcome = await engine.migrate(
            user_id,
            [
                make_record("meal", "2026-03-14T23:59:59.999Z", calories=350),
                make_record("meal", "2026-03-15T00:00:00Z", calories=350),
            ],
        )
        assert outcome.total_inserted == 2

    @pytest.mark.asyncio
    async def test_different_type_not_duplicate(self, engine: MigrationEngine, user_id, make_record) -> None:
        outcome = await engine.migrate(
            user_id, [make_record("meal", calories=200), make_record("activity", calories=200)]
        )
        assert outcome.total_inserted == 2

    @pytest.mark.asyncio
    async def test_other_users_records_do_not_count(self, engine: MigrationEngine, user_id, other_user_id, make_record) -> None:
        await engine.migrate(other_user_id, [make_record("meal", calories=350)])
        outcome = await engine.migrate(user_id, [make_record("meal", calories=350)])
        assert outcome.total_inserted == 1

    @pytest.mark.asyncio
    async def test_matches_records_inserted_directly(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        await repository.insert(user_id, make_record("meal", "2026-03-14T08:00:00Z", calories=350))
        outcome = await engine.migrate(user_id, [make_record("meal", "2026-03-14T20:00:00Z", calories=350)])
        assert outcome.duplicates_skipped == 1

    @pytest.mark.asyncio
    async def test_bad_record_does_not_abort_batch(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        batch = [
            make_record("meal", calories=100, id="good-1"),
            {"id": "bad-1", "type": "meal", "timestamp": "not a time"},
            "not even an object",
            {"id": "bad-2", "timestamp": "2026-03-14T08:00:00Z"},
            make_record("activity", calories=300, id="good-2"),
        ]
        outcome = await engine.migrate(user_id, batch)

        assert outcome.total_processed == 5
        assert outcome.total_inserted == 2
        assert len(outcome.errors) == 3
        assert outcome.errors[0].startswith("Error processing record bad-1:")
        assert outcome.errors[1].startswith("Error processing record #2:")
        assert outcome.errors[2].startswith("Error processing record bad-2:")
        assert {r.id for r in await repository.list(user_id)} == {"good-1", "good-2"}
        _assert_balanced(outcome)

    @pytest.mark.asyncio
    async def test_every_record_failing_still_returns_outcome(self, engine: MigrationEngine, user_id) -> None:
        outcome = await engine.migrate(user_id, [{}, {"type": "meal"}, None])
        assert outcome.total_processed == 3
        assert outcome.total_inserted == 0
        assert len(outcome.errors) == 3

    @pytest.mark.asyncio
    async def test_id_collision_counted(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        await repository.insert(user_id, make_record("meal", id="taken", calories=100))
        outcome = await engine.migrate(user_id, [make_record("meal", id="taken", calories=200)])
        assert outcome.id_collisions == 1
        assert outcome.total_inserted == 0
        assert outcome.duplicates_skipped == 0
        assert outcome.errors == []
        _assert_balanced(outcome)

    @pytest.mark.asyncio
    async def test_owner_is_caller(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        record = make_record("meal", calories=50)
        record["userId"] = "spoofed@example.com"
        await engine.migrate(user_id, [record])
        assert len(await repository.list(user_id)) == 1
        assert await repository.list("spoofed@example.com") == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, engine: MigrationEngine, user_id) -> None:
        outcome = await engine.migrate(user_id, [])
        assert outcome.total_processed == 0
        assert outcome.errors == []

    @pytest.mark.asyncio
    async def test_concurrent_migrations_do_not_double_insert(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        batch = [make_record("meal", f"2026-03-{day:02d}T08:00:00Z", calories=400) for day in range(1, 11)]
        retry = [dict(r, id=f"retry-{i}") for i, r in enumerate(batch)]

        first, second = await asyncio.gather(
            engine.migrate(user_id, batch), engine.migrate(user_id, retry)
        )

        assert first.total_inserted + second.total_inserted == 10
        assert first.duplicates_skipped + second.duplicates_skipped == 10
        assert len(await repository.list(user_id)) == 10


class TestClientShapes:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("calories", ["NaN", "Infinity", float("nan"), float("-inf")])
    async def test_non_finite_calories_rejected_every_time(self, engine: MigrationEngine, repository: RecordRepository, user_id, calories) -> None:
        batch = [{"type": "meal", "timestamp": "2026-03-14T08:00:00Z", "metrics": {"calories": calories}}]

        first = await engine.migrate(user_id, batch)
        second = await engine.migrate(user_id, batch)

        for outcome in (first, second):
            assert outcome.total_inserted == 0
            assert len(outcome.errors) == 1
            assert "metrics.calories" in outcome.errors[0]
            _assert_balanced(outcome)
        assert await repository.list(user_id) == []

    @pytest.mark.asyncio
    async def test_numeric_id_stored_as_text(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        record = make_record("meal", calories=420)
        record["id"] = 1710403200000

        outcome = await engine.migrate(user_id, [record])

        assert outcome.total_inserted == 1
        assert outcome.errors == []
        [stored] = await repository.list(user_id)
        assert stored.id == "1710403200000"
        assert await repository.delete(user_id, "1710403200000") is True

    @pytest.mark.asyncio
    async def test_scalar_tags_wrapped(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        record = make_record("meal", calories=300, metadata={"tags": "breakfast"})

        outcome = await engine.migrate(user_id, [record])

        assert outcome.total_inserted == 1
        [stored] = await repository.list(user_id)
        assert stored.metadata.tags == ["breakfast"]

    @pytest.mark.asyncio
    async def test_structured_insights_kept_as_text(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record) -> None:
        record = make_record(
            "meal", calories=300, metadata={"aiInsights": [{"text": "x"}, "Add fibre", 7], "tags": ["a", 1, "1"]}
        )

        outcome = await engine.migrate(user_id, [record])

        assert outcome.total_inserted == 1
        [stored] = await repository.list(user_id)
        assert stored.metadata.ai_insights == ['{"text":"x"}', "Add fibre", "7"]
        assert stored.metadata.tags == ["a", "1"]

    @pytest.mark.asyncio
    async def test_error_label_for_record_without_id(self, engine: MigrationEngine, user_id, make_record) -> None:
        batch = [
            make_record("meal", calories=10),
            {"type": "meal"},
            {"id": "", "type": "meal"},
            {"id": "named", "type": "meal"},
        ]

        outcome = await engine.migrate(user_id, batch)

        assert [e.split(":")[0] for e in outcome.errors] == [
            "Error processing record #1",
            "Error processing record #2",
            "Error processing record named",
        ]

    @pytest.mark.asyncio
    async def test_error_label_uses_assigned_id_after_validation(self, engine: MigrationEngine, repository: RecordRepository, user_id, make_record, monkeypatch) -> None:
        async def broken_insert(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(repository, "insert_if_absent", broken_insert)

        outcome = await engine.migrate(user_id, [make_record("meal", calories=10)])

        [error] = outcome.errors
        assert error.startswith("Error processing record record_")
        assert error.endswith(": disk on fire")


class TestLegacyMigration:
    @pytest.mark.asyncio
    async def test_legacy_history_migrates_once(self, engine: MigrationEngine, repository: RecordRepository, user_id) -> None:
        activities = [{"type": "running", "timestamp": "2026-03-14T07:00:00Z", "calories": 300, "duration": 30}]
        meals = [{"mealType": "lunch", "timestamp": "2026-03-14T12:00:00Z", "calories": 650}]
        sleep = [{"timestamp": "2026-03-14T06:00:00Z", "duration": 450, "quality": 0.8}]

        first = await engine.migrate(user_id, collect_legacy_records(user_id, activities, meals, sleep))
        # Legacy ids are regenerated on every conversion.
        second = await engine.migrate(user_id, collect_legacy_records(user_id, activities, meals, sleep))

        assert first.total_inserted == 3
        assert second.total_inserted == 0
        assert second.duplicates_skipped == 3
        categories = sorted(r.category for r in await repository.list(user_id))
        assert categories == ["lunch", "running", "sleep"]
