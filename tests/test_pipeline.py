"""End-to-end tests of a pipeline run against in-memory storage."""

import json

import pytest

from legs_etl.aggregate import AggregationError
from legs_etl.executor import ExecutionPolicy
from legs_etl.pipeline import PipelineOptions, RunSummary, run_pipeline
from legs_etl.positions import StoragePositionSource
from legs_etl.required import Fleet
from legs_etl.schemas import SCHEMA_V1, SCHEMA_V2, SchemaGeneration
from legs_etl.storage import StorageError
from tests.conftest import InMemoryStorage, pk, put_positions

OPTIONS = PipelineOptions(start_year=2023, end_year=2023, etl_concurrency=4, read_concurrency=4)


async def run(
    storage: InMemoryStorage,
    fleet: Fleet,
    generation: SchemaGeneration = SCHEMA_V2,
    options: PipelineOptions = OPTIONS,
) -> RunSummary:
    return await run_pipeline(
        storage=storage,
        source=StoragePositionSource(storage),
        fleet=fleet,
        generation=generation,
        options=options,
    )


def partition_puts(storage: InMemoryStorage, generation: SchemaGeneration) -> list[str]:
    return [key for key in storage.puts if key.startswith(generation.codec.prefix)]


def blobs_under(storage: InMemoryStorage, prefix: str) -> dict[str, bytes]:
    return {k: v for k, v in storage.blobs.items() if k.startswith(prefix)}


class TestRunPipeline:
    """Tests for run_pipeline."""

    async def test_only_available_months_are_processed(
        self, storage: InMemoryStorage, fleet: Fleet
    ) -> None:
        """Test a required year where the source only has January."""
        put_positions(storage, pk("a0b1c2", 2023, 1))
        options = PipelineOptions(start_year=2023, end_year=2023, country="US")

        summary = await run(storage, fleet, options=options)

        assert (summary.required, summary.ready, summary.todo) == (12, 1, 1)
        assert summary.succeeded == 1
        assert "leg/v2/data/month=2023-01/icao_number=a0b1c2/data.json" in storage.blobs
        status = json.loads(storage.blobs["leg/v2/status.json"])
        assert status["2023"] == {"icao_months_to_process": 12, "icao_months_processed": 1}

    async def test_tolerant_failure_is_retried_next_run(
        self, storage: InMemoryStorage, fleet: Fleet
    ) -> None:
        """Test that a failed partition is skipped, then picked up by the next run."""
        for month in (1, 2, 3):
            put_positions(storage, pk("a0b1c2", 2023, month))
        failing = pk("4b1805", 2023, 3)
        put_positions(storage, failing)
        storage.fail_puts.add(SCHEMA_V2.codec.encode(failing))

        summary = await run(storage, fleet)

        assert (summary.succeeded, summary.failed, summary.skipped) == (3, 1, 0)
        assert summary.status[2023].processed_count == 3
        assert summary.status[2023].required_count == 24

        storage.fail_puts.clear()
        storage.puts.clear()
        summary = await run(storage, fleet)

        assert summary.todo == 1
        assert partition_puts(storage, SCHEMA_V2) == [SCHEMA_V2.codec.encode(failing)]
        assert summary.status[2023].processed_count == 4

    async def test_second_run_is_a_no_op(self, storage: InMemoryStorage, fleet: Fleet) -> None:
        """Test that a converged dataset schedules no work."""
        put_positions(storage, pk("a0b1c2", 2023, 1))
        put_positions(storage, pk("4b1805", 2023, 7))
        await run(storage, fleet, generation=SCHEMA_V1)
        partitions = blobs_under(storage, "leg/v1/data/")
        storage.puts.clear()

        summary = await run(storage, fleet, generation=SCHEMA_V1)

        assert summary.todo == 0
        assert summary.completed == 2
        assert partition_puts(storage, SCHEMA_V1) == []
        assert blobs_under(storage, "leg/v1/data/") == partitions

    async def test_completed_partitions_are_not_rewritten(
        self, storage: InMemoryStorage, fleet: Fleet
    ) -> None:
        """Test that an existing partition is never executed again."""
        key = pk("a0b1c2", 2023, 1)
        put_positions(storage, key)
        storage.blobs[SCHEMA_V2.codec.encode(key)] = b"[]"

        summary = await run(storage, fleet)

        assert summary.todo == 0
        assert storage.blobs[SCHEMA_V2.codec.encode(key)] == b"[]"
        assert summary.status[2023].processed_count == 1

    async def test_generations_are_independent(
        self, storage: InMemoryStorage, fleet: Fleet
    ) -> None:
        """Test that completing v2 does not complete v1."""
        put_positions(storage, pk("a0b1c2", 2023, 1))
        await run(storage, fleet, generation=SCHEMA_V2)

        summary = await run(storage, fleet, generation=SCHEMA_V1)

        assert summary.todo == 1
        assert "leg/v1/data/icao_number=a0b1c2/month=2023-01/data.csv" in storage.blobs

    async def test_fail_fast_aborts_before_aggregation(
        self, storage: InMemoryStorage, fleet: Fleet
    ) -> None:
        """Test that the fail-fast policy surfaces the first error."""
        for month in (1, 2, 3):
            put_positions(storage, pk("a0b1c2", 2023, month))
        storage.fail_puts.add(SCHEMA_V2.codec.encode(pk("a0b1c2", 2023, 1)))
        options = PipelineOptions(
            start_year=2023,
            end_year=2023,
            etl_concurrency=1,
            etl_policy=ExecutionPolicy.FAIL_FAST,
        )

        with pytest.raises(StorageError):
            await run(storage, fleet, options=options)

        assert partition_puts(storage, SCHEMA_V2) == []
        assert "leg/v2/status.json" not in storage.blobs

    async def test_aggregation_failure_is_raised(
        self, storage: InMemoryStorage, fleet: Fleet
    ) -> None:
        """Test that a corrupt completed partition fails the run after ETL."""
        put_positions(storage, pk("a0b1c2", 2023, 2))
        storage.blobs[SCHEMA_V2.codec.encode(pk("a0b1c2", 2023, 1))] = b"not json"

        with pytest.raises(AggregationError):
            await run(storage, fleet)

        assert SCHEMA_V2.codec.encode(pk("a0b1c2", 2023, 2)) in storage.blobs
        assert "leg/v2/status.json" in storage.blobs
