"""Yearly rollups of completed partitions and the status document."""

import json
from collections import defaultdict
from collections.abc import Iterable, Set
from functools import partial

from pydantic import BaseModel, TypeAdapter, ValidationError

from legs_etl.completion import scan_completed
from legs_etl.executor import ExecutionPolicy, run_bounded
from legs_etl.logging import get_logger
from legs_etl.metrics import record_year_aggregated, record_year_failed
from legs_etl.models import StatusRecord
from legs_etl.partitions import PartitionKey
from legs_etl.schemas import SchemaGeneration
from legs_etl.storage import BlobStorage, StorageError

logger = get_logger(__name__)

_status_adapter = TypeAdapter(dict[int, StatusRecord])


class AggregationError(Exception):
    """One or more yearly rollups could not be written."""

    def __init__(self, years: list[int]) -> None:
        self.years = years
        super().__init__(f"Aggregation failed for years: {', '.join(map(str, years))}")


class MissingPartitionError(StorageError):
    """A partition listed as completed has disappeared."""

    def __init__(self, key: str) -> None:
        super().__init__("get", key, "listed partition does not exist")


def group_by_year(keys: Iterable[PartitionKey]) -> dict[int, set[PartitionKey]]:
    """Group partition keys by the year of their month."""
    groups: dict[int, set[PartitionKey]] = defaultdict(set)
    for key in keys:
        groups[key.period.year].add(key)
    return dict(groups)


async def read_partition(
    storage: BlobStorage,
    generation: SchemaGeneration,
    key: PartitionKey,
) -> list[BaseModel]:
    """Read and parse one completed partition."""
    path = generation.codec.encode(key)
    content = await storage.get(path)
    if content is None:
        raise MissingPartitionError(path)
    return generation.deserialize_partition(content)


async def load_status(storage: BlobStorage, key: str) -> dict[int, StatusRecord]:
    """Load the previous status document; unreadable documents count as empty."""
    content = await storage.get(key)
    if content is None:
        return {}
    try:
        return _status_adapter.validate_json(content)
    except ValidationError as e:
        logger.warning("status_unreadable", key=key, error_message=str(e))
        return {}


def dump_status(status: dict[int, StatusRecord]) -> bytes:
    """Serialize the status document with years in descending order."""
    document = {
        str(year): status[year].model_dump(by_alias=True, exclude_none=True)
        for year in sorted(status, reverse=True)
    }
    return json.dumps(document, indent=2).encode("utf-8")


async def aggregate_year(
    year: int,
    completed: Set[PartitionKey],
    storage: BlobStorage,
    generation: SchemaGeneration,
    read_concurrency: int,
) -> str:
    """Merge the partitions of one year into a single rollup blob.

    Reads are fail-fast: one unreadable partition aborts the year and no
    partial rollup is written.

    Returns:
        The key of the written rollup.
    """
    ordered = sorted(completed, key=PartitionKey.sort_key)
    logger.info("year_reading", year=year, partitions=len(ordered))

    batch = await run_bounded(
        (partial(read_partition, storage, generation, key) for key in ordered),
        limit=read_concurrency,
        policy=ExecutionPolicy.FAIL_FAST,
    )
    if batch.errors:
        failed_key = ordered[batch.errors[0].index]
        logger.error(
            "year_read_failed",
            year=year,
            icao_number=failed_key.entity,
            month=str(failed_key.period),
            error_type=type(batch.first_error).__name__,
            error_message=str(batch.first_error),
        )
        batch.raise_for_error()

    rows = [row for partition in batch.results for row in partition]
    key = generation.rollup_key(year)
    await storage.put(key, generation.serialize_rollup(rows))
    logger.info("year_aggregated", year=year, key=key, legs=len(rows))
    return key


async def aggregate(
    required: Set[PartitionKey],
    storage: BlobStorage,
    generation: SchemaGeneration,
    read_concurrency: int = 100,
    public_url_base: str | None = None,
) -> dict[int, StatusRecord]:
    """Write one rollup per year and the status document.

    Completion is re-scanned so partitions written by this run are included.
    A year whose rollup fails keeps its previous status record; the others
    are still written.

    Returns:
        The status document that was written.

    Raises:
        AggregationError: After writing status, if any year failed.
        StorageError: If the completion scan or the status write fails.
    """
    completed = await scan_completed(storage, generation.codec) & set(required)
    completed_by_year = group_by_year(completed)
    required_by_year = group_by_year(required)

    status = await load_status(storage, generation.status_key)
    failed_years: list[int] = []

    for year in sorted(completed_by_year, reverse=True):
        year_completed = completed_by_year[year]
        try:
            key = await aggregate_year(
                year, year_completed, storage, generation, read_concurrency
            )
        except Exception as e:
            record_year_failed()
            failed_years.append(year)
            logger.error(
                "year_aggregation_aborted",
                year=year,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            continue

        record_year_aggregated()
        status[year] = StatusRecord(
            required_count=len(required_by_year.get(year, ())),
            processed_count=len(year_completed),
            url=f"{public_url_base.rstrip('/')}/{key}" if public_url_base else None,
        )

    await storage.put(generation.status_key, dump_status(status))
    logger.info("status_written", key=generation.status_key, years=len(status))

    if failed_years:
        raise AggregationError(failed_years)
    return status
