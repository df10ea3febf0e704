"""Reconcile, execute and aggregate: one full run of the leg ETL."""

from dataclasses import dataclass, field
from functools import partial

from legs_etl.aggregate import aggregate
from legs_etl.completion import scan_completed
from legs_etl.etl import PartitionTask
from legs_etl.executor import ExecutionPolicy, run_bounded
from legs_etl.legs import LegDeriver, derive_legs
from legs_etl.logging import get_logger
from legs_etl.metrics import set_partition_counts
from legs_etl.models import StatusRecord
from legs_etl.positions import PositionSource
from legs_etl.reconcile import reconcile
from legs_etl.required import Fleet, build_required_set, years_in_range
from legs_etl.schemas import SchemaGeneration
from legs_etl.storage import BlobStorage

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    """Run parameters of the pipeline."""

    start_year: int = 2019
    end_year: int = 2024
    country: str | None = None
    etl_concurrency: int = 50
    read_concurrency: int = 100
    etl_policy: ExecutionPolicy = ExecutionPolicy.TOLERANT
    public_url_base: str | None = None


@dataclass
class RunSummary:
    """Counts describing what a run did."""

    required: int = 0
    completed: int = 0
    ready: int = 0
    todo: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    status: dict[int, StatusRecord] = field(default_factory=dict)


async def run_pipeline(
    storage: BlobStorage,
    source: PositionSource,
    fleet: Fleet,
    generation: SchemaGeneration,
    options: PipelineOptions,
    derive: LegDeriver = derive_legs,
) -> RunSummary:
    """Bring the leg dataset of ``generation`` one run closer to completeness.

    Raises:
        StorageError: If the completion scan, the availability listing or the
            status write fails.
        AggregationError: If any yearly rollup could not be written.
        Exception: The first ETL error when the ETL policy is fail-fast.
    """
    years = years_in_range(options.start_year, options.end_year)
    required = build_required_set(years, fleet, options.country)
    logger.info("required_built", required=len(required), aircraft=len(fleet))

    completed = await scan_completed(storage, generation.codec)
    available = await source.list_available()
    state = reconcile(required, available, completed)
    counts = state.counts()
    set_partition_counts(counts)
    logger.info("reconciled", **counts)

    task = PartitionTask(storage, source, generation, fleet, derive=derive)
    batch = await run_bounded(
        (partial(task, key) for key in state.todo),
        limit=options.etl_concurrency,
        policy=options.etl_policy,
    )
    summary = RunSummary(
        **counts,
        succeeded=len(batch.results),
        failed=len(batch.errors),
        skipped=batch.skipped,
    )
    logger.info(
        "etl_finished",
        succeeded=summary.succeeded,
        failed=summary.failed,
        skipped=summary.skipped,
        max_in_flight=batch.max_in_flight,
    )
    if options.etl_policy is ExecutionPolicy.FAIL_FAST:
        batch.raise_for_error()

    summary.status = await aggregate(
        required,
        storage,
        generation,
        read_concurrency=options.read_concurrency,
        public_url_base=options.public_url_base,
    )
    return summary
