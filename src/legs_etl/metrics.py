"""Prometheus metrics for the leg ETL run."""

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram
from prometheus_client import push_to_gateway as _push_to_gateway

PARTITION_BUCKETS = [0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]

partitions_written = Counter(
    "legs_etl_partitions_written_total",
    "Partitions successfully written",
    ["schema_version"],
)

partition_failures = Counter(
    "legs_etl_partition_failures_total",
    "Partitions whose ETL task failed",
    ["schema_version", "error_type"],
)

partition_duration = Histogram(
    "legs_etl_partition_duration_seconds",
    "Time to extract, transform and load one partition",
    ["schema_version"],
    buckets=PARTITION_BUCKETS,
    unit="seconds",
)

tasks_in_flight = Gauge(
    "legs_etl_tasks_in_flight",
    "Units of work currently running in the bounded executor",
)

partition_set_size = Gauge(
    "legs_etl_partitions",
    "Size of the partition sets computed at reconciliation",
    ["set"],
)

years_aggregated = Counter(
    "legs_etl_years_aggregated_total",
    "Yearly rollups written",
)

year_aggregation_failures = Counter(
    "legs_etl_year_aggregation_failures_total",
    "Yearly rollups aborted because a partition could not be read",
)


def record_partition_success(schema_version: str, duration_seconds: float) -> None:
    """Record a successfully written partition."""
    partitions_written.labels(schema_version=schema_version).inc()
    partition_duration.labels(schema_version=schema_version).observe(duration_seconds)


def record_partition_failure(schema_version: str, error_type: str) -> None:
    """Record a failed partition ETL task."""
    partition_failures.labels(schema_version=schema_version, error_type=error_type).inc()


def set_partition_counts(counts: dict[str, int]) -> None:
    """Publish the reconciliation set sizes."""
    for name, value in counts.items():
        partition_set_size.labels(set=name).set(value)


def record_year_aggregated() -> None:
    years_aggregated.inc()


def record_year_failed() -> None:
    year_aggregation_failures.inc()


def push_metrics(
    gateway: str,
    job: str = "legs_etl",
    registry: CollectorRegistry = REGISTRY,
) -> None:
    """Push all metrics of this batch run to a Prometheus pushgateway."""
    _push_to_gateway(gateway, job=job, registry=registry)
