"""Main entry point for the leg ETL."""

import asyncio
import sys
import uuid

import yaml
from pydantic import ValidationError

from legs_etl.aggregate import AggregationError
from legs_etl.config import Settings, load_reference_file
from legs_etl.logging import bind_run_context, configure_logging, get_logger
from legs_etl.metrics import push_metrics
from legs_etl.pipeline import run_pipeline
from legs_etl.positions import ExtractionError, StoragePositionSource
from legs_etl.required import build_fleet
from legs_etl.schemas import SerializationError, get_generation
from legs_etl.storage import StorageError, create_storage

# Errors that end a run with a non-zero exit status
FATAL_ERRORS = (
    AggregationError,
    ExtractionError,
    FileNotFoundError,
    SerializationError,
    StorageError,
    ValidationError,
    yaml.YAMLError,
)


async def run() -> int:
    """Run the leg ETL once.

    Returns:
        Process exit status: 0 when reconciliation, execution and aggregation
        completed, 1 otherwise.
    """
    try:
        settings = Settings()  # type: ignore[call-arg]
    except ValidationError as e:
        configure_logging()
        get_logger(__name__).error("invalid_settings", error_message=str(e))
        return 1

    configure_logging(settings.log_level, settings.log_format)
    bind_run_context(uuid.uuid4().hex, settings.schema_version.value)
    logger = get_logger(__name__)

    logger.info(
        "starting",
        storage_backend=settings.storage_backend,
        bucket=settings.storage_bucket,
        country=settings.country,
        start_year=settings.start_year,
        end_year=settings.end_year,
        etl_policy=settings.etl_policy.value,
    )

    storage = None
    try:
        reference = load_reference_file(settings.reference_path)
        fleet = build_fleet(reference)
        logger.info(
            "loaded_reference",
            aircraft_count=len(reference.aircraft),
            tracked_count=len(fleet),
        )

        storage = create_storage(settings)
        summary = await run_pipeline(
            storage=storage,
            source=StoragePositionSource(storage),
            fleet=fleet,
            generation=get_generation(settings.schema_version),
            options=settings.pipeline_options(),
        )
        logger.info(
            "run_complete",
            required=summary.required,
            completed=summary.completed,
            ready=summary.ready,
            todo=summary.todo,
            succeeded=summary.succeeded,
            failed=summary.failed,
        )
        return 0

    except FATAL_ERRORS as e:
        logger.error("run_failed", error_type=type(e).__name__, error_message=str(e))
        return 1

    except Exception as e:
        logger.exception("run_failed", error_type=type(e).__name__, error_message=str(e))
        return 1

    finally:
        if storage is not None:
            await storage.close()
        if settings.metrics_pushgateway:
            try:
                push_metrics(settings.metrics_pushgateway)
            except OSError as e:
                logger.warning("metrics_push_failed", error_message=str(e))


def main() -> None:
    """Entry point for the leg ETL."""
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
