"""Extract-transform-load task for one partition."""

import time

from legs_etl.legs import LegDeriver, derive_legs
from legs_etl.logging import get_logger
from legs_etl.metrics import record_partition_failure, record_partition_success
from legs_etl.partitions import PartitionKey
from legs_etl.positions import PositionSource
from legs_etl.required import Fleet
from legs_etl.schemas import SchemaGeneration
from legs_etl.storage import BlobStorage

logger = get_logger(__name__)


class PartitionTask:
    """Builds one leg partition from the raw positions of one aircraft-month.

    The only side effect is a full overwrite of the partition's blob, so a
    task can be re-run any number of times.
    """

    def __init__(
        self,
        storage: BlobStorage,
        source: PositionSource,
        generation: SchemaGeneration,
        fleet: Fleet,
        derive: LegDeriver = derive_legs,
    ) -> None:
        self.storage = storage
        self.source = source
        self.generation = generation
        self.fleet = fleet
        self.derive = derive

    async def __call__(self, key: PartitionKey) -> str:
        """Run extract, transform and load for ``key``.

        Returns:
            The storage path that was written.

        Raises:
            ExtractionError: If the raw positions cannot be fetched.
            SerializationError: If the legs cannot be serialized.
            StorageError: If the write fails.
        """
        version = self.generation.version.value
        started = time.monotonic()
        try:
            # extract
            positions = await self.source.get_positions(key)
            # transform
            legs = self.derive(positions)
            rows = self.generation.build_rows(key.entity, legs, self.fleet)
            data = self.generation.serialize_partition(rows)
            # load
            path = self.generation.codec.encode(key)
            await self.storage.put(path, data)
        except Exception as e:
            record_partition_failure(version, type(e).__name__)
            logger.error(
                "partition_failed",
                icao_number=key.entity,
                month=str(key.period),
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise

        duration = time.monotonic() - started
        record_partition_success(version, duration)
        logger.info(
            "partition_written",
            icao_number=key.entity,
            month=str(key.period),
            path=path,
            legs=len(rows),
            duration_seconds=round(duration, 3),
        )
        return path
