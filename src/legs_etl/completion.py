"""Listing of partitions that already exist in storage."""

from legs_etl.logging import get_logger
from legs_etl.partitions import DecodeError, PartitionCodec, PartitionKey
from legs_etl.storage import BlobStorage

logger = get_logger(__name__)


async def scan_completed(storage: BlobStorage, codec: PartitionCodec) -> set[PartitionKey]:
    """Return the set of partition keys with a blob under the codec's prefix.

    Paths that do not decode are skipped with a warning; a foreign or corrupt
    entry must not abort the listing.

    Raises:
        StorageError: If the listing itself fails.
    """
    completed: set[PartitionKey] = set()
    for path in await storage.list(codec.prefix):
        try:
            completed.add(codec.decode(path))
        except DecodeError as e:
            logger.warning(
                "completion_scan_unrecognized_path",
                path=path,
                reason=e.reason,
            )
    return completed
