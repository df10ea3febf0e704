"""Raw aircraft positions: the upstream source of the leg dataset."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from pydantic import AwareDatetime, BaseModel, TypeAdapter, ValidationError

from legs_etl.completion import scan_completed
from legs_etl.partitions import ENTITY_FIELD, PERIOD_FIELD, PartitionCodec, PartitionKey
from legs_etl.storage import BlobStorage

# Altitude (feet) under which a position is considered on the ground
GROUND_ALTITUDE_FT = 0.0

POSITIONS_CODEC = PartitionCodec(
    prefix="position/",
    fields=(ENTITY_FIELD, PERIOD_FIELD),
    filename="data.json",
)


class ExtractionError(Exception):
    """Raw positions for a partition are unavailable or malformed."""

    def __init__(self, key: PartitionKey, message: str) -> None:
        self.key = key
        super().__init__(f"Cannot extract positions for {key}: {message}")


@dataclass(frozen=True)
class Position:
    """A single observed position of an aircraft."""

    time: datetime
    lat: float
    lon: float
    altitude: float

    @property
    def grounded(self) -> bool:
        return self.altitude <= GROUND_ALTITUDE_FT


class PositionRecord(BaseModel):
    """On-disk form of a position in a month position file."""

    time: AwareDatetime
    lat: float
    lon: float
    altitude: float


_records_adapter = TypeAdapter(list[PositionRecord])


class PositionSource(Protocol):
    """Upstream source of raw positions, one month of one aircraft at a time."""

    async def list_available(self) -> set[PartitionKey]:
        """Partition keys whose raw positions can currently be fetched."""
        ...

    async def get_positions(self, key: PartitionKey) -> list[Position]:
        """Fetch the time-ordered positions of a partition.

        Raises:
            ExtractionError: If the positions are missing or malformed.
        """
        ...


class StoragePositionSource:
    """Reads month position files kept in the same object store as the legs."""

    def __init__(self, storage: BlobStorage, codec: PartitionCodec = POSITIONS_CODEC) -> None:
        self.storage = storage
        self.codec = codec

    async def list_available(self) -> set[PartitionKey]:
        return await scan_completed(self.storage, self.codec)

    async def get_positions(self, key: PartitionKey) -> list[Position]:
        content = await self.storage.get(self.codec.encode(key))
        if content is None:
            raise ExtractionError(key, "month position file does not exist")

        try:
            records = _records_adapter.validate_json(content)
        except ValidationError as e:
            raise ExtractionError(key, f"malformed position file: {e}") from e

        positions = [
            Position(time=r.time, lat=r.lat, lon=r.lon, altitude=r.altitude) for r in records
        ]
        positions.sort(key=lambda p: p.time)
        return positions
