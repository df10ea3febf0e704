"""Shared pytest fixtures for leg ETL tests."""

import asyncio
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from legs_etl.models import ReferenceFileConfig
from legs_etl.partitions import PartitionKey, TimePeriod
from legs_etl.positions import POSITIONS_CODEC
from legs_etl.required import Fleet, build_fleet
from legs_etl.storage import StorageError


class InMemoryStorage:
    """BlobStorage fake with per-key failure injection."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.fail_puts: set[str] = set()
        self.fail_gets: set[str] = set()
        self.puts: list[str] = []
        self.closed = False

    async def put(self, key: str, data: bytes) -> None:
        await asyncio.sleep(0)
        if key in self.fail_puts:
            raise StorageError("put", key, "injected failure")
        self.puts.append(key)
        self.blobs[key] = bytes(data)

    async def get(self, key: str) -> bytes | None:
        await asyncio.sleep(0)
        if key in self.fail_gets:
            raise StorageError("get", key, "injected failure")
        return self.blobs.get(key)

    async def list(self, prefix: str) -> list[str]:
        return sorted(key for key in self.blobs if key.startswith(prefix))

    async def close(self) -> None:
        self.closed = True


def flight_records(year: int, month: int, day: int = 3) -> list[dict[str, Any]]:
    """Position records of one 80 minute flight from Zurich to Munich."""
    t0 = datetime(year, month, day, 10, 0, tzinfo=UTC)
    points = [
        (0, 47.4582, 8.5555, 0.0),
        (5, 47.6000, 8.9000, 8000.0),
        (40, 48.1000, 10.2000, 35000.0),
        (75, 48.3000, 11.5000, 6000.0),
        (80, 48.3538, 11.7861, 0.0),
    ]
    return [
        {
            "time": (t0 + timedelta(minutes=minutes)).isoformat().replace("+00:00", "Z"),
            "lat": lat,
            "lon": lon,
            "altitude": altitude,
        }
        for minutes, lat, lon, altitude in points
    ]


def put_positions(
    storage: InMemoryStorage,
    key: PartitionKey,
    records: list[dict[str, Any]] | None = None,
) -> None:
    """Store a month position file for ``key``."""
    if records is None:
        records = flight_records(key.period.year, key.period.month)
    storage.blobs[POSITIONS_CODEC.encode(key)] = json.dumps(records).encode("utf-8")


def pk(entity: str, year: int, month: int) -> PartitionKey:
    """Shorthand for a partition key."""
    return PartitionKey(entity=entity, period=TimePeriod(year, month))


@pytest.fixture
def storage() -> InMemoryStorage:
    """Return an empty in-memory storage."""
    return InMemoryStorage()


@pytest.fixture
def sample_reference_yaml() -> str:
    """Return sample aircraft.yaml content."""
    return """
models:
  - name: GLF6
    gph: 430
  - name: C68A
    gph: 250

aircraft:
  - icao_number: "a0b1c2"
    tail_number: N100A
    model: GLF6
    country: US
  - icao_number: "4b1805"
    tail_number: HB-JKL
    model: C68A
    country: CH
  - icao_number: "3c4b26"
    tail_number: D-AIZZ
    model: A320
    country: DE
"""


@pytest.fixture
def sample_reference_file(tmp_path: Path, sample_reference_yaml: str) -> Path:
    """Create a temporary aircraft.yaml file."""
    reference_file = tmp_path / "aircraft.yaml"
    reference_file.write_text(sample_reference_yaml)
    return reference_file


@pytest.fixture
def reference() -> ReferenceFileConfig:
    """Return a parsed reference with two private jets and one airliner."""
    return ReferenceFileConfig.model_validate(
        {
            "models": [{"name": "GLF6", "gph": 430}, {"name": "C68A", "gph": 250}],
            "aircraft": [
                {"icao_number": "a0b1c2", "tail_number": "N100A", "model": "GLF6", "country": "US"},
                {"icao_number": "4b1805", "tail_number": "HB-JKL", "model": "C68A", "country": "CH"},
                {"icao_number": "3c4b26", "tail_number": "D-AIZZ", "model": "A320", "country": "DE"},
            ],
        }
    )


@pytest.fixture
def fleet(reference: ReferenceFileConfig) -> Fleet:
    """Return the tracked fleet of the sample reference."""
    return build_fleet(reference)
