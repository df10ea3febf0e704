"""On-disk schema generations of the leg dataset.

Two incompatible generations coexist in the same bucket:

- v1: flat CSV rows keyed by tail number, with emissions estimates,
  under ``leg/v1/data/icao_number={icao}/month={YYYY-MM}/data.csv``.
- v2: normalized JSON records keyed by icao number,
  under ``leg/v2/data/month={YYYY-MM}/icao_number={icao}/data.json``.

Yearly rollups of both generations are CSV.
"""

import io
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import cached_property
from typing import Annotated, Any, TypeVar

import pyarrow as pa
import pyarrow.csv as pa_csv
from pydantic import BaseModel, PlainSerializer, TypeAdapter, ValidationError

from legs_etl.emissions import commercial_emissions_kg, leg_co2e_kg
from legs_etl.legs import Leg
from legs_etl.models import SchemaVersion
from legs_etl.partitions import ENTITY_FIELD, PERIOD_FIELD, PartitionCodec
from legs_etl.required import Fleet


class SerializationError(Exception):
    """Malformed or schema-mismatched record content."""


def format_timestamp(value: datetime) -> str:
    """RFC 3339 in UTC, e.g. ``2023-01-01T10:00:00Z`` or ``2023-01-01T10:00:00.25Z``.

    Fractional seconds are kept without trailing zeros.

    Raises:
        ValueError: If ``value`` has no timezone.
    """
    if value.tzinfo is None:
        raise ValueError(f"timestamp {value.isoformat()} has no timezone")
    value = value.astimezone(UTC)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond:06d}".rstrip("0")
    return text + "Z"


Timestamp = Annotated[datetime, PlainSerializer(format_timestamp, return_type=str)]


class LegRowV1(BaseModel):
    """Flat leg row of schema v1."""

    tail_number: str
    model: str
    start: str
    end: str
    from_lat: float
    from_lon: float
    to_lat: float
    to_lon: float
    distance: float
    duration: float
    commercial_emissions_kg: int
    emissions_kg: int


class LegRowV2(BaseModel):
    """Normalized leg record of schema v2."""

    icao_number: str
    start: Timestamp
    start_lat: float
    start_lon: float
    start_altitude: float
    end: Timestamp
    end_lat: float
    end_lon: float
    end_altitude: float
    length: float


LEG_V1_SCHEMA = pa.schema(
    [
        ("tail_number", pa.string()),
        ("model", pa.string()),
        ("start", pa.string()),
        ("end", pa.string()),
        ("from_lat", pa.float64()),
        ("from_lon", pa.float64()),
        ("to_lat", pa.float64()),
        ("to_lon", pa.float64()),
        ("distance", pa.float64()),
        ("duration", pa.float64()),
        ("commercial_emissions_kg", pa.int64()),
        ("emissions_kg", pa.int64()),
    ]
)

LEG_V2_SCHEMA = pa.schema(
    [
        ("icao_number", pa.string()),
        ("start", pa.string()),
        ("start_lat", pa.float64()),
        ("start_lon", pa.float64()),
        ("start_altitude", pa.float64()),
        ("end", pa.string()),
        ("end_lat", pa.float64()),
        ("end_lon", pa.float64()),
        ("end_altitude", pa.float64()),
        ("length", pa.float64()),
    ]
)


def legs_to_v1_rows(icao_number: str, legs: Sequence[Leg], fleet: Fleet) -> list[LegRowV1]:
    """Build schema v1 rows; needs the aircraft's tail number and fuel burn."""
    aircraft = fleet.aircraft[icao_number]
    model = fleet.model_of(icao_number)
    return [
        LegRowV1(
            tail_number=aircraft.tail_number,
            model=aircraft.model,
            start=format_timestamp(leg.start.time),
            end=format_timestamp(leg.end.time),
            from_lat=leg.start.lat,
            from_lon=leg.start.lon,
            to_lat=leg.end.lat,
            to_lon=leg.end.lon,
            distance=leg.distance,
            duration=leg.duration.total_seconds() / 3600.0,
            commercial_emissions_kg=int(commercial_emissions_kg(leg.distance)),
            emissions_kg=int(leg_co2e_kg(model.gph, leg.duration)),
        )
        for leg in legs
    ]


def legs_to_v2_rows(icao_number: str, legs: Sequence[Leg], fleet: Fleet) -> list[LegRowV2]:
    """Build schema v2 records (the fleet is not needed)."""
    return [
        LegRowV2(
            icao_number=icao_number,
            start=leg.start.time,
            start_lat=leg.start.lat,
            start_lon=leg.start.lon,
            start_altitude=leg.start.altitude,
            end=leg.end.time,
            end_lat=leg.end.lat,
            end_lon=leg.end.lon,
            end_altitude=leg.end.altitude,
            length=leg.length,
        )
        for leg in legs
    ]


def rows_to_csv(rows: Sequence[BaseModel], schema: pa.Schema) -> bytes:
    """Serialize rows as CSV with a header line."""
    try:
        table = pa.Table.from_pylist([row.model_dump(mode="json") for row in rows], schema=schema)
        buffer = io.BytesIO()
        pa_csv.write_csv(table, buffer)
    except (pa.ArrowInvalid, pa.ArrowTypeError) as e:
        raise SerializationError(f"Cannot write CSV: {e}") from e
    return buffer.getvalue()


M = TypeVar("M", bound=BaseModel)


def csv_to_rows(data: bytes, schema: pa.Schema, model: type[M]) -> list[M]:
    """Parse CSV produced by :func:`rows_to_csv`.

    Raises:
        SerializationError: If the header or any value does not match the schema.
    """
    try:
        table = pa_csv.read_csv(
            io.BytesIO(data),
            convert_options=pa_csv.ConvertOptions(
                column_types=schema,
                strings_can_be_null=False,
            ),
        )
        if table.schema.names != schema.names:
            raise SerializationError(
                f"CSV columns {table.schema.names} do not match {schema.names}"
            )
        return [model.model_validate(record) for record in table.to_pylist()]
    except (pa.ArrowInvalid, pa.ArrowTypeError, KeyError, ValidationError) as e:
        raise SerializationError(f"Cannot read CSV: {e}") from e


@dataclass(frozen=True)
class SchemaGeneration:
    """Everything that differs between the schema generations."""

    version: SchemaVersion
    root: str
    codec: PartitionCodec
    row_model: type[BaseModel]
    arrow_schema: pa.Schema
    partition_format: str
    build_rows: Callable[[str, Sequence[Leg], Fleet], Sequence[BaseModel]]

    @cached_property
    def _list_adapter(self) -> TypeAdapter[Any]:
        return TypeAdapter(list[self.row_model])  # type: ignore[name-defined]

    def serialize_partition(self, rows: Sequence[BaseModel]) -> bytes:
        """Serialize one partition's rows."""
        if self.partition_format == "json":
            return self._list_adapter.dump_json(list(rows))
        return rows_to_csv(rows, self.arrow_schema)

    def deserialize_partition(self, data: bytes) -> list[BaseModel]:
        """Parse one partition's rows.

        Raises:
            SerializationError: If the content is malformed or of another schema.
        """
        if self.partition_format == "json":
            try:
                rows: list[BaseModel] = self._list_adapter.validate_json(data)
            except ValidationError as e:
                raise SerializationError(f"Cannot read JSON partition: {e}") from e
            return rows
        return list(csv_to_rows(data, self.arrow_schema, self.row_model))

    def serialize_rollup(self, rows: Sequence[BaseModel]) -> bytes:
        """Serialize a yearly rollup as CSV."""
        return rows_to_csv(rows, self.arrow_schema)

    def rollup_key(self, year: int) -> str:
        return f"{self.root}all/year={year}/data.csv"

    @property
    def status_key(self) -> str:
        return f"{self.root}status.json"


SCHEMA_V1 = SchemaGeneration(
    version=SchemaVersion.V1,
    root="leg/v1/",
    codec=PartitionCodec(
        prefix="leg/v1/data/",
        fields=(ENTITY_FIELD, PERIOD_FIELD),
        filename="data.csv",
    ),
    row_model=LegRowV1,
    arrow_schema=LEG_V1_SCHEMA,
    partition_format="csv",
    build_rows=legs_to_v1_rows,
)

SCHEMA_V2 = SchemaGeneration(
    version=SchemaVersion.V2,
    root="leg/v2/",
    codec=PartitionCodec(
        prefix="leg/v2/data/",
        fields=(PERIOD_FIELD, ENTITY_FIELD),
        filename="data.json",
    ),
    row_model=LegRowV2,
    arrow_schema=LEG_V2_SCHEMA,
    partition_format="json",
    build_rows=legs_to_v2_rows,
)

GENERATIONS: dict[SchemaVersion, SchemaGeneration] = {
    SchemaVersion.V1: SCHEMA_V1,
    SchemaVersion.V2: SCHEMA_V2,
}


def get_generation(version: SchemaVersion | str) -> SchemaGeneration:
    """Look up a schema generation by version."""
    return GENERATIONS[SchemaVersion(version)]
