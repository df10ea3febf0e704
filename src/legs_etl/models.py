"""Pydantic models for the aircraft reference file and the status document."""

from enum import Enum
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SchemaVersion(str, Enum):
    """On-disk schema generations of the leg dataset."""

    V1 = "v1"
    V2 = "v2"


class AircraftModel(BaseModel):
    """A private jet model and its fuel consumption."""

    name: str
    gph: Annotated[float, Field(gt=0, description="Fuel burn in US gallons per hour")]


class Aircraft(BaseModel):
    """A tracked aircraft from the reference file."""

    icao_number: Annotated[str, Field(pattern=r"^[0-9a-f]{6}$")]
    tail_number: str
    model: str
    country: Annotated[str, Field(pattern=r"^[A-Z]{2}$")] | None = None


class ReferenceFileConfig(BaseModel):
    """Schema for the aircraft.yaml reference file."""

    models: list[AircraftModel]
    aircraft: list[Aircraft]

    @model_validator(mode="after")
    def validate_unique_aircraft(self) -> Self:
        """Ensure no icao number is listed twice."""
        seen: set[str] = set()
        for aircraft in self.aircraft:
            if aircraft.icao_number in seen:
                raise ValueError(f"Duplicate aircraft icao_number '{aircraft.icao_number}'")
            seen.add(aircraft.icao_number)
        return self


class StatusRecord(BaseModel):
    """Completeness of one year of the dataset.

    Serialized with the field names of the published status.json.
    """

    model_config = ConfigDict(populate_by_name=True)

    required_count: int = Field(alias="icao_months_to_process", ge=0)
    processed_count: int = Field(alias="icao_months_processed", ge=0)
    url: str | None = None
