"""Computation of the partitions the dataset is supposed to contain."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from legs_etl.models import Aircraft, AircraftModel, ReferenceFileConfig
from legs_etl.partitions import PartitionKey, TimePeriod


@dataclass(frozen=True)
class Fleet:
    """Tracked aircraft (those of a private jet model) and their models."""

    aircraft: dict[str, Aircraft] = field(default_factory=dict)
    models: dict[str, AircraftModel] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.aircraft)

    def model_of(self, icao_number: str) -> AircraftModel:
        """Get the model of a tracked aircraft.

        Raises:
            KeyError: If the aircraft is not tracked.
        """
        return self.models[self.aircraft[icao_number].model]


def build_fleet(reference: ReferenceFileConfig) -> Fleet:
    """Keep the aircraft whose primary use is to be a private jet."""
    models = {model.name: model for model in reference.models}
    aircraft = {a.icao_number: a for a in reference.aircraft if a.model in models}
    return Fleet(aircraft=aircraft, models=models)


def years_in_range(start: int, end: int) -> list[int]:
    """Years from ``end`` down to ``start``, both inclusive."""
    return list(range(end, start - 1, -1))


def build_required_set(
    years: Iterable[int],
    fleet: Fleet,
    country: str | None = None,
) -> set[PartitionKey]:
    """One partition key per tracked aircraft per month of the given years.

    Args:
        years: Years to consider, most recent first.
        fleet: Tracked aircraft.
        country: Optional ISO 3166 alpha-2 code restricting the aircraft.

    Returns:
        The required set.
    """
    icao_numbers = [
        icao
        for icao, aircraft in fleet.aircraft.items()
        if country is None
        or (aircraft.country is not None and aircraft.country.upper() == country.upper())
    ]

    required: set[PartitionKey] = set()
    for year in years:
        for month in range(1, 13):
            period = TimePeriod(year, month)
            required.update(PartitionKey(entity=icao, period=period) for icao in icao_numbers)
    return required
