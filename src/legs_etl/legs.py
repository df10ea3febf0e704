"""Derivation of flight legs from a stream of positions."""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from legs_etl.positions import Position

EARTH_RADIUS_KM = 6371.0

# Ground-to-ground segments shorter than this are taxiing, not flights
MIN_LEG_DURATION = timedelta(minutes=5)


def haversine_km(a: Position, b: Position) -> float:
    """Great-circle distance between two positions in kilometers."""
    lat1, lon1, lat2, lon2 = map(math.radians, (a.lat, a.lon, b.lat, b.lon))
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


@dataclass(frozen=True)
class Leg:
    """One continuous flight from takeoff to landing."""

    positions: tuple[Position, ...]

    @property
    def start(self) -> Position:
        return self.positions[0]

    @property
    def end(self) -> Position:
        return self.positions[-1]

    @property
    def start_time(self) -> datetime:
        return self.start.time

    @property
    def distance(self) -> float:
        """Great-circle distance between start and end, in km."""
        return haversine_km(self.start, self.end)

    @property
    def length(self) -> float:
        """Length of the flown path, in km."""
        return sum(
            haversine_km(a, b) for a, b in zip(self.positions, self.positions[1:], strict=False)
        )

    @property
    def duration(self) -> timedelta:
        return self.end.time - self.start.time


class LegDeriver(Protocol):
    """Converts a time-ordered position stream into legs."""

    def __call__(self, positions: Iterable[Position]) -> list[Leg]: ...


def derive_legs(positions: Iterable[Position]) -> list[Leg]:
    """Split a time-ordered position stream into legs.

    A leg starts at the last grounded position before the aircraft becomes
    airborne and ends at the first grounded position after it lands. Flights
    still airborne at the end of the stream are not emitted.
    """
    legs: list[Leg] = []
    last_grounded: Position | None = None
    current: list[Position] | None = None

    for position in positions:
        if current is None:
            if position.grounded:
                last_grounded = position
            elif last_grounded is not None:
                current = [last_grounded, position]
            continue

        current.append(position)
        if position.grounded:
            leg = Leg(positions=tuple(current))
            if leg.duration >= MIN_LEG_DURATION:
                legs.append(leg)
            current = None
            last_grounded = position

    return legs
