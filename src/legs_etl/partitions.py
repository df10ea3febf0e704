"""Partition keys and their Hive-style storage path codec."""

import re
from dataclasses import dataclass
from typing import Self

ENTITY_FIELD = "icao_number"
PERIOD_FIELD = "month"

_MONTH_PATTERN = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})$")


class DecodeError(ValueError):
    """A storage path does not match the expected partition-key format."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot decode partition path '{path}': {reason}")


@dataclass(frozen=True, order=True)
class TimePeriod:
    """A calendar month, the time granularity of partitioning."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be in 1..12, got {self.month}")

    @classmethod
    def parse(cls, value: str) -> Self:
        """Parse a ``YYYY-MM`` string."""
        match = _MONTH_PATTERN.match(value)
        if match is None:
            raise ValueError(f"Invalid month '{value}', expected YYYY-MM")
        return cls(int(match.group("year")), int(match.group("month")))

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class PartitionKey:
    """Unique (aircraft, month) pair identifying one unit of storage."""

    entity: str
    period: TimePeriod

    def sort_key(self) -> tuple[TimePeriod, str]:
        """Execution order: month first, then icao number."""
        return (self.period, self.entity)

    def __str__(self) -> str:
        return f"{self.entity}/{self.period}"


def hive_to_map(fragment: str) -> dict[str, str]:
    """Parse ``name=value/name=value/`` segments into a dictionary.

    Raises:
        ValueError: If a segment has no ``=``.
    """
    result: dict[str, str] = {}
    for segment in fragment.strip("/").split("/"):
        name, sep, value = segment.partition("=")
        if not sep:
            raise ValueError(f"segment '{segment}' is not name=value")
        result[name] = value
    return result


@dataclass(frozen=True)
class PartitionCodec:
    """Maps partition keys to storage paths and back.

    Path format:
    {prefix}{field_1}={value_1}/{field_2}={value_2}/{filename}
    """

    prefix: str
    fields: tuple[str, str]
    filename: str

    def __post_init__(self) -> None:
        if sorted(self.fields) != sorted((ENTITY_FIELD, PERIOD_FIELD)):
            raise ValueError(f"fields must be {ENTITY_FIELD} and {PERIOD_FIELD}, got {self.fields}")
        if not self.prefix.endswith("/"):
            raise ValueError("prefix must end with '/'")

    def _values(self, key: PartitionKey) -> dict[str, str]:
        return {ENTITY_FIELD: key.entity, PERIOD_FIELD: str(key.period)}

    def encode(self, key: PartitionKey) -> str:
        """Build the storage path for a partition key."""
        if not key.entity or "/" in key.entity or "=" in key.entity:
            raise ValueError(f"Invalid entity id '{key.entity}'")
        values = self._values(key)
        parts = [f"{name}={values[name]}" for name in self.fields]
        return self.prefix + "/".join([*parts, self.filename])

    def decode(self, path: str) -> PartitionKey:
        """Recover the partition key from a path produced by :meth:`encode`.

        Raises:
            DecodeError: If the path does not have this codec's format.
        """
        suffix = "/" + self.filename
        if not path.startswith(self.prefix):
            raise DecodeError(path, f"expected prefix '{self.prefix}'")
        if not path.endswith(suffix):
            raise DecodeError(path, f"expected filename '{self.filename}'")

        fragment = path[len(self.prefix) : -len(suffix)]
        segments = fragment.split("/")
        names = tuple(segment.partition("=")[0] for segment in segments)
        if names != self.fields:
            raise DecodeError(path, f"expected segments {'/'.join(self.fields)}")

        try:
            values = hive_to_map(fragment)
        except ValueError as e:
            raise DecodeError(path, str(e)) from e

        entity = values[ENTITY_FIELD]
        if not entity or "=" in entity:
            raise DecodeError(path, f"invalid {ENTITY_FIELD} '{entity}'")
        try:
            period = TimePeriod.parse(values[PERIOD_FIELD])
        except ValueError as e:
            raise DecodeError(path, str(e)) from e

        return PartitionKey(entity=entity, period=period)
