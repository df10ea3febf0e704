"""Tests for partition keys and the Hive-style path codec."""

import pytest

from legs_etl.partitions import (
    ENTITY_FIELD,
    PERIOD_FIELD,
    DecodeError,
    PartitionCodec,
    PartitionKey,
    TimePeriod,
    hive_to_map,
)
from legs_etl.schemas import SCHEMA_V1, SCHEMA_V2


class TestTimePeriod:
    """Tests for TimePeriod."""

    def test_parse_and_format(self) -> None:
        """Test that parse and str are inverse."""
        period = TimePeriod.parse("2023-01")

        assert period == TimePeriod(2023, 1)
        assert str(period) == "2023-01"

    def test_ordering(self) -> None:
        """Test that months are ordered chronologically."""
        periods = [TimePeriod(2023, 2), TimePeriod(2022, 12), TimePeriod(2023, 1)]

        assert sorted(periods) == [TimePeriod(2022, 12), TimePeriod(2023, 1), TimePeriod(2023, 2)]

    @pytest.mark.parametrize("value", ["2023-13", "2023-00", "2023-1", "23-01", "2023/01", ""])
    def test_parse_invalid(self, value: str) -> None:
        """Test that malformed months are rejected."""
        with pytest.raises(ValueError):
            TimePeriod.parse(value)


class TestHiveToMap:
    """Tests for hive_to_map."""

    def test_segments(self) -> None:
        """Test parsing name=value segments."""
        assert hive_to_map("month=2023-01/icao_number=a0b1c2/") == {
            "month": "2023-01",
            "icao_number": "a0b1c2",
        }

    def test_segment_without_equals(self) -> None:
        """Test that a segment without '=' is rejected."""
        with pytest.raises(ValueError):
            hive_to_map("month=2023-01/a0b1c2")


class TestPartitionCodec:
    """Tests for PartitionCodec."""

    @pytest.fixture
    def key(self) -> PartitionKey:
        return PartitionKey(entity="a0b1c2", period=TimePeriod(2023, 1))

    def test_encode_v2(self, key: PartitionKey) -> None:
        """Test the v2 path layout (month first)."""
        assert (
            SCHEMA_V2.codec.encode(key)
            == "leg/v2/data/month=2023-01/icao_number=a0b1c2/data.json"
        )

    def test_encode_v1(self, key: PartitionKey) -> None:
        """Test the v1 path layout (icao number first)."""
        assert (
            SCHEMA_V1.codec.encode(key)
            == "leg/v1/data/icao_number=a0b1c2/month=2023-01/data.csv"
        )

    @pytest.mark.parametrize("codec", [SCHEMA_V1.codec, SCHEMA_V2.codec])
    def test_round_trip(self, codec: PartitionCodec) -> None:
        """Test decode(encode(k)) == k and encode(decode(p)) == p."""
        keys = [
            PartitionKey(entity="a0b1c2", period=TimePeriod(2019, 1)),
            PartitionKey(entity="4b1805", period=TimePeriod(2024, 12)),
        ]
        for key in keys:
            path = codec.encode(key)
            assert codec.decode(path) == key
            assert codec.encode(codec.decode(path)) == path

    def test_decode_wrong_prefix(self) -> None:
        """Test that a path from another prefix is rejected."""
        with pytest.raises(DecodeError, match="prefix"):
            SCHEMA_V2.codec.decode("position/month=2023-01/icao_number=a0b1c2/data.json")

    def test_decode_wrong_filename(self) -> None:
        """Test that a path with another filename is rejected."""
        with pytest.raises(DecodeError, match="filename"):
            SCHEMA_V2.codec.decode("leg/v2/data/month=2023-01/icao_number=a0b1c2/data.csv")

    def test_generations_are_not_cross_applied(self, key: PartitionKey) -> None:
        """Test that neither generation decodes the other's paths."""
        with pytest.raises(DecodeError):
            SCHEMA_V2.codec.decode(SCHEMA_V1.codec.encode(key))
        with pytest.raises(DecodeError):
            SCHEMA_V1.codec.decode(SCHEMA_V2.codec.encode(key))

    def test_decode_swapped_segments(self) -> None:
        """Test that segments in the wrong order are rejected."""
        codec = PartitionCodec(
            prefix="leg/v2/data/", fields=(PERIOD_FIELD, ENTITY_FIELD), filename="data.json"
        )
        with pytest.raises(DecodeError, match="segments"):
            codec.decode("leg/v2/data/icao_number=a0b1c2/month=2023-01/data.json")

    @pytest.mark.parametrize(
        "path",
        [
            "leg/v2/data/month=2023-13/icao_number=a0b1c2/data.json",
            "leg/v2/data/month=2023-01/icao_number=/data.json",
            "leg/v2/data/month=2023-01/data.json",
            "leg/v2/data/month=2023-01/icao_number=a0b1c2/extra=1/data.json",
            "leg/v2/data/data.json",
        ],
    )
    def test_decode_malformed(self, path: str) -> None:
        """Test that malformed paths raise DecodeError instead of defaulting."""
        with pytest.raises(DecodeError):
            SCHEMA_V2.codec.decode(path)

    def test_encode_rejects_slash_in_entity(self) -> None:
        """Test that an entity that would change the path shape is rejected."""
        with pytest.raises(ValueError):
            SCHEMA_V2.codec.encode(PartitionKey(entity="a/b", period=TimePeriod(2023, 1)))

    def test_invalid_fields(self) -> None:
        """Test that a codec needs exactly the two key fields."""
        with pytest.raises(ValueError):
            PartitionCodec(prefix="x/", fields=(ENTITY_FIELD, ENTITY_FIELD), filename="data.csv")


class TestPartitionKey:
    """Tests for PartitionKey."""

    def test_equality_and_hash(self) -> None:
        """Test that keys are equal iff both components are equal."""
        a = PartitionKey(entity="a0b1c2", period=TimePeriod(2023, 1))
        b = PartitionKey(entity="a0b1c2", period=TimePeriod(2023, 1))
        c = PartitionKey(entity="a0b1c2", period=TimePeriod(2023, 2))

        assert a == b
        assert hash(a) == hash(b)
        assert a != c
        assert len({a, b, c}) == 2

    def test_sort_key(self) -> None:
        """Test ordering by month first, then icao number."""
        keys = [
            PartitionKey(entity="b", period=TimePeriod(2023, 1)),
            PartitionKey(entity="a", period=TimePeriod(2023, 2)),
            PartitionKey(entity="a", period=TimePeriod(2023, 1)),
        ]

        assert [str(k) for k in sorted(keys, key=PartitionKey.sort_key)] == [
            "a/2023-01",
            "b/2023-01",
            "a/2023-02",
        ]
