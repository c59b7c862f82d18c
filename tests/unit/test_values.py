"""
Unit tests for wire values.

Tests for:
- Timestamp conversions
- Value union validation from RPC-style and REST JSON encodings
- Serialization with camelCase aliases
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from livequery.values import (
    ArrayValue,
    BooleanValue,
    DoubleValue,
    GeoPoint,
    GeoPointValue,
    IntegerValue,
    MapValue,
    NullValue,
    StringValue,
    Timestamp,
    TimestampValue,
    ValueAdapter,
)


class TestTimestamp:
    """Tests for Timestamp."""

    def test_to_datetime_truncates_to_microseconds(self):
        timestamp = Timestamp(seconds=1_700_000_000, nanos=123_456_789)
        assert timestamp.to_datetime() == datetime(2023, 11, 14, 22, 13, 20, 123_456, tzinfo=UTC)

    def test_from_datetime(self):
        value = datetime(2023, 11, 14, 22, 13, 20, 500_000, tzinfo=UTC)
        assert Timestamp.from_datetime(value) == Timestamp(seconds=1_700_000_000, nanos=500_000_000)

    def test_naive_datetime_is_utc(self):
        naive = datetime(2023, 11, 14, 22, 13, 20)
        assert Timestamp.from_datetime(naive).seconds == 1_700_000_000

    def test_to_milliseconds_rounds(self):
        assert Timestamp(seconds=1, nanos=1_500_000).to_milliseconds() == 1_002
        assert Timestamp(seconds=1, nanos=1_400_000).to_milliseconds() == 1_001

    def test_seconds_as_string(self):
        assert Timestamp.model_validate({"seconds": "12", "nanos": 3}) == Timestamp(seconds=12, nanos=3)

    def test_rfc3339_string(self):
        timestamp = Timestamp.model_validate("2023-11-14T22:13:20.250Z")
        assert timestamp == Timestamp(seconds=1_700_000_000, nanos=250_000_000)

    def test_rfc3339_keeps_nanoseconds(self):
        timestamp = Timestamp.model_validate("2023-11-14T22:13:20.123456789+00:00")
        assert timestamp == Timestamp(seconds=1_700_000_000, nanos=123_456_789)

    def test_nanos_range_validated(self):
        with pytest.raises(ValidationError):
            Timestamp(seconds=0, nanos=1_000_000_000)

    def test_sort_key_orders(self):
        earlier = Timestamp(seconds=1, nanos=999)
        later = Timestamp(seconds=2)
        assert earlier.sort_key() < later.sort_key()


class TestValueUnion:
    """Tests for discriminated union validation."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ({"booleanValue": True}, BooleanValue(boolean_value=True)),
            ({"integerValue": "42"}, IntegerValue(integer_value=42)),
            ({"doubleValue": 1.5}, DoubleValue(double_value=1.5)),
            ({"stringValue": "x"}, StringValue(string_value="x")),
            ({"nullValue": None}, NullValue(null_value=None)),
            (
                {"geoPointValue": {"latitude": 1.0, "longitude": 2.0}},
                GeoPointValue(geo_point_value=GeoPoint(latitude=1.0, longitude=2.0)),
            ),
            (
                {"timestampValue": "2023-11-14T22:13:20Z"},
                TimestampValue(timestamp_value=Timestamp(seconds=1_700_000_000)),
            ),
        ],
    )
    def test_rest_json_encoding(self, raw, expected):
        """The tag is inferred from the single payload key."""
        assert ValueAdapter.validate_python(raw) == expected

    def test_explicit_tag(self):
        value = ValueAdapter.validate_python({"value_type": "stringValue", "string_value": "x"})
        assert value == StringValue(string_value="x")

    def test_snake_case_key(self):
        assert ValueAdapter.validate_python({"integer_value": 5}) == IntegerValue(integer_value=5)

    def test_nested_values(self):
        raw = {
            "mapValue": {
                "fields": {
                    "tags": {"arrayValue": {"values": [{"stringValue": "a"}, {"integerValue": "1"}]}},
                }
            }
        }

        value = ValueAdapter.validate_python(raw)

        assert isinstance(value, MapValue)
        tags = value.map_value.fields["tags"]
        assert isinstance(tags, ArrayValue)
        assert tags.array_value.values == [
            StringValue(string_value="a"),
            IntegerValue(integer_value=1),
        ]

    def test_empty_array(self):
        value = ValueAdapter.validate_python({"arrayValue": {}})
        assert value == ArrayValue()

    def test_unknown_tag_rejected(self):
        with pytest.raises(ValidationError):
            ValueAdapter.validate_python({"bytesValue": "AA=="})

    def test_values_are_frozen(self):
        value = StringValue(string_value="x")
        with pytest.raises(ValidationError):
            value.string_value = "y"  # type: ignore[misc]


class TestSerialization:
    """Tests for wire serialization."""

    def test_integer_serialized_as_string(self):
        dumped = IntegerValue(integer_value=7).model_dump(by_alias=True)
        assert dumped == {"valueType": "integerValue", "integerValue": "7"}

    def test_round_trip_through_json(self):
        value = MapValue.model_validate(
            {"mapValue": {"fields": {"n": {"integerValue": "3"}}}}
        )
        assert ValueAdapter.validate_json(ValueAdapter.dump_json(value, by_alias=True)) == value
