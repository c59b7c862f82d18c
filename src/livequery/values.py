"""
Wire-level typed values.

Firestore encodes every field value as a tagged union. This module models
that union with pydantic so values can be validated from decoded RPC
messages (``{"value_type": "integerValue", "integer_value": "5"}``) as well
as from REST JSON (``{"integerValue": "5"}``), where the tag is implied by
the single key that is present.

This module provides:
- Timestamp: Wire timestamp (seconds + nanos)
- GeoPoint: Latitude/longitude pair
- BooleanValue, IntegerValue, DoubleValue, StringValue, NullValue,
  ArrayValue, MapValue, GeoPointValue, TimestampValue: union members
- Value: The discriminated union of all members
- ValueAdapter: TypeAdapter for validating raw values
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

NANOSECONDS_IN_MICROSECOND = 1_000
NANOSECONDS_IN_MILLISECOND = 1_000_000
MILLISECONDS_IN_SECOND = 1_000

_FRACTION = re.compile(r"\.(\d+)")


class WireModel(BaseModel):
    """Base for wire models: immutable, accepts snake_case and camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Timestamp(WireModel):
    """
    A point in time with nanosecond precision, as sent by the server.

    Seconds may arrive as strings (int64 JSON encoding); REST JSON sends an
    RFC 3339 string instead of the seconds/nanos pair.
    """

    seconds: int = 0
    nanos: int = Field(default=0, ge=0, lt=1_000_000_000)

    @model_validator(mode="before")
    @classmethod
    def _from_rfc3339(cls, value: Any) -> Any:
        # REST JSON encodes timestamps as RFC 3339 strings
        if isinstance(value, str):
            return cls._fields_from_rfc3339(value)
        if isinstance(value, datetime):
            return cls._fields_from_datetime(value)
        return value

    @classmethod
    def _fields_from_rfc3339(cls, value: str) -> dict[str, int]:
        # datetime keeps microseconds only; the fraction carries up to nanoseconds
        nanos = 0
        fraction = _FRACTION.search(value)
        if fraction is not None:
            digits = fraction.group(1)[:9]
            nanos = int(digits.ljust(9, "0"))
            value = value[: fraction.start()] + value[fraction.end() :]
        fields = cls._fields_from_datetime(datetime.fromisoformat(value))
        return {"seconds": fields["seconds"], "nanos": nanos}

    @staticmethod
    def _fields_from_datetime(value: datetime) -> dict[str, int]:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        seconds = int(value.timestamp())
        if seconds > value.timestamp():
            seconds -= 1
        return {"seconds": seconds, "nanos": value.microsecond * NANOSECONDS_IN_MICROSECOND}

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        """Build a timestamp from a datetime (naive values are taken as UTC)."""
        return cls(**cls._fields_from_datetime(value))

    @classmethod
    def now(cls) -> Timestamp:
        """Current wall-clock time."""
        return cls.from_datetime(datetime.now(UTC))

    def to_datetime(self) -> datetime:
        """Convert to an aware UTC datetime (truncated to microseconds)."""
        return datetime.fromtimestamp(self.seconds, UTC).replace(
            microsecond=self.nanos // NANOSECONDS_IN_MICROSECOND
        )

    def to_milliseconds(self) -> int:
        """Milliseconds since the epoch, rounding the nanosecond part."""
        return self.seconds * MILLISECONDS_IN_SECOND + round(
            self.nanos / NANOSECONDS_IN_MILLISECOND
        )

    def sort_key(self) -> tuple[int, int]:
        return (self.seconds, self.nanos)


class GeoPoint(WireModel):
    """A latitude/longitude pair."""

    latitude: float
    longitude: float


class BooleanValue(WireModel):
    value_type: Literal["booleanValue"] = "booleanValue"
    boolean_value: bool


class IntegerValue(WireModel):
    value_type: Literal["integerValue"] = "integerValue"
    integer_value: int

    @field_serializer("integer_value")
    def _serialize_integer(self, value: int) -> str:
        # int64 values travel as decimal strings
        return str(value)


class DoubleValue(WireModel):
    value_type: Literal["doubleValue"] = "doubleValue"
    double_value: float


class StringValue(WireModel):
    value_type: Literal["stringValue"] = "stringValue"
    string_value: str


class NullValue(WireModel):
    value_type: Literal["nullValue"] = "nullValue"
    null_value: Literal["NULL_VALUE"] | None = "NULL_VALUE"


class GeoPointValue(WireModel):
    value_type: Literal["geoPointValue"] = "geoPointValue"
    geo_point_value: GeoPoint


class TimestampValue(WireModel):
    value_type: Literal["timestampValue"] = "timestampValue"
    timestamp_value: Timestamp


class ArrayContents(WireModel):
    values: list[Value] = Field(default_factory=list)


class ArrayValue(WireModel):
    value_type: Literal["arrayValue"] = "arrayValue"
    array_value: ArrayContents = Field(default_factory=ArrayContents)


class MapContents(WireModel):
    fields: dict[str, Value] = Field(default_factory=dict)


class MapValue(WireModel):
    value_type: Literal["mapValue"] = "mapValue"
    map_value: MapContents = Field(default_factory=MapContents)


VALUE_TAGS: tuple[str, ...] = (
    "booleanValue",
    "integerValue",
    "doubleValue",
    "stringValue",
    "nullValue",
    "arrayValue",
    "mapValue",
    "geoPointValue",
    "timestampValue",
)

_SNAKE_TAGS = {
    "boolean_value": "booleanValue",
    "integer_value": "integerValue",
    "double_value": "doubleValue",
    "string_value": "stringValue",
    "null_value": "nullValue",
    "array_value": "arrayValue",
    "map_value": "mapValue",
    "geo_point_value": "geoPointValue",
    "timestamp_value": "timestampValue",
}


def _value_tag(value: Any) -> str | None:
    """
    Determine the union tag of a raw or already-validated value.

    Explicit ``value_type``/``valueType`` keys win; otherwise the tag is
    inferred from the single payload key present (REST JSON encoding).
    """
    if isinstance(value, WireModel):
        return getattr(value, "value_type", None)
    if not isinstance(value, dict):
        return None

    tag = value.get("value_type", value.get("valueType"))
    if tag is not None:
        return str(tag)

    for key in value:
        if key in VALUE_TAGS:
            return str(key)
        if key in _SNAKE_TAGS:
            return _SNAKE_TAGS[key]
    return None


Value = Annotated[
    Annotated[BooleanValue, Tag("booleanValue")]
    | Annotated[IntegerValue, Tag("integerValue")]
    | Annotated[DoubleValue, Tag("doubleValue")]
    | Annotated[StringValue, Tag("stringValue")]
    | Annotated[NullValue, Tag("nullValue")]
    | Annotated[ArrayValue, Tag("arrayValue")]
    | Annotated[MapValue, Tag("mapValue")]
    | Annotated[GeoPointValue, Tag("geoPointValue")]
    | Annotated[TimestampValue, Tag("timestampValue")],
    Discriminator(_value_tag),
]
"""Any wire-level value."""

ArrayContents.model_rebuild()
MapContents.model_rebuild()
ArrayValue.model_rebuild()
MapValue.model_rebuild()

ValueAdapter: TypeAdapter[Value] = TypeAdapter(Value)


__all__ = [
    "WireModel",
    "Timestamp",
    "GeoPoint",
    "BooleanValue",
    "IntegerValue",
    "DoubleValue",
    "StringValue",
    "NullValue",
    "ArrayContents",
    "ArrayValue",
    "MapContents",
    "MapValue",
    "GeoPointValue",
    "TimestampValue",
    "Value",
    "ValueAdapter",
    "VALUE_TAGS",
]
