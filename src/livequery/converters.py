"""
Conversion between wire-level values and semantic Python values.

Integers and doubles are distinct on the wire but merge into Python numbers.
The reverse mapping picks ``integerValue`` for numbers without a fractional
part and ``doubleValue`` otherwise.

Example:
    >>> from livequery.converters import to_canonical, to_native
    >>> to_native({"count": 2, "ratio": 0.5})  # integerValue + doubleValue map
    >>> to_canonical(to_native([1, "a", None]))
    [1, 'a', None]
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, NoReturn, assert_never

from livequery.exceptions import UnhandledValueTypeError
from livequery.protocol import Document
from livequery.types import Canonical
from livequery.values import (
    ArrayContents,
    ArrayValue,
    BooleanValue,
    DoubleValue,
    GeoPoint,
    GeoPointValue,
    IntegerValue,
    MapContents,
    MapValue,
    NullValue,
    StringValue,
    Timestamp,
    TimestampValue,
    Value,
)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def to_canonical(value: Value) -> Any:
    """
    Convert a wire value into its semantic Python representation.

    Args:
        value: Any member of the wire value union

    Returns:
        bool, int, float, str, None, list, dict, GeoPoint or aware datetime

    Raises:
        UnhandledValueTypeError: If the value is not a union member
    """
    if isinstance(value, BooleanValue):
        return value.boolean_value
    elif isinstance(value, IntegerValue):
        return value.integer_value
    elif isinstance(value, DoubleValue):
        return value.double_value
    elif isinstance(value, StringValue):
        return value.string_value
    elif isinstance(value, NullValue):
        return None
    elif isinstance(value, ArrayValue):
        return [to_canonical(item) for item in value.array_value.values]
    elif isinstance(value, MapValue):
        return {key: to_canonical(item) for key, item in value.map_value.fields.items()}
    elif isinstance(value, GeoPointValue):
        return value.geo_point_value
    elif isinstance(value, TimestampValue):
        return value.timestamp_value.to_datetime()
    else:
        _unhandled(value)


def _unhandled(value: Any) -> NoReturn:
    # The type checker proves this unreachable for Value; at runtime a foreign
    # object is a defect in the caller.
    try:
        assert_never(value)
    except AssertionError as error:
        raise UnhandledValueTypeError(value) from error


def to_native(canonical: Canonical) -> Value:
    """
    Convert a semantic Python value into its wire representation.

    Args:
        canonical: Python value to encode

    Returns:
        The matching wire value

    Raises:
        UnhandledValueTypeError: If the Python type has no wire encoding
    """
    if canonical is None:
        return NullValue()
    if isinstance(canonical, bool):
        return BooleanValue(boolean_value=canonical)
    if isinstance(canonical, int):
        return IntegerValue(integer_value=canonical)
    if isinstance(canonical, float):
        if canonical.is_integer() and INT64_MIN <= canonical <= INT64_MAX:
            return IntegerValue(integer_value=int(canonical))
        return DoubleValue(double_value=canonical)
    if isinstance(canonical, str):
        return StringValue(string_value=canonical)
    if isinstance(canonical, GeoPoint):
        return GeoPointValue(geo_point_value=canonical)
    if isinstance(canonical, datetime):
        return TimestampValue(timestamp_value=Timestamp.from_datetime(canonical))
    if isinstance(canonical, Timestamp):
        return TimestampValue(timestamp_value=canonical)
    if isinstance(canonical, Mapping):
        return MapValue(
            map_value=MapContents(
                fields={str(key): to_native(item) for key, item in canonical.items()}
            )
        )
    if isinstance(canonical, Sequence) and not isinstance(canonical, bytes | bytearray):
        return ArrayValue(array_value=ArrayContents(values=[to_native(item) for item in canonical]))
    raise UnhandledValueTypeError(canonical)


def to_number(value: IntegerValue | DoubleValue) -> int | float:
    """Read a numeric wire value as a Python number."""
    if isinstance(value, DoubleValue):
        return value.double_value
    return value.integer_value


def to_id(name: str) -> str:
    """
    Derive a document identifier from its fully-qualified name.

    Example:
        >>> to_id("projects/p/databases/(default)/documents/users/alice")
        'alice'
    """
    return name.rsplit("/", 1)[-1]


def to_milliseconds(timestamp: Timestamp) -> int:
    """Milliseconds since the epoch for a wire timestamp."""
    return timestamp.to_milliseconds()


def document_to_dict(document: Document) -> dict[str, Any]:
    """Convert all fields of a document to semantic values."""
    return {key: to_canonical(value) for key, value in document.fields.items()}


def fields_converter(document: Document) -> dict[str, Any]:
    """
    Ready-made converter yielding a document's fields as a plain dict.

    Suitable as the ``converter`` argument of a collection subscription when
    no domain mapping is needed.
    """
    return document_to_dict(document)


def identity_converter(document: Document) -> Document:
    """Converter passing wire documents through unchanged."""
    return document


__all__ = [
    "INT64_MIN",
    "INT64_MAX",
    "to_canonical",
    "to_native",
    "to_number",
    "to_id",
    "to_milliseconds",
    "document_to_dict",
    "fields_converter",
    "identity_converter",
]
