"""JSON value classification.

Decoded JSON arrives as plain Python objects. Schema inference needs
to know which JSON variant each value is, and Python's own types do
not line up one-to-one with JSON's: bool is a subclass of int, and
integers are unbounded while the store's NUMERIC column is not.
classify() resolves those cases once so callers can dispatch on a
closed set of kinds.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

JSONValue = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]

# Integers outside this range do not fit a 64-bit NUMERIC column
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class JsonKind(str, Enum):
    """The variants a decoded JSON value can take."""
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    BIGINT = "bigint"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"
    UNKNOWN = "unknown"


def classify(value: Any) -> JsonKind:
    """Return the JSON kind of a decoded value."""
    if value is None:
        return JsonKind.NULL
    if isinstance(value, bool):
        return JsonKind.BOOLEAN
    if isinstance(value, int):
        if INT64_MIN <= value <= INT64_MAX:
            return JsonKind.NUMBER
        return JsonKind.BIGINT
    if isinstance(value, float):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, (list, tuple)):
        return JsonKind.ARRAY
    if isinstance(value, dict):
        return JsonKind.OBJECT
    return JsonKind.UNKNOWN
