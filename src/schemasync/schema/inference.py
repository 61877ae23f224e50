"""Schema inference from a single JSON object.

Walks an event and describes every key as a typed column:

    {"a": 1, "b": {"c": "x"}, "d": [{"e": true}]}
    -> a NUMERIC
       b STRUCT  (c STRING)
       d RECORD REPEATED  (e BOOL)

This is a one-event sampler, not a reducer over many events. Arrays
of objects are described from a single representative object built
by merging the keys of every element (first value seen per key
wins). Arrays of scalars are described positionally -- item0, item1,
... -- so two events whose arrays differ in length produce different
schemas. The comparator then reports a change and the schema is
republished; that churn is accepted behaviour.

Nested objects and arrays that yield no columns are dropped from the
parent rather than emitted as empty containers, since the store
rejects STRUCT/RECORD columns without children.
"""

from __future__ import annotations

from typing import Any, Optional

from schemasync.models.json_value import JsonKind, classify
from schemasync.models.schema import FieldMode, FieldSchema, FieldType

# JSON scalar kind -> column type. Unmapped kinds fall back to STRING.
SCALAR_TYPES: dict[JsonKind, FieldType] = {
    JsonKind.NUMBER: FieldType.NUMERIC,
    JsonKind.BIGINT: FieldType.BIGNUMERIC,
    JsonKind.STRING: FieldType.STRING,
    JsonKind.BOOLEAN: FieldType.BOOL,
}


def scalar_type(kind: JsonKind) -> FieldType:
    """Column type for a scalar kind."""
    return SCALAR_TYPES.get(kind, FieldType.STRING)


def infer_schema(data: Any) -> list[FieldSchema]:
    """Infer a schema from a JSON object.

    Output order follows the object's key order. Anything other
    than an object (None, scalars, arrays) has no columns and yields
    an empty schema.

    Args:
        data: Decoded JSON value, normally the merged event.

    Returns:
        List of FieldSchema, one per retained top-level key.
    """
    if classify(data) is not JsonKind.OBJECT:
        return []

    schema: list[FieldSchema] = []
    for key, value in data.items():
        field = _infer_field(str(key), value)
        if field is not None:
            schema.append(field)
    return schema


def _infer_field(name: str, value: Any) -> Optional[FieldSchema]:
    match classify(value):
        case JsonKind.ARRAY:
            fields = _infer_array_fields(value)
            if not fields:
                return None
            return FieldSchema(
                name=name,
                type=FieldType.RECORD,
                mode=FieldMode.REPEATED,
                fields=fields,
            )
        case JsonKind.OBJECT:
            fields = infer_schema(value)
            if not fields:
                return None
            return FieldSchema(name=name, type=FieldType.STRUCT, fields=fields)
        case kind:
            return FieldSchema(name=name, type=scalar_type(kind))


def _infer_array_fields(items: list[Any]) -> list[FieldSchema]:
    """Child columns for an array.

    Any object element switches the array to representative-object
    mode; scalar elements are then ignored. Otherwise each element
    becomes a positional item<N> column.
    """
    representative = representative_object(items)
    if representative:
        return infer_schema(representative)

    positional: list[FieldSchema] = []
    for i, item in enumerate(items):
        if classify(item) is JsonKind.OBJECT:
            continue
        positional.append(
            FieldSchema(name=f"item{i}", type=scalar_type(classify(item)))
        )
    if positional:
        return positional

    # Only empty objects (or nothing at all): describe the first element
    return infer_schema(items[0]) if items else []


def representative_object(items: list[Any]) -> dict[str, Any]:
    """Merge the keys of every object element of an array.

    The first value seen for a key is kept, except that a null is
    replaced by the first later truthy value for the same key (a later
    0, False or "" does not displace it).
    Key order is first-seen order across elements.
    """
    merged: dict[str, Any] = {}
    for item in items:
        if classify(item) is not JsonKind.OBJECT:
            continue
        for key, value in item.items():
            if key not in merged or (merged[key] is None and value):
                merged[key] = value
    return merged
