"""Schema change detection.

Decides whether a freshly inferred schema needs to be published
before its event is loaded. The answer is all-or-nothing: there is no
field-level diff, a change means the whole candidate is pushed and
becomes the new baseline.

Comparison is driven by the candidate. Columns that exist only in the
baseline are never looked at, so dropping a key from an event never
triggers a push.

Known quirk: for STRUCT columns the nested comparison result
replaces the running flag instead of being OR-ed into it. The last
STRUCT column in the candidate therefore decides the outcome for
every column before it. Tests pin this ordering behaviour.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Union

from schemasync.models.schema import FieldSchema, FieldType

SchemaLike = Sequence[Union[FieldSchema, dict[str, Any]]]


def _name(field: Union[FieldSchema, dict[str, Any]]) -> Any:
    if isinstance(field, FieldSchema):
        return field.name
    return field.get("name")


def _type(field: Union[FieldSchema, dict[str, Any]]) -> Any:
    if isinstance(field, FieldSchema):
        return field.type.value
    value = field.get("type")
    return value.value if isinstance(value, FieldType) else value


def _children(field: Union[FieldSchema, dict[str, Any]]) -> Any:
    if isinstance(field, FieldSchema):
        return field.fields
    return field.get("fields")


def schema_changed(
    candidate: Optional[SchemaLike],
    baseline: Optional[SchemaLike],
) -> bool:
    """Report whether candidate differs from the stored baseline.

    Either side may hold FieldSchema models or the plain dicts read
    back from the cache.

    Args:
        candidate: Schema inferred from the current event.
        baseline: Last published schema, or None when nothing has
            been published yet.

    Returns:
        True when the candidate must be published.
    """
    if not baseline:
        return True

    by_name = {_name(f): f for f in reversed(baseline)}
    changed = False

    for field in candidate or []:
        saved = by_name.get(_name(field))
        if saved is None:
            changed = True
        elif _type(saved) != _type(field):
            changed = True

        if _type(field) == FieldType.STRUCT.value:
            if saved is None:
                changed = True
            else:
                changed = schema_changed(_children(field), _children(saved))

    return changed
