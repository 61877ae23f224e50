"""Table schema data model.

The schema is the contract between the collector and the columnar
store. It is declared ahead of data load, so every field the store
will see must be described here first: a name, a column type, and
for nested columns the child fields.

Field descriptors serialize to the shape the store's schema API
accepts -- `mode` and `fields` are left out entirely when they do not
apply, never emitted as nulls.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    """Column types understood by the analytical store."""
    STRING = "STRING"
    NUMERIC = "NUMERIC"
    BIGNUMERIC = "BIGNUMERIC"
    BOOL = "BOOL"
    DATE = "DATE"
    DATETIME = "DATETIME"
    STRUCT = "STRUCT"
    RECORD = "RECORD"


class FieldMode(str, Enum):
    """Column modes. Only arrays carry a mode."""
    REPEATED = "REPEATED"


class FieldSchema(BaseModel):
    """One column of a table schema.

    STRUCT columns describe a nested object. RECORD columns with
    mode REPEATED describe an array; their child fields come either
    from the merged keys of the array's objects or from positional
    `item<N>` names when the array holds scalars.
    """
    name: str = Field(
        description="Source key this column was derived from"
    )
    type: FieldType = Field(
        description="Column type"
    )
    mode: Optional[FieldMode] = Field(
        default=None,
        description="REPEATED for arrays, absent otherwise"
    )
    fields: Optional[list[FieldSchema]] = Field(
        default=None,
        description="Child columns for STRUCT and RECORD types"
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the store's wire shape (no null members)."""
        return self.model_dump(mode="json", exclude_none=True)


def schema_to_json(schema: list[FieldSchema]) -> list[dict[str, Any]]:
    """Serialize a whole schema for publishing or caching."""
    return [f.to_dict() for f in schema]


def schema_from_json(raw: Any) -> Optional[list[FieldSchema]]:
    """Rebuild a schema from cached JSON.

    Returns None when the data is not a list of field descriptors,
    which callers treat the same as having no stored schema.
    """
    if not isinstance(raw, list):
        return None
    try:
        return [FieldSchema.model_validate(item) for item in raw]
    except ValueError:
        return None
