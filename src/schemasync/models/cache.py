"""Cache entry model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """A stored value and the time it was written.

    The value is always a mapping: scalars and lists are wrapped as
    {"value": ...} before being stored.
    """
    value: dict[str, Any] = Field(
        description="Stored mapping"
    )
    timestamp: int = Field(
        description="Write time in epoch milliseconds"
    )
    wrapped: bool = Field(
        default=False,
        description="True when value is {\"value\": <scalar or list>} added by the cache"
    )

    def unwrap(self) -> Any:
        """Return the original scalar/list for wrapped entries, else the mapping."""
        if self.wrapped:
            return self.value["value"]
        return self.value
