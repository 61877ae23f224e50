"""Incoming event envelope.

Instrumentation hands the collector a raw event plus whatever host
context it was able to gather (device attributes, signed-in user,
network/geolocation lookup). The payload is freeform JSON; the
context mappings are merged into it before schema inference so that
the published schema covers every column that will be loaded.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class CaptureRequest(BaseModel):
    """Body of a capture call.

    `payload` is the client event exactly as produced. It is expected
    to carry an `event` name; events without one are not buffered.
    """
    payload: dict[str, Any] = Field(
        description="Raw client event (agent, url, event name, custom fields)"
    )
    device: dict[str, Any] = Field(
        default_factory=dict,
        description="Device attributes reported by the host"
    )
    user: dict[str, Any] = Field(
        default_factory=dict,
        description="Signed-in user profile"
    )
    ip: Optional[dict[str, Any]] = Field(
        default=None,
        description="IP/geolocation mapping; looked up by the collector when absent"
    )


class CaptureResult(BaseModel):
    """What happened to a single captured event."""
    accepted: bool = Field(
        description="Whether the event was appended to the pending buffer"
    )
    schema_published: bool = Field(
        default=False,
        description="Whether a schema change was detected and pushed"
    )
    pending: int = Field(
        default=0,
        description="Buffer size after this capture"
    )
