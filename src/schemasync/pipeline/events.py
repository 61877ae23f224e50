"""Event capture pipeline.

This module is the conductor of the collector. Each captured event
goes through the same sequence:

1. derive OS / browser version from the user agent and merge context
2. drop events that carry no `event` name
3. decompose the page URL
4. infer the event's schema, compare it with the last published one,
   and publish + cache it when it changed
5. strip empty containers, stamp a timestamp, append to the buffer

A periodic flush drains the buffer to the event sink.

All network work is best-effort. Schema pushes and IP lookups run as
background tasks so capture never waits on a sink, and no failure in
steps 1-4 stops the event from being buffered.

The buffer is owned here and only mutated in synchronous statements.
flush() swaps it for a fresh list before its first await, so events
captured while a flush is in flight land in the new buffer and are
never dropped by the drain.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from schemasync.cache.expiring import ExpiringCache
from schemasync.config import Settings
from schemasync.models.events import CaptureRequest, CaptureResult
from schemasync.models.schema import schema_from_json, schema_to_json
from schemasync.pipeline.cleaning import describe_agent, strip_empty, url_object
from schemasync.pipeline.context import ContextProvider
from schemasync.pipeline.sink import BaseSink
from schemasync.schema.compare import schema_changed
from schemasync.schema.inference import infer_schema

logger = logging.getLogger("schemasync.pipeline.events")

SCHEMA_CACHE_KEY = "schema"
SCHEMA_TTL_MS = 600 * 1000


def merge_context(
    request: dict[str, Any],
    device: Optional[dict[str, Any]] = None,
    user: Optional[dict[str, Any]] = None,
    ip: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Combine the client request with host context.

    Context fills in around the request: on a key collision the
    request's own value wins. Agent-derived `os` and `chromeversion`
    are part of the request, so they win as well.
    """
    merged: dict[str, Any] = {}
    for source in (user, ip, device):
        if source:
            merged.update(source)
    merged.update(describe_agent(request))
    return merged


class EventPipeline:
    """Owns the pending-events buffer and drives capture and flush."""

    def __init__(
        self,
        settings: Settings,
        cache: ExpiringCache,
        sink: BaseSink,
        context: ContextProvider,
    ):
        self.settings = settings
        self.cache = cache
        self.sink = sink
        self.context = context
        self._pending: list[dict[str, Any]] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> list[dict[str, Any]]:
        """Snapshot of buffered events."""
        return list(self._pending)

    async def capture(self, request: CaptureRequest) -> CaptureResult:
        """Run one event through the pipeline."""
        ip = request.ip
        if ip is None:
            ip = await self.context.cached_ip()

        event = merge_context(request.payload, request.device, request.user, ip)
        logger.debug("Merged event: %s", event)

        if not event.get("event"):
            logger.debug("Event has no name, not buffering")
            return CaptureResult(accepted=False, pending=len(self._pending))

        if request.ip is None and ip is None:
            # IP context arrives with later events once the lookup lands
            self.context.refresh_in_background()

        if isinstance(event.get("url"), str):
            parts = url_object(event["url"])
            if parts:
                event["urlObject"] = parts

        published = False
        if self.settings.schemaurl:
            published = await self.sync_schema(event)

        return CaptureResult(
            accepted=True,
            schema_published=published,
            pending=self.append(event),
        )

    async def sync_schema(self, event: dict[str, Any]) -> bool:
        """Publish the event's schema if it differs from the stored one.

        Returns True when a change was detected. The push itself runs
        in the background.
        """
        baseline = None
        entry = await self.cache.get(SCHEMA_CACHE_KEY)
        if entry is not None:
            baseline = schema_from_json(entry.unwrap())

        schema = infer_schema(event)
        if not schema_changed(schema, baseline):
            return False

        payload = schema_to_json(schema)
        await self.cache.put(
            SCHEMA_CACHE_KEY, payload, ttl_ms=SCHEMA_TTL_MS, override=True
        )
        logger.info(
            "Schema changed (%d top-level fields), publishing", len(schema)
        )
        self._spawn(self.sink.post_json(self.settings.schemaurl, payload))
        return True

    def append(self, event: dict[str, Any]) -> int:
        """Clean, timestamp and buffer an event. Returns the buffer size."""
        cleaned = strip_empty(event)
        cleaned["timestamp"] = self.cache.clock()
        self._pending.append(cleaned)
        return len(self._pending)

    async def flush(self) -> int:
        """Send every buffered event to the event sink.

        No-op when no sink is configured (the buffer keeps growing).
        Otherwise the buffer is emptied whether or not the POST
        succeeds. Returns the number of events handed to the sink.
        """
        url = self.settings.posturl
        if not url:
            logger.debug("No event sink, %d events held", len(self._pending))
            return 0

        batch, self._pending = self._pending, []
        if not batch:
            return 0

        await self.sink.post_json(url, batch)
        logger.info("Flushed %d events", len(batch))
        return len(batch)

    async def reset(self) -> None:
        """Forget cached schema and context, as on a fresh install."""
        await self.cache.clear()
        logger.info("Cache cleared")

    async def drain(self) -> None:
        """Wait for background schema pushes to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
