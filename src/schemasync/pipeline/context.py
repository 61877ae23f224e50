"""Network context lookup.

Looks up the caller's public IP/geolocation through a configured,
unauthenticated URL and caches the answer so the lookup happens at
most about once an hour. The TTL carries up to 1000 seconds of jitter
so a fleet of collectors does not refresh in lockstep.

Capture never waits on the lookup: it merges whatever is cached and
starts at most one background lookup on a miss. A hung lookup endpoint
only leaves events without IP context.

ip-api.com answers with `status` and `query` members; those are
normalized to the `ip` key every other provider uses.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Optional

from schemasync.cache.expiring import ExpiringCache
from schemasync.config import Settings
from schemasync.pipeline.sink import BaseSink

logger = logging.getLogger("schemasync.pipeline.context")

IP_CACHE_KEY = "ip"
IP_TTL_BASE_MS = 3600 * 1000
IP_TTL_JITTER_MS = 1000 * 1000


def normalize_ip_response(url: str, data: Any) -> Any:
    """Provider-specific cleanup of an IP lookup response."""
    if not isinstance(data, dict) or "ip-api.com" not in url:
        return data
    out = dict(data)
    out.pop("status", None)
    if "query" in out and not out.get("ip"):
        out["ip"] = out.pop("query")
    return out


class ContextProvider:
    """Supplies the IP mapping merged into every event."""

    def __init__(
        self,
        settings: Settings,
        cache: ExpiringCache,
        sink: BaseSink,
        jitter: Callable[[], int] | None = None,
    ):
        self.settings = settings
        self.cache = cache
        self.sink = sink
        jitter = jitter or (lambda: random.randint(0, IP_TTL_JITTER_MS))
        self.ttl_ms = IP_TTL_BASE_MS + jitter()
        self._lookup: Optional[asyncio.Task] = None

    async def cached_ip(self) -> Optional[dict[str, Any]]:
        """Return the cached IP mapping, or None on a miss. Never looks up."""
        entry = await self.cache.get(IP_CACHE_KEY)
        if entry is None:
            return None
        return self._as_mapping(entry.unwrap())

    def refresh_in_background(self) -> None:
        """Start a refresh unless one is already running."""
        if self.lookup_running:
            return
        self._lookup = asyncio.create_task(self.refresh())

    @property
    def lookup_running(self) -> bool:
        return self._lookup is not None and not self._lookup.done()

    async def refresh(self) -> dict[str, Any]:
        """Look up the IP if the cached entry is missing or older than its TTL.

        A fresh entry is returned as-is without touching the network.
        """
        entry = await self.cache.get(IP_CACHE_KEY)
        if entry is not None and self.cache.clock() - entry.timestamp <= self.ttl_ms:
            return self._as_mapping(entry.unwrap())

        data = await self.lookup()
        if not data:
            return self._as_mapping(entry.unwrap()) if entry else {}
        entry = await self.cache.put(IP_CACHE_KEY, data, ttl_ms=self.ttl_ms)
        return self._as_mapping(entry.unwrap()) if entry else {}

    async def lookup(self) -> Any:
        """Query the configured IP URL. Empty URL or failure -> {}."""
        url = self.settings.ipurl
        if not url:
            return {}
        data = await self.sink.get_json(url)
        if data is None:
            return {}
        return normalize_ip_response(url, data)

    async def close(self) -> None:
        """Cancel a background lookup that is still waiting."""
        if self.lookup_running:
            self._lookup.cancel()
            await asyncio.gather(self._lookup, return_exceptions=True)
        self._lookup = None

    @staticmethod
    def _as_mapping(value: Any) -> dict[str, Any]:
        if isinstance(value, dict):
            return value
        if value in (None, ""):
            return {}
        return {"ip": value}
