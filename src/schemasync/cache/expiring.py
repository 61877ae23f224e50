"""Expiring key/value cache.

Stores one timestamped entry per key in a KeyValueStore and decides,
on each write attempt, whether the stored entry is still fresh enough
to keep. Entries never expire on their own -- expiration is evaluated
lazily when a caller next tries to write the same key.

Two callers rely on this:
- the context provider, to avoid repeating the IP lookup
- the event pipeline, to hold the last published schema (written
  with override so a detected change always replaces it)

Store failures and unparsable entries never propagate. A failed or
corrupt read behaves like a miss; a failed write still hands back the
entry the caller asked to store.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from schemasync.cache.store import KeyValueStore
from schemasync.models.cache import CacheEntry

logger = logging.getLogger("schemasync.cache.expiring")

DEFAULT_TTL_MS = 6 * 60 * 60 * 1000


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ExpiringCache:
    """TTL cache with override writes over an external store.

    Args:
        store: Persistence layer. The cache keeps nothing in memory.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.clock = clock

    async def get(self, key: str) -> Optional[CacheEntry]:
        """Read the entry for key without writing anything."""
        return await self.put(key)

    async def put(
        self,
        key: str,
        value: Any = None,
        ttl_ms: int = DEFAULT_TTL_MS,
        override: bool = False,
    ) -> Optional[CacheEntry]:
        """Read, and possibly replace, the entry for key.

        Without a value this is a pure read. With a value, the entry
        is written when there is none yet, when override is set, or
        when the stored entry is older than ttl_ms. In every other
        case the stored entry is returned unchanged.
        """
        stored = await self._read(key)

        if stored is None and value is None:
            return None

        if value is not None:
            is_wrapped = not isinstance(value, dict)
            wrapped = {"value": value} if is_wrapped else value

            if override or stored is None:
                return await self._write(key, wrapped, is_wrapped)

            age = self.clock() - stored.timestamp
            if age > ttl_ms:
                logger.debug(
                    "Cache entry '%s' expired (age %d ms > ttl %d ms)",
                    key, age, ttl_ms,
                )
                return await self._write(key, wrapped, is_wrapped)

        return stored

    async def remove(self, keys: Iterable[str]) -> None:
        """Delete entries. Failures are logged and swallowed."""
        try:
            await self.store.remove(keys)
        except Exception as e:
            logger.debug("Cache remove failed: %s", e)

    async def clear(self) -> None:
        """Delete every entry. Failures are logged and swallowed."""
        try:
            await self.store.clear()
        except Exception as e:
            logger.debug("Cache clear failed: %s", e)

    async def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = await self.store.get(key)
        except Exception as e:
            logger.debug("Cache read failed for '%s': %s", key, e)
            return None

        if not raw:
            return None

        try:
            return CacheEntry.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.debug("Discarding malformed cache entry '%s': %s", key, e)
            return None

    async def _write(
        self, key: str, value: dict[str, Any], wrapped: bool
    ) -> CacheEntry:
        entry = CacheEntry(value=value, timestamp=self.clock(), wrapped=wrapped)
        try:
            await self.store.set(key, entry.model_dump_json())
        except Exception as e:
            logger.debug("Cache write failed for '%s': %s", key, e)
        return entry
