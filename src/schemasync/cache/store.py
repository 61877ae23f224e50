"""Durable key/value store boundary.

The expiring cache never keeps state in process; it reads and writes
through one of these stores on every call. Values are serialized JSON
text -- parsing is the cache's job, so a corrupted entry surfaces there
as a miss rather than as a store error.

Two implementations:
- MemoryStore: a dict, for tests and single-process deployments
- SqliteStore: a single `kv` table in a local SQLite file
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

logger = logging.getLogger("schemasync.cache.store")


class KeyValueStore(ABC):
    """Async key/value contract used by the expiring cache."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored text for key, or None."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store text under key, replacing any previous value."""
        ...

    @abstractmethod
    async def remove(self, keys: Iterable[str]) -> None:
        """Delete the given keys. Missing keys are ignored."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Delete everything."""
        ...


class MemoryStore(KeyValueStore):
    """Process-local store backed by a dict."""

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()


class SqliteStore(KeyValueStore):
    """Store backed by a SQLite file.

    Opens a connection per operation and runs it in a worker thread
    so the event loop never waits on disk.
    """

    def __init__(self, path: str):
        self.path = path
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.commit()
        logger.info("SQLite store ready at %s", self.path)

    def _get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def _set(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) "
                "VALUES (?, ?, CURRENT_TIMESTAMP)",
                (key, value),
            )
            conn.commit()

    def _remove(self, keys: list[str]) -> None:
        with self._connect() as conn:
            conn.executemany(
                "DELETE FROM kv WHERE key = ?", [(k,) for k in keys]
            )
            conn.commit()

    def _clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv")
            conn.commit()

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def remove(self, keys: Iterable[str]) -> None:
        await asyncio.to_thread(self._remove, list(keys))

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)


def build_store(kind: str, path: str = "") -> KeyValueStore:
    """Create the store named by configuration."""
    if kind == "sqlite":
        return SqliteStore(path)
    if kind != "memory":
        logger.warning("Unknown store type '%s', using memory", kind)
    return MemoryStore()
