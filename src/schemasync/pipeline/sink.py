"""Outbound HTTP sinks.

The collector talks to three endpoints, all best-effort: the schema
sink and the event sink receive JSON arrays by POST, and the IP
lookup endpoint is read by GET. Every call is attempted exactly once.
Failures are logged on the debug channel and reported to the caller
as a falsy result -- nothing here raises.

`requests` is blocking, so calls run in a worker thread. A slow or
hung endpoint delays only the task that made the call.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

logger = logging.getLogger("schemasync.pipeline.sink")


class BaseSink(ABC):
    """Transport contract used by the pipeline and context provider."""

    @abstractmethod
    async def post_json(self, url: str, data: Any) -> bool:
        """POST data as JSON. Returns True when a response was received."""
        ...

    @abstractmethod
    async def get_json(self, url: str) -> Optional[Any]:
        """GET url and decode a JSON body. Returns None on any failure."""
        ...


class HttpSink(BaseSink):
    """Sink backed by a shared requests.Session."""

    def __init__(self, session: Optional[requests.Session] = None):
        self._session = session or requests.Session()
        self._posts = 0
        self._errors = 0

    async def post_json(self, url: str, data: Any) -> bool:
        if not url or not data:
            return False
        try:
            resp = await asyncio.to_thread(self._session.post, url, json=data)
            self._posts += 1
            logger.debug(
                "POST %s -> %s (%d items)",
                url, resp.status_code, len(data) if isinstance(data, list) else 1,
            )
            return True
        except requests.RequestException as e:
            self._record_error(f"POST {url} failed: {e}")
            return False

    async def get_json(self, url: str) -> Optional[Any]:
        if not url:
            return None
        try:
            resp = await asyncio.to_thread(self._session.get, url)
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            self._record_error(f"GET {url} failed: {e}")
            return None

    def close(self) -> None:
        self._session.close()

    @property
    def stats(self) -> dict[str, int]:
        return {"posts": self._posts, "errors": self._errors}

    def _record_error(self, msg: str) -> None:
        self._errors += 1
        logger.debug("Sink error: %s", msg)
