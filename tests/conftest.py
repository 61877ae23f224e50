"""Pytest configuration for schemasync test suite."""

import os
from typing import Any, Optional

import pytest

# Ensure test environment variables are set before any imports
os.environ.setdefault("SCHEMASYNC_LOG_LEVEL", "warning")
os.environ.setdefault("SCHEMASYNC_STORE", "memory")


class FakeSink:
    """Records outbound calls instead of making them."""

    def __init__(self, responses: Optional[dict[str, Any]] = None, fail: bool = False):
        self.posts: list[tuple[str, Any]] = []
        self.gets: list[str] = []
        self.responses = responses or {}
        self.fail = fail

    async def post_json(self, url: str, data: Any) -> bool:
        if not url or not data:
            return False
        self.posts.append((url, data))
        return not self.fail

    async def get_json(self, url: str) -> Optional[Any]:
        self.gets.append(url)
        if self.fail:
            return None
        return self.responses.get(url)


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def fake_sink():
    return FakeSink()


@pytest.fixture
def clock():
    return FakeClock()
