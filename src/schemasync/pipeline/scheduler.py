"""Periodic flush and context refresh.

Two independent asyncio loops, both starting after a one-minute
delay: one flushes the pending buffer every `period` minutes, the
other checks the IP context every `frequency` minutes (a lookup only
happens once the cached entry has outlived its TTL). A failing tick
is logged and the loop carries on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from schemasync.pipeline.context import ContextProvider
from schemasync.pipeline.events import EventPipeline

logger = logging.getLogger("schemasync.pipeline.scheduler")

INITIAL_DELAY_SECONDS = 60.0


class Scheduler:
    """Runs the periodic jobs of a pipeline."""

    def __init__(
        self,
        pipeline: EventPipeline,
        context: ContextProvider,
        period_minutes: float,
        frequency_minutes: float,
        initial_delay: float = INITIAL_DELAY_SECONDS,
    ):
        self.pipeline = pipeline
        self.context = context
        self.period = period_minutes * 60.0
        self.frequency = frequency_minutes * 60.0
        self.initial_delay = initial_delay
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        """Start both loops. Calling twice is a no-op."""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(
                self._every(self.period, self.pipeline.flush, "flush")
            ),
            asyncio.create_task(
                self._every(self.frequency, self.context.refresh, "context refresh")
            ),
        ]
        logger.info(
            "Scheduler started: flush every %.1fs, context every %.1fs",
            self.period, self.frequency,
        )

    async def stop(self, final_flush: bool = True) -> None:
        """Cancel the loops and optionally flush what is left."""
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if final_flush:
            await self.pipeline.flush()
        await self.pipeline.drain()
        await self.context.close()
        logger.info("Scheduler stopped")

    async def _every(
        self,
        interval: float,
        job: Callable[[], Awaitable[object]],
        name: str,
    ) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await job()
            except Exception as e:
                logger.warning("Scheduled %s failed: %s", name, e)
            await asyncio.sleep(interval)
