"""schemasync application entrypoint."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from schemasync import __version__
from schemasync.cache.expiring import ExpiringCache
from schemasync.cache.store import build_store
from schemasync.config import Settings
from schemasync.models.events import CaptureRequest, CaptureResult
from schemasync.pipeline.context import ContextProvider
from schemasync.pipeline.events import EventPipeline
from schemasync.pipeline.scheduler import Scheduler
from schemasync.pipeline.sink import BaseSink, HttpSink
from schemasync.utils.logging import configure_logging

logger = logging.getLogger("schemasync")


def create_app(
    settings: Optional[Settings] = None,
    sink: Optional[BaseSink] = None,
) -> FastAPI:
    """Wire settings, cache, sinks and pipeline into an API app."""
    settings = settings or Settings()
    configure_logging(settings.log_level, settings.debug)

    cache = ExpiringCache(build_store(settings.store, settings.store_path))
    sink = sink or HttpSink()
    context = ContextProvider(settings, cache, sink)
    pipeline = EventPipeline(settings, cache, sink, context)
    scheduler = Scheduler(pipeline, context, settings.period, settings.frequency)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("schemasync v%s starting", __version__)
        logger.info("Configuration: %s", settings.summary())
        scheduler.start()
        yield
        await scheduler.stop(final_flush=True)
        if isinstance(sink, HttpSink):
            sink.close()

    app = FastAPI(
        lifespan=lifespan,
        title="schemasync",
        description="Event collector with schema inference for columnar stores",
        version=settings.version,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.scheduler = scheduler

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "version": settings.version,
            "pending": len(pipeline.pending),
            "scheduler": scheduler.running,
        }

    @app.post("/events", response_model=CaptureResult)
    async def capture(request: CaptureRequest):
        return await pipeline.capture(request)

    @app.post("/flush")
    async def flush():
        return {"flushed": await pipeline.flush()}

    @app.post("/activity")
    async def activity():
        if not settings.tabactivity or not settings.ipurl:
            return {"refreshed": False}
        context.refresh_in_background()
        return {"refreshed": True}

    @app.post("/reset")
    async def reset():
        await pipeline.reset()
        return {"reset": True}

    return app
