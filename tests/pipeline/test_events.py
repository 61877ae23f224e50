"""Tests for the event capture pipeline."""

import asyncio

import pytest
from schemasync.cache.expiring import ExpiringCache
from schemasync.cache.store import MemoryStore
from schemasync.config import Settings
from schemasync.models.events import CaptureRequest
from schemasync.pipeline.context import ContextProvider
from schemasync.pipeline.events import SCHEMA_CACHE_KEY, EventPipeline, merge_context

SCHEMA_URL = "https://sink.example.com/schema"
POST_URL = "https://sink.example.com/events"
IP_URL = "https://ip.example.com/json"
WIN_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _pipeline(monkeypatch, sink, clock, schemaurl=SCHEMA_URL, posturl=POST_URL, ipurl=""):
    monkeypatch.setenv("SCHEMASYNC_SCHEMAURL", schemaurl)
    monkeypatch.setenv("SCHEMASYNC_POSTURL", posturl)
    monkeypatch.setenv("SCHEMASYNC_IPURL", ipurl)
    settings = Settings()
    cache = ExpiringCache(MemoryStore(), clock)
    context = ContextProvider(settings, cache, sink)
    return EventPipeline(settings, cache, sink, context)


def _request(payload, **context):
    context.setdefault("ip", {"ip": "203.0.113.7"})
    return CaptureRequest(payload=payload, **context)


class TestMergeContext:
    """Request fields win over host context."""

    def test_request_wins(self):
        merged = merge_context(
            {"event": "loaded", "ip": "from-request"},
            device={"serial": "X1", "event": "device"},
            user={"email": "a@example.com"},
            ip={"ip": "203.0.113.7", "city": "Oslo"},
        )
        assert merged["event"] == "loaded"
        assert merged["ip"] == "from-request"
        assert merged["serial"] == "X1"
        assert merged["email"] == "a@example.com"
        assert merged["city"] == "Oslo"

    def test_device_wins_over_user_and_ip(self):
        merged = merge_context(
            {}, device={"id": "device"}, user={"id": "user"}, ip={"id": "ip"},
        )
        assert merged["id"] == "device"

    def test_agent_derived_fields(self):
        merged = merge_context({"agent": WIN_AGENT}, device={"os": "device-os"})
        assert merged["os"] == "Windows"
        assert merged["chromeversion"] == "120.0.0.0"


class TestCapture:
    """Per-event processing."""

    @pytest.mark.asyncio
    async def test_event_is_cleaned_and_buffered(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="")

        result = await pipeline.capture(_request(
            {"event": "loaded", "empty": {}, "none": None, "tags": []},
            device={"serial": "X1"},
        ))

        assert result.accepted is True
        assert result.pending == 1
        assert pipeline.pending == [{
            "event": "loaded",
            "ip": "203.0.113.7",
            "serial": "X1",
            "timestamp": clock.now,
        }]

    @pytest.mark.asyncio
    async def test_unnamed_event_is_dropped(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock)

        result = await pipeline.capture(_request({"agent": WIN_AGENT}))

        assert result.accepted is False
        assert pipeline.pending == []
        assert fake_sink.posts == []

    @pytest.mark.asyncio
    async def test_url_is_decomposed(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="")

        await pipeline.capture(_request({
            "event": "loaded", "url": "https://example.com/page?x=1",
        }))

        url = pipeline.pending[0]["urlObject"]
        assert url["hostname"] == "example.com"
        assert url["search"] == "?x=1"

    @pytest.mark.asyncio
    async def test_ip_lookup_used_when_not_supplied(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="")
        await pipeline.cache.put("ip", {"ip": "198.51.100.1"})

        await pipeline.capture(CaptureRequest(payload={"event": "loaded"}))

        assert pipeline.pending[0]["ip"] == "198.51.100.1"

    @pytest.mark.asyncio
    async def test_hung_ip_lookup_does_not_block_capture(self, monkeypatch, fake_sink, clock):
        async def hang(url):
            fake_sink.gets.append(url)
            await asyncio.Event().wait()

        fake_sink.get_json = hang
        pipeline = _pipeline(
            monkeypatch, fake_sink, clock, schemaurl="", ipurl=IP_URL,
        )

        try:
            result = await asyncio.wait_for(
                pipeline.capture(CaptureRequest(payload={"event": "loaded"})), 1.0,
            )
            second = await asyncio.wait_for(
                pipeline.capture(CaptureRequest(payload={"event": "clicked"})), 1.0,
            )
            await asyncio.sleep(0)

            assert result.accepted is True
            assert second.pending == 2
            assert "ip" not in pipeline.pending[0]
            assert fake_sink.gets == [IP_URL]
        finally:
            await pipeline.context.close()

    @pytest.mark.asyncio
    async def test_ip_arrives_on_later_events(self, monkeypatch, fake_sink, clock):
        fake_sink.responses = {IP_URL: {"ip": "198.51.100.1"}}
        pipeline = _pipeline(
            monkeypatch, fake_sink, clock, schemaurl="", ipurl=IP_URL,
        )

        await pipeline.capture(CaptureRequest(payload={"event": "loaded"}))
        await pipeline.context._lookup
        await pipeline.capture(CaptureRequest(payload={"event": "clicked"}))

        assert "ip" not in pipeline.pending[0]
        assert pipeline.pending[1]["ip"] == "198.51.100.1"
        assert fake_sink.gets == [IP_URL]

    @pytest.mark.asyncio
    async def test_unnamed_event_starts_no_lookup(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(
            monkeypatch, fake_sink, clock, schemaurl="", ipurl=IP_URL,
        )

        await pipeline.capture(CaptureRequest(payload={"agent": WIN_AGENT}))

        assert not pipeline.context.lookup_running
        assert fake_sink.gets == []


class TestSchemaSync:
    """Schema publishing on change."""

    @pytest.mark.asyncio
    async def test_first_event_publishes(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock)

        result = await pipeline.capture(_request({"event": "loaded", "count": 1}))
        await pipeline.drain()

        assert result.schema_published is True
        assert len(fake_sink.posts) == 1
        url, schema = fake_sink.posts[0]
        assert url == SCHEMA_URL
        assert {"name": "count", "type": "NUMERIC"} in schema

        entry = await pipeline.cache.get(SCHEMA_CACHE_KEY)
        assert entry.unwrap() == schema

    @pytest.mark.asyncio
    async def test_same_shape_does_not_republish(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock)

        await pipeline.capture(_request({"event": "loaded", "count": 1}))
        second = await pipeline.capture(_request({"event": "tab activated", "count": 7}))
        await pipeline.drain()

        assert second.schema_published is False
        assert len(fake_sink.posts) == 1

    @pytest.mark.asyncio
    async def test_type_change_republishes(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock)

        await pipeline.capture(_request({"event": "loaded", "count": 1}))
        clock.advance(10)
        result = await pipeline.capture(_request({"event": "loaded", "count": "one"}))
        await pipeline.drain()

        assert result.schema_published is True
        assert len(fake_sink.posts) == 2
        entry = await pipeline.cache.get(SCHEMA_CACHE_KEY)
        assert entry.timestamp == clock.now
        assert {"name": "count", "type": "STRING"} in entry.unwrap()

    @pytest.mark.asyncio
    async def test_corrupt_baseline_is_ignored(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock)
        await pipeline.cache.put(SCHEMA_CACHE_KEY, "not a schema")

        result = await pipeline.capture(_request({"event": "loaded"}))

        assert result.schema_published is True

    @pytest.mark.asyncio
    async def test_no_schema_url_skips_sync(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="")

        result = await pipeline.capture(_request({"event": "loaded"}))

        assert result.schema_published is False
        assert await pipeline.cache.get(SCHEMA_CACHE_KEY) is None

    @pytest.mark.asyncio
    async def test_failed_push_still_buffers(self, monkeypatch, fake_sink, clock):
        fake_sink.fail = True
        pipeline = _pipeline(monkeypatch, fake_sink, clock)

        result = await pipeline.capture(_request({"event": "loaded"}))
        await pipeline.drain()

        assert result.accepted is True
        assert len(pipeline.pending) == 1


class TestFlush:
    """Buffer drain to the event sink."""

    @pytest.mark.asyncio
    async def test_flush_sends_and_clears(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="")
        await pipeline.capture(_request({"event": "a"}))
        await pipeline.capture(_request({"event": "b"}))

        assert await pipeline.flush() == 2

        assert pipeline.pending == []
        url, batch = fake_sink.posts[0]
        assert url == POST_URL
        assert [e["event"] for e in batch] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_flush_clears_even_on_failure(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="")
        await pipeline.capture(_request({"event": "a"}))
        fake_sink.fail = True

        await pipeline.flush()

        assert pipeline.pending == []

    @pytest.mark.asyncio
    async def test_no_post_url_keeps_buffer(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="", posturl="")
        await pipeline.capture(_request({"event": "a"}))

        assert await pipeline.flush() == 0

        assert len(pipeline.pending) == 1
        assert fake_sink.posts == []

    @pytest.mark.asyncio
    async def test_empty_buffer_is_not_posted(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="")

        assert await pipeline.flush() == 0
        assert fake_sink.posts == []

    @pytest.mark.asyncio
    async def test_events_appended_during_flush_survive(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock, schemaurl="")
        release = asyncio.Event()

        async def slow_post(url, data):
            await release.wait()
            fake_sink.posts.append((url, data))
            return True

        fake_sink.post_json = slow_post
        await pipeline.capture(_request({"event": "before"}))

        flushing = asyncio.create_task(pipeline.flush())
        await asyncio.sleep(0)
        await pipeline.capture(_request({"event": "during"}))
        release.set()
        await flushing

        assert [e["event"] for e in fake_sink.posts[0][1]] == ["before"]
        assert [e["event"] for e in pipeline.pending] == ["during"]


class TestReset:
    """Install-time reset."""

    @pytest.mark.asyncio
    async def test_reset_forgets_schema(self, monkeypatch, fake_sink, clock):
        pipeline = _pipeline(monkeypatch, fake_sink, clock)
        await pipeline.capture(_request({"event": "loaded"}))

        await pipeline.reset()

        assert await pipeline.cache.get(SCHEMA_CACHE_KEY) is None
        result = await pipeline.capture(_request({"event": "loaded"}))
        assert result.schema_published is True
