"""
Tests for SSE encoding of relay events.
"""

import asyncio
import json

import pytest

from chat_relay.api.models import RequestContext
from chat_relay.api.response_builders import event_to_wire, sse_frame, stream_sse_events
from chat_relay.domain.entities import (
    AggregateStats,
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    RouterDecision,
    RouterEvent,
    StatsEvent,
    SummaryEvent,
    UsageStats,
)

from tests.helpers import collect

CTX = RequestContext(request_id="req-1", client_ip="127.0.0.1", user_agent="pytest")


class TestEventToWire:
    def test_content(self):
        assert event_to_wire(ContentEvent("a/b", "hi")) == {"type": "content", "model": "a/b", "content": "hi"}

    def test_stats(self):
        event = StatsEvent("a/b", UsageStats("a/b", 10, 20, 0.0012, 1234.6))
        assert event_to_wire(event) == {
            "type": "stats",
            "model": "a/b",
            "stats": {"tokensInput": 10, "tokensOutput": 20, "cost": 0.0012, "latency": 1235, "model": "a/b"},
        }

    def test_error(self):
        assert event_to_wire(ErrorEvent("a/b", "boom")) == {"type": "error", "model": "a/b", "error": "boom"}

    def test_model_done(self):
        assert event_to_wire(DoneEvent("a/b")) == {"type": "done", "model": "a/b"}

    def test_multi_done_carries_aggregate(self):
        event = DoneEvent("multi", AggregateStats(30, 40, 0.5, 250.4))
        assert event_to_wire(event) == {
            "type": "done",
            "model": "multi",
            "aggregatedStats": {
                "totalInputTokens": 30,
                "totalOutputTokens": 40,
                "totalCost": 0.5,
                "averageLatency": 250,
            },
        }

    def test_router(self):
        event = RouterEvent(RouterDecision("a/b", "because"))
        assert event_to_wire(event) == {"type": "router", "routerDecision": {"model": "a/b", "reasoning": "because"}}

    def test_summary(self):
        assert event_to_wire(SummaryEvent("Title")) == {"type": "summary", "summary": "Title"}

    def test_unknown_event(self):
        with pytest.raises(TypeError):
            event_to_wire(object())  # type: ignore[arg-type]


def test_sse_frame_format():
    frame = sse_frame({"type": "summary", "summary": "Café"})
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: ") : -2]) == {"type": "summary", "summary": "Café"}
    assert "Café" in frame


async def _events(*items):
    for item in items:
        yield item


@pytest.mark.asyncio
class TestStreamSseEvents:
    async def test_frames_then_done_sentinel(self):
        frames = await collect(stream_sse_events(_events(ContentEvent("a/b", "hi"), DoneEvent("a/b")), CTX))

        assert frames == [
            sse_frame({"type": "content", "model": "a/b", "content": "hi"}),
            sse_frame({"type": "done", "model": "a/b"}),
            "data: [DONE]\n\n",
        ]

    async def test_disconnect_stops_stream_and_closes_source(self):
        closed = asyncio.Event()

        async def source():
            try:
                yield ContentEvent("a/b", "one")
                yield ContentEvent("a/b", "two")
                yield ContentEvent("a/b", "three")
            finally:
                closed.set()

        polls = iter([False, True])

        async def is_disconnected():
            return next(polls, True)

        frames = await collect(stream_sse_events(source(), CTX, is_disconnected=is_disconnected))

        assert frames == [sse_frame({"type": "content", "model": "a/b", "content": "one"})]
        assert closed.is_set()

    async def test_failure_yields_error_frame_without_sentinel(self):
        async def source():
            yield ContentEvent("a/b", "one")
            raise RuntimeError("bug")

        frames = await collect(stream_sse_events(source(), CTX))

        assert frames[-1] == sse_frame({"type": "error", "error": "Stream failed"})
        assert "data: [DONE]\n\n" not in frames
