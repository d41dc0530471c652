"""
Behavioral tests for the relay use case.

Uses the real router, adapter, merger and summarizer; only the upstream API
is scripted.
"""

import asyncio

import pytest

from chat_relay.application.fanout import MultiStreamMerger
from chat_relay.application.prompts import AVAILABLE_TOOLS
from chat_relay.application.router import ModelRouter
from chat_relay.application.streaming import SingleStreamAdapter
from chat_relay.application.summarizer import TitleSummarizer
from chat_relay.application.use_cases import RelayChatUseCase
from chat_relay.domain.entities import (
    MULTI_MODEL,
    ChatTurn,
    ContentEvent,
    DoneEvent,
    MediaAttachment,
    RelayRequest,
    RouterEvent,
    StatsEvent,
    SummaryEvent,
)

from tests.helpers import VALID_API_KEY, collect, completion_response, text_chunk, usage_chunk

ROUTED = "anthropic/claude-4.5-sonnet"


def make_use_case(client, catalog, **kwargs):
    adapter = SingleStreamAdapter(client, catalog)
    return RelayChatUseCase(
        router=ModelRouter(client, catalog),
        adapter=adapter,
        merger=MultiStreamMerger(adapter),
        summarizer=TitleSummarizer(client),
        catalog=catalog,
        **kwargs,
    )


@pytest.fixture
def use_case(fake_upstream, catalog):
    fake_upstream.completions["route"] = completion_response(f'{{"model": "{ROUTED}", "reasoning": "writing"}}')
    fake_upstream.completions["summarize"] = completion_response("Essay feedback")
    return make_use_case(fake_upstream, catalog)


class SlowSummarizer:
    """Summarizer that never finishes on its own and records cancellation."""

    def __init__(self):
        self.cancelled = False

    async def summarize(self, turns, api_key, *, zero_data_retention=False):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return "never"


@pytest.mark.asyncio
class TestAutoMode:
    async def test_event_order(self, use_case, fake_upstream):
        fake_upstream.streams[ROUTED] = [text_chunk("Looks "), text_chunk("good"), usage_chunk(5, 7)]
        request = RelayRequest(message="Review my essay", api_key=VALID_API_KEY)

        events = await collect(use_case.execute(request))

        assert isinstance(events[0], RouterEvent)
        assert events[0].decision.model == ROUTED
        assert events[1:3] == [ContentEvent(ROUTED, "Looks "), ContentEvent(ROUTED, "good")]
        assert isinstance(events[3], StatsEvent)
        assert events[4] == DoneEvent(ROUTED)
        assert events[5] == SummaryEvent("Essay feedback")
        assert len(events) == 6

    async def test_system_prompt_templated_for_routed_model(self, use_case, fake_upstream):
        request = RelayRequest(
            message="hi",
            api_key=VALID_API_KEY,
            system_prompt="You are :model_name: by :model_creator:.",
        )

        await collect(use_case.execute(request))

        messages = fake_upstream.stream_calls[0]["messages"]
        assert messages[0] == {"role": "system", "content": "You are Claude 4.5 Sonnet by Anthropic."}
        assert messages[-1] == {"role": "user", "content": "hi"}

    async def test_history_precedes_current_turn(self, use_case, fake_upstream):
        request = RelayRequest(
            message="and now?",
            api_key=VALID_API_KEY,
            history=(ChatTurn("user", "first"), ChatTurn("assistant", "reply")),
        )

        await collect(use_case.execute(request))

        contents = [m["content"] for m in fake_upstream.stream_calls[0]["messages"]]
        assert contents == ["first", "reply", "and now?"]

    async def test_visual_attachment_skips_classifier(self, use_case, fake_upstream, catalog):
        request = RelayRequest(
            message="What is this?",
            api_key=VALID_API_KEY,
            attachments=(MediaAttachment("image", "data:image/png;base64,AAAA"),),
        )

        events = await collect(use_case.execute(request))

        assert events[0].decision.model == catalog.vision_model
        assert [operation for operation, _ in fake_upstream.completion_calls] == ["summarize"]
        user_turn = fake_upstream.stream_calls[0]["messages"][-1]
        assert user_turn["content"][1] == {
            "type": "image_url",
            "image_url": {"url": "data:image/png;base64,AAAA"},
        }

    async def test_tools_sent_only_when_enabled(self, fake_upstream, catalog):
        fake_upstream.completions["route"] = completion_response(f'{{"model": "{ROUTED}"}}')
        request = RelayRequest(message="hi", api_key=VALID_API_KEY)

        await collect(make_use_case(fake_upstream, catalog).execute(request))
        await collect(make_use_case(fake_upstream, catalog, enable_tools=True).execute(request))

        assert "tools" not in fake_upstream.stream_calls[0]
        assert fake_upstream.stream_calls[1]["tools"] == list(AVAILABLE_TOOLS)


@pytest.mark.asyncio
class TestManualMode:
    async def test_event_order(self, use_case, fake_upstream):
        models = ("x-ai/grok-4.1-fast", "openai/gpt-5.1")
        request = RelayRequest(message="hi", api_key=VALID_API_KEY, mode="manual", models=models)

        events = await collect(use_case.execute(request))

        assert not any(isinstance(e, RouterEvent) for e in events)
        assert events[-2].model == MULTI_MODEL
        assert events[-1] == SummaryEvent("Essay feedback")
        assert sorted(call["model"] for call in fake_upstream.stream_calls) == sorted(models)
        assert [operation for operation, _ in fake_upstream.completion_calls] == ["summarize"]

    async def test_every_model_gets_same_conversation(self, use_case, fake_upstream):
        request = RelayRequest(
            message="hi",
            api_key=VALID_API_KEY,
            mode="manual",
            models=("x-ai/grok-4.1-fast", "openai/gpt-5.1"),
            system_prompt="I am :model_id:",
        )

        await collect(use_case.execute(request))

        first, second = (call["messages"] for call in fake_upstream.stream_calls)
        assert first == second
        assert first[0]["content"] == "I am x-ai/grok-4.1-fast"


@pytest.mark.asyncio
class TestTitle:
    async def test_title_timeout_falls_back(self, fake_upstream, catalog):
        adapter = SingleStreamAdapter(fake_upstream, catalog)
        summarizer = SlowSummarizer()
        use_case = RelayChatUseCase(
            router=ModelRouter(fake_upstream, catalog),
            adapter=adapter,
            merger=MultiStreamMerger(adapter),
            summarizer=summarizer,
            catalog=catalog,
            title_timeout=0.05,
        )
        request = RelayRequest(
            message="Plan a trip to Rome",
            api_key=VALID_API_KEY,
            mode="manual",
            models=("x-ai/grok-4.1-fast",),
        )

        events = await collect(use_case.execute(request))

        assert events[-1] == SummaryEvent("Plan a trip to Rome")
        assert summarizer.cancelled

    async def test_closing_early_cancels_title_and_streams(self, fake_upstream, catalog):
        adapter = SingleStreamAdapter(fake_upstream, catalog)
        summarizer = SlowSummarizer()
        use_case = RelayChatUseCase(
            router=ModelRouter(fake_upstream, catalog),
            adapter=adapter,
            merger=MultiStreamMerger(adapter),
            summarizer=summarizer,
            catalog=catalog,
        )
        fake_upstream.streams["x-ai/grok-4.1-fast"] = [text_chunk("first"), 10.0]
        fake_upstream.streams["openai/gpt-5.1"] = [10.0]
        request = RelayRequest(
            message="hi",
            api_key=VALID_API_KEY,
            mode="manual",
            models=("x-ai/grok-4.1-fast", "openai/gpt-5.1"),
        )

        stream = use_case.execute(request)
        first = await anext(stream)
        await stream.aclose()

        assert first == ContentEvent("x-ai/grok-4.1-fast", "first")
        assert summarizer.cancelled
        assert sorted(fake_upstream.closed) == ["openai/gpt-5.1", "x-ai/grok-4.1-fast"]
        assert fake_upstream.completed == []
