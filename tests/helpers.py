"""Reusable test utilities and helpers for Chat Relay tests.

This module provides the scripted upstream client, chunk builders and SSE
parsing used across test files.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

from fastapi import FastAPI

from chat_relay.api.dependencies import get_catalog, get_rate_limiter, get_relay_use_case

VALID_API_KEY = "sk-or-v1-" + "a" * 32

ChunkScript = Sequence[Any]
"""Items of a scripted stream: chunk dicts, exceptions to raise, or floats to sleep."""


def text_chunk(text: str) -> dict[str, Any]:
    """Streamed chunk carrying ``text`` as delta content."""
    return {"choices": [{"delta": {"content": text}}]}


def usage_chunk(prompt_tokens: int, completion_tokens: int) -> dict[str, Any]:
    """Final streamed chunk carrying token usage."""
    return {
        "choices": [{"delta": {}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def image_chunk(url: str) -> dict[str, Any]:
    """Streamed chunk carrying one generated image."""
    return {"choices": [{"delta": {"images": [{"type": "image_url", "image_url": {"url": url}}]}}]}


def completion_response(text: str) -> dict[str, Any]:
    """Non-streaming completion whose first choice says ``text``."""
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


class FakeUpstreamClient:
    """Scripted stand-in for AsyncUpstreamClient.

    Attributes:
        streams: Script per model, or a callable taking the payload and
            returning the script.
        completions: Response per operation (``route``, ``summarize``). A
            value may be a response dict, an exception to raise, or an async
            callable taking the payload.
        stream_calls: Payloads of every stream_completion call.
        completion_calls: ``(operation, payload)`` of every create_completion call.
        closed: Models whose stream generator finished, in any way.
        completed: Models whose stream ran to its end.
    """

    def __init__(
        self,
        streams: dict[str, ChunkScript | Callable[[dict[str, Any]], ChunkScript]] | None = None,
        completions: dict[str, Any] | None = None,
    ) -> None:
        self.streams = dict(streams or {})
        self.completions = dict(completions or {})
        self.stream_calls: list[dict[str, Any]] = []
        self.completion_calls: list[tuple[str, dict[str, Any]]] = []
        self.closed: list[str] = []
        self.completed: list[str] = []

    async def create_completion(
        self,
        payload: dict[str, Any],
        api_key: str,
        *,
        operation: str = "completion",
        timeout: float | None = None,
    ) -> dict[str, Any]:
        self.completion_calls.append((operation, payload))
        value = self.completions.get(operation, completion_response(""))
        if isinstance(value, BaseException):
            raise value
        if callable(value):
            return await value(payload)
        return value

    async def stream_completion(
        self,
        payload: dict[str, Any],
        api_key: str,
        *,
        chunk_timeout: float | None = None,
        stream_timeout: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        self.stream_calls.append(payload)
        model = payload["model"]
        script = self.streams.get(model, [text_chunk("ok")])
        if callable(script):
            script = script(payload)
        try:
            for item in script:
                if isinstance(item, BaseException):
                    raise item
                if isinstance(item, int | float):
                    await asyncio.sleep(item)
                    continue
                yield item
            self.completed.append(model)
        finally:
            self.closed.append(model)

    async def close(self) -> None:
        return None


async def collect(events: AsyncIterator[Any]) -> list[Any]:
    """Drain an async iterator into a list."""
    return [event async for event in events]


def parse_sse(body: str) -> list[Any]:
    """Decode an SSE body into payloads; the ``[DONE]`` sentinel stays a string."""
    frames = []
    for block in body.split("\n\n"):
        if not block.startswith("data: "):
            continue
        data = block[len("data: ") :]
        frames.append(data if data == "[DONE]" else json.loads(data))
    return frames


def setup_dependency_overrides(
    app: FastAPI,
    catalog: Any,
    rate_limiter: Any,
    relay_use_case: Any,
) -> None:
    """Point the chat and system routes at test instances.

    Args:
        app: FastAPI application instance.
        catalog: Model catalogue.
        rate_limiter: Composite rate limiter.
        relay_use_case: Relay use case, or any object with ``execute``.
    """
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_relay_use_case] = lambda: relay_use_case


def cleanup_dependency_overrides(app: FastAPI) -> None:
    """Clean up FastAPI dependency overrides after testing."""
    app.dependency_overrides.clear()
