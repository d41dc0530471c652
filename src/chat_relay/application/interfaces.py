"""Interfaces (Protocols) for application layer dependencies.

The application layer depends on these interfaces, not on concrete
implementations. Implementations don't need to inherit from them; they only
need to provide the methods.

Key Interfaces:
    - UpstreamClientInterface: Chat-completions API access
    - ModelStreamInterface: One model's normalized event stream
    - RouterInterface: Auto-mode model selection
    - SummarizerInterface: Conversation title generation
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any, Protocol

from chat_relay.domain.entities import (
    ChatTurn,
    ImageOptions,
    MediaAttachment,
    RouterDecision,
    StreamEvent,
)


class UpstreamClientInterface(Protocol):
    """Protocol for chat-completions clients.

    Both methods raise ``chat_relay.client.upstream.UpstreamError`` subclasses
    on failure.
    """

    async def create_completion(
        self,
        payload: dict[str, Any],
        api_key: str,
        *,
        operation: str = "completion",
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Return one non-streaming completion response."""
        ...

    def stream_completion(
        self,
        payload: dict[str, Any],
        api_key: str,
        *,
        chunk_timeout: float | None = None,
        stream_timeout: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded SSE chunks until the stream ends."""
        ...


class ModelStreamInterface(Protocol):
    """Protocol for producers of one model's normalized sub-stream.

    The sub-stream never raises for upstream failures; it ends with an
    ``ErrorEvent`` followed by a ``DoneEvent`` instead.
    """

    def stream(
        self,
        model: str,
        messages: Sequence[ChatTurn],
        api_key: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        image_options: ImageOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        ...


class RouterInterface(Protocol):
    """Protocol for auto-mode routers. Never raises."""

    async def route(
        self,
        user_text: str,
        attachments: Sequence[MediaAttachment],
        api_key: str,
        *,
        zero_data_retention: bool = False,
    ) -> RouterDecision:
        ...


class SummarizerInterface(Protocol):
    """Protocol for title summarizers. Never raises."""

    async def summarize(
        self,
        turns: Sequence[ChatTurn],
        api_key: str,
        *,
        zero_data_retention: bool = False,
    ) -> str:
        ...


__all__ = [
    "ModelStreamInterface",
    "RouterInterface",
    "SummarizerInterface",
    "UpstreamClientInterface",
]
