"""Single-model stream adapter.

Turns one upstream streaming completion into the relay's normalized event
sub-stream: ``content*`` then optionally ``stats``, or a single ``error``,
always followed by ``done``.

Retry without tools:
    When tools were sent, nothing has been emitted yet, and the upstream
    rejects the request because the model does not support tool use, the
    request is re-issued once without tools. The caller sees one continuous
    sub-stream. The adapter's lifecycle is an explicit state machine::

        REQUESTING -> STREAMING -> COMPLETED
        REQUESTING -> RETRYING_WITHOUT_TOOLS -> STREAMING -> COMPLETED
        any state  -> FAILED

Stall protection:
    Every read is bounded by ``chunk_timeout`` and the whole stream by
    ``stream_timeout``; both surface as an ``error`` event like any other
    upstream failure.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import AsyncIterator, Iterator, Sequence
from enum import StrEnum
from typing import Any

from chat_relay.application.interfaces import UpstreamClientInterface
from chat_relay.client.upstream import UpstreamError
from chat_relay.core.catalog import ModelCatalog
from chat_relay.domain.entities import (
    ChatTurn,
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    ImageOptions,
    StatsEvent,
    StreamEvent,
    UsageStats,
)
from chat_relay.telemetry.metrics import MetricsCollector

logger = logging.getLogger(__name__)

TOOLS_UNSUPPORTED_MARKER = "No endpoints found that support tool use"
"""Upstream error text meaning the selected model cannot take tools."""

DEFAULT_TEMPERATURE = 0.7


class StreamState(StrEnum):
    """Lifecycle states of one adapter run."""

    REQUESTING = "requesting"
    RETRYING_WITHOUT_TOOLS = "retrying_without_tools"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


def markdown_image(url: str) -> str:
    """Markdown image block for a generated image URL (URL kept verbatim)."""
    return f"\n![Generated Image]({url})\n"


def iter_chunk_texts(chunk: dict[str, Any]) -> Iterator[str]:
    """Text fragments carried by one streamed chunk, in display order.

    Generated images (``delta.images`` and ``image_url`` content parts) are
    rendered as markdown so downstream consumers only handle text.
    """
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return

    for image in delta.get("images") or []:
        url = _image_url(image)
        if url:
            yield markdown_image(url)

    match delta.get("content"):
        case str() as text if text:
            yield text
        case list() as parts:
            for part in parts:
                if not isinstance(part, dict):
                    continue
                match part.get("type"):
                    case "text" if part.get("text"):
                        yield part["text"]
                    case "image_url":
                        url = _image_url(part)
                        if url:
                            yield markdown_image(url)


def _image_url(part: Any) -> str | None:
    if not isinstance(part, dict):
        return None
    image_url = part.get("image_url")
    if isinstance(image_url, dict) and isinstance(image_url.get("url"), str):
        return image_url["url"] or None
    return None


def _token_count(value: Any) -> int:
    """Non-negative token count from a usage field; anything unusable counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float) and value.is_integer():
        return max(int(value), 0)
    return 0


class SingleStreamAdapter:
    """Streams one model and normalizes its output into relay events.

    Attributes:
        catalog: Pricing and capability lookups.
        chunk_timeout: Per-read timeout in seconds.
        stream_timeout: Whole-stream timeout in seconds.
        temperature: Sampling temperature sent upstream.
    """

    def __init__(
        self,
        client: UpstreamClientInterface,
        catalog: ModelCatalog,
        *,
        chunk_timeout: float = 30.0,
        stream_timeout: float = 120.0,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self._client = client
        self.catalog = catalog
        self.chunk_timeout = chunk_timeout
        self.stream_timeout = stream_timeout
        self.temperature = temperature

    def build_payload(
        self,
        model: str,
        messages: Sequence[ChatTurn],
        *,
        tools: list[dict[str, Any]] | None = None,
        image_options: ImageOptions | None = None,
    ) -> dict[str, Any]:
        """Upstream request body for one streamed completion."""
        payload: dict[str, Any] = {
            "model": model,
            "messages": [turn.to_payload() for turn in messages],
            "temperature": self.temperature,
        }
        if tools:
            payload["tools"] = list(tools)
            payload["tool_choice"] = "auto"
        if self.catalog.supports_image_generation(model):
            payload["modalities"] = ["text", "image"]
            image_config = image_options.to_payload() if image_options else {}
            if image_config:
                payload["image_config"] = image_config
        return payload

    @staticmethod
    def _should_retry_without_tools(
        state: StreamState,
        tools: list[dict[str, Any]] | None,
        emitted: bool,
        exc: UpstreamError,
    ) -> bool:
        return (
            state in (StreamState.REQUESTING, StreamState.STREAMING)
            and bool(tools)
            and not emitted
            and TOOLS_UNSUPPORTED_MARKER in exc.message
        )

    async def stream(
        self,
        model: str,
        messages: Sequence[ChatTurn],
        api_key: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        image_options: ImageOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield normalized events for ``model``.

        Upstream failures never propagate: they become one ``ErrorEvent``
        followed by ``DoneEvent``. Closing this generator closes the
        underlying upstream stream.
        """
        start = time.perf_counter()
        state = StreamState.REQUESTING
        active_tools = list(tools) if tools else None
        emitted = False
        usage: dict[str, Any] | None = None

        while True:
            payload = self.build_payload(model, messages, tools=active_tools, image_options=image_options)
            try:
                async with contextlib.aclosing(
                    self._client.stream_completion(
                        payload,
                        api_key,
                        chunk_timeout=self.chunk_timeout,
                        stream_timeout=self.stream_timeout,
                    )
                ) as chunks:
                    async for chunk in chunks:
                        state = StreamState.STREAMING
                        for text in iter_chunk_texts(chunk):
                            emitted = True
                            yield ContentEvent(model, text)
                        if isinstance(chunk.get("usage"), dict):
                            usage = chunk["usage"]
            except UpstreamError as exc:
                if self._should_retry_without_tools(state, active_tools, emitted, exc):
                    state = StreamState.RETRYING_WITHOUT_TOOLS
                    active_tools = None
                    logger.info("stream_retry_without_tools: model=%s", model)
                    continue
                state = StreamState.FAILED
                self._record(model, start, success=False, error=exc.__class__.__name__)
                yield ErrorEvent(model, exc.message)
                yield DoneEvent(model)
                return
            except Exception as exc:
                state = StreamState.FAILED
                logger.exception("stream_unexpected_error: model=%s", model)
                self._record(model, start, success=False, error=exc.__class__.__name__)
                yield ErrorEvent(model, str(exc) or exc.__class__.__name__)
                yield DoneEvent(model)
                return
            break

        state = StreamState.COMPLETED
        latency_ms = (time.perf_counter() - start) * 1000
        stats = self._usage_stats(model, usage, latency_ms) if usage is not None else None
        self._record(model, start, success=True, stats=stats)
        logger.debug("stream_finished: model=%s state=%s", model, state)
        if stats is not None:
            yield StatsEvent(model, stats)
        yield DoneEvent(model)

    def _usage_stats(self, model: str, usage: dict[str, Any], latency_ms: float) -> UsageStats:
        tokens_in = _token_count(usage.get("prompt_tokens"))
        tokens_out = _token_count(usage.get("completion_tokens"))
        return UsageStats(
            model=model,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            cost=self.catalog.cost(model, tokens_in, tokens_out),
            latency_ms=latency_ms,
        )

    @staticmethod
    def _record(
        model: str,
        start: float,
        *,
        success: bool,
        error: str | None = None,
        stats: UsageStats | None = None,
    ) -> None:
        MetricsCollector.record_request(
            model=model,
            operation="stream",
            latency_ms=(time.perf_counter() - start) * 1000,
            success=success,
            error=error,
            tokens_in=stats.tokens_in if stats else 0,
            tokens_out=stats.tokens_out if stats else 0,
            cost=stats.cost if stats else 0.0,
        )


__all__ = [
    "TOOLS_UNSUPPORTED_MARKER",
    "SingleStreamAdapter",
    "StreamState",
    "iter_chunk_texts",
    "markdown_image",
]
