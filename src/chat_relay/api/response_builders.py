"""Server-Sent Events encoding of relay events.

Every relay event becomes one ``data: <json>\\n\\n`` frame and a successful
stream ends with ``data: [DONE]\\n\\n``. Field names are camelCase to match
existing front-ends:

    content  {"type": "content", "model", "content"}
    stats    {"type": "stats", "model", "stats": {"tokensInput", "tokensOutput",
              "cost", "latency", "model"}}
    error    {"type": "error", "model", "error"}
    done     {"type": "done", "model"} plus "aggregatedStats" for the fan-out total
    router   {"type": "router", "routerDecision": {"model", "reasoning"}}
    summary  {"type": "summary", "summary"}
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from fastapi.responses import StreamingResponse

from chat_relay.api.limits import SSE_DONE_FRAME, SSE_HEADERS
from chat_relay.api.models import RequestContext
from chat_relay.domain.entities import (
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    RouterEvent,
    StatsEvent,
    StreamEvent,
    SummaryEvent,
)
from chat_relay.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

STREAM_FAILED_MESSAGE = "Stream failed"


def event_to_wire(event: StreamEvent) -> dict[str, Any]:
    """JSON object sent to the caller for one relay event."""
    match event:
        case ContentEvent(model=model, text=text):
            return {"type": "content", "model": model, "content": text}
        case StatsEvent(model=model, stats=stats):
            return {
                "type": "stats",
                "model": model,
                "stats": {
                    "tokensInput": stats.tokens_in,
                    "tokensOutput": stats.tokens_out,
                    "cost": stats.cost,
                    "latency": round(stats.latency_ms),
                    "model": stats.model,
                },
            }
        case ErrorEvent(model=model, message=message):
            return {"type": "error", "model": model, "error": message}
        case DoneEvent(model=model, aggregate=aggregate):
            payload: dict[str, Any] = {"type": "done", "model": model}
            if aggregate is not None:
                payload["aggregatedStats"] = {
                    "totalInputTokens": aggregate.total_input_tokens,
                    "totalOutputTokens": aggregate.total_output_tokens,
                    "totalCost": aggregate.total_cost,
                    "averageLatency": round(aggregate.average_latency_ms),
                }
            return payload
        case RouterEvent(decision=decision):
            return {
                "type": "router",
                "routerDecision": {"model": decision.model, "reasoning": decision.reasoning},
            }
        case SummaryEvent(title=title):
            return {"type": "summary", "summary": title}
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


def sse_frame(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def stream_sse_events(
    events: AsyncIterator[StreamEvent],
    ctx: RequestContext,
    *,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Encode relay events as SSE frames.

    Args:
        events: Relay event stream. Always closed when this generator ends,
            which cancels every upstream stream it owns.
        ctx: Request context for logging.
        is_disconnected: Polled before each frame; a True result ends the
            stream quietly.

    Yields:
        SSE frames, then the ``[DONE]`` sentinel. An unexpected failure in
        ``events`` yields one ``{"type": "error", "error": "Stream failed"}``
        frame instead of the sentinel.
    """
    start_time = time.perf_counter()
    frames = 0
    outcome = "completed"
    try:
        async for event in events:
            if is_disconnected is not None and await is_disconnected():
                outcome = "disconnected"
                logger.info("client_disconnected: request_id=%s frames=%d", ctx.request_id, frames)
                return
            frames += 1
            yield sse_frame(event_to_wire(event))
        yield SSE_DONE_FRAME
    except (GeneratorExit, asyncio.CancelledError):
        outcome = "disconnected"
        raise
    except Exception:
        outcome = "failed"
        logger.exception("stream_failed: request_id=%s", ctx.request_id)
        yield sse_frame({"type": "error", "error": STREAM_FAILED_MESSAGE})
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()
        log_request_event(
            {
                "event": "relay_stream",
                "status": outcome,
                "request_id": ctx.request_id,
                "client_ip": ctx.client_ip,
                "frames": frames,
                "latency_ms": round((time.perf_counter() - start_time) * 1000, 3),
            }
        )


def sse_response(
    events: AsyncIterator[StreamEvent],
    ctx: RequestContext,
    *,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> StreamingResponse:
    """StreamingResponse carrying ``events`` as Server-Sent Events."""
    return StreamingResponse(
        stream_sse_events(events, ctx, is_disconnected=is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


__all__ = [
    "STREAM_FAILED_MESSAGE",
    "event_to_wire",
    "sse_frame",
    "sse_response",
    "stream_sse_events",
]
