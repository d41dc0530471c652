"""Concurrent multi-model fan-out with a single merged event stream.

One producer task per model runs that model's sub-stream and pushes every
event into a shared bounded ``asyncio.Queue`` in arrival order. The merged
stream pops from the queue, so whichever model answers first is delivered
first and a slow model never blocks a fast one.

Guarantees:
    - Per-model order is preserved (each producer pushes sequentially)
    - No cross-model ordering; pure arrival order
    - The merged stream ends only after every producer finished and the
      queue drained, with one ``DoneEvent(model="multi")`` carrying the
      aggregate statistics
    - Closing or cancelling the merged stream cancels every producer, which
      closes its upstream connection
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

from chat_relay.application.interfaces import ModelStreamInterface
from chat_relay.domain.entities import (
    MULTI_MODEL,
    AggregateStats,
    ChatTurn,
    DoneEvent,
    ErrorEvent,
    ImageOptions,
    StatsEvent,
    StreamEvent,
    UsageStats,
)

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256


@dataclass(slots=True, frozen=True)
class _ProducerFinished:
    """Queue sentinel pushed once by each producer when it ends."""

    model: str


class MultiStreamMerger:
    """Runs one sub-stream per model concurrently and merges their events.

    Attributes:
        queue_size: Capacity of the shared queue. Producers wait when full.
    """

    def __init__(self, adapter: ModelStreamInterface, *, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._adapter = adapter
        self.queue_size = queue_size

    async def _produce(
        self,
        queue: asyncio.Queue[StreamEvent | _ProducerFinished],
        model: str,
        messages: Sequence[ChatTurn],
        api_key: str,
        tools: list[dict[str, Any]] | None,
        image_options: ImageOptions | None,
    ) -> None:
        events = self._adapter.stream(model, messages, api_key, tools=tools, image_options=image_options)
        try:
            async for event in events:
                await queue.put(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Close the sub-stream with error then done.
            logger.exception("fanout_producer_error: model=%s", model)
            await queue.put(ErrorEvent(model, str(exc) or exc.__class__.__name__))
            await queue.put(DoneEvent(model))
        finally:
            await events.aclose()
        await queue.put(_ProducerFinished(model))

    async def stream(
        self,
        models: Sequence[str],
        messages: Sequence[ChatTurn],
        api_key: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        image_options: ImageOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield events from every model as they arrive, then the aggregate.

        Args:
            models: Model identifiers; one concurrent sub-stream each.
            messages: Conversation sent to every model.
            api_key: Caller's upstream key.
            tools: Tool definitions forwarded to every model.
            image_options: Image output options for image-generation models.

        Yields:
            Every sub-stream event (per-model ``done`` included), then
            ``DoneEvent(model="multi", aggregate=...)``.
        """
        queue: asyncio.Queue[StreamEvent | _ProducerFinished] = asyncio.Queue(maxsize=self.queue_size)
        tasks = [
            asyncio.create_task(
                self._produce(queue, model, messages, api_key, tools, image_options),
                name=f"fanout:{model}",
            )
            for model in models
        ]
        active = len(tasks)
        stats: list[UsageStats] = []
        logger.info("fanout_started: models=%s", ",".join(models))

        try:
            while active:
                item = await queue.get()
                if isinstance(item, _ProducerFinished):
                    active -= 1
                    continue
                if isinstance(item, StatsEvent):
                    stats.append(item.stats)
                yield item
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                logger.info("fanout_cancelled: pending=%d", len(pending))
            await asyncio.gather(*tasks, return_exceptions=True)

        aggregate = AggregateStats.from_stats(stats)
        logger.info(
            "fanout_finished: models=%d completed=%d total_cost=%.6f",
            len(tasks),
            len(stats),
            aggregate.total_cost,
        )
        yield DoneEvent(MULTI_MODEL, aggregate)


__all__ = ["DEFAULT_QUEUE_SIZE", "MultiStreamMerger"]
