"""Use cases for the Chat Relay service.

``RelayChatUseCase`` orchestrates one chat request end to end and exposes it
as a single async event stream:

    auto mode:   router -> content* -> stats? -> done(model) -> summary
    manual mode: (content | stats | error | done(model))* -> done(multi) -> summary

The title task is started before any upstream stream and awaited only after
the content stream finished, so it never delays visible content. Closing the
returned generator cancels the title task and every model stream.

Design Principles:
    - Dependency Inversion: Depend on interfaces (Protocols), not implementations
    - Framework-agnostic: No FastAPI or pydantic dependencies
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING, Any

from chat_relay.application.conversation import build_conversation, build_user_turn
from chat_relay.application.prompts import AVAILABLE_TOOLS
from chat_relay.application.summarizer import fallback_title
from chat_relay.domain.entities import (
    ChatTurn,
    RelayRequest,
    RouterEvent,
    StreamEvent,
    SummaryEvent,
)

if TYPE_CHECKING:
    from chat_relay.application.fanout import MultiStreamMerger
    from chat_relay.application.interfaces import (
        ModelStreamInterface,
        RouterInterface,
        SummarizerInterface,
    )
    from chat_relay.core.catalog import ModelCatalog

logger = logging.getLogger(__name__)

DEFAULT_TITLE_TIMEOUT = 15.0


class RelayChatUseCase:
    """Use case for one relayed chat request.

    Attributes:
        catalog: Model catalogue used to assemble conversations.
        enable_tools: Whether tool definitions are sent to models.
        title_timeout: Seconds to wait for the title once content finished.
    """

    def __init__(
        self,
        router: RouterInterface,
        adapter: ModelStreamInterface,
        merger: MultiStreamMerger,
        summarizer: SummarizerInterface,
        catalog: ModelCatalog,
        *,
        enable_tools: bool = False,
        title_timeout: float = DEFAULT_TITLE_TIMEOUT,
    ) -> None:
        """Initialize the relay use case.

        Args:
            router: Auto-mode model router.
            adapter: Single-model stream adapter.
            merger: Multi-model fan-out merger.
            summarizer: Conversation title summarizer.
            catalog: Model catalogue.
            enable_tools: Send the tool catalogue with every model request.
            title_timeout: Upper bound on the post-stream wait for the title.
        """
        self._router = router
        self._adapter = adapter
        self._merger = merger
        self._summarizer = summarizer
        self.catalog = catalog
        self.enable_tools = enable_tools
        self.title_timeout = title_timeout

    @property
    def tools(self) -> list[dict[str, Any]] | None:
        return list(AVAILABLE_TOOLS) if self.enable_tools else None

    def _title_turns(self, request: RelayRequest) -> list[ChatTurn]:
        return [*request.history, build_user_turn(request.message, request.attachments)]

    def _conversation(self, request: RelayRequest, model_id: str) -> list[ChatTurn]:
        return build_conversation(
            request.history,
            request.message,
            request.attachments,
            request.system_prompt,
            model_id,
            self.catalog,
        )

    async def execute(self, request: RelayRequest) -> AsyncIterator[StreamEvent]:
        """Yield every event of the request, ending with the summary.

        Args:
            request: Validated relay request.

        Yields:
            Relay events in wire order. Upstream failures appear as
            ``ErrorEvent`` for the affected model; nothing is raised for them.
        """
        title_turns = self._title_turns(request)
        title_task = asyncio.create_task(
            self._summarizer.summarize(
                title_turns,
                request.api_key,
                zero_data_retention=request.zero_data_retention,
            ),
            name="relay:title",
        )
        try:
            if request.mode == "auto":
                events = self._auto_events(request)
            else:
                events = self._manual_events(request)
            async with contextlib.aclosing(events) as stream:
                async for event in stream:
                    yield event

            yield SummaryEvent(await self._await_title(title_task, title_turns))
        finally:
            if not title_task.done():
                title_task.cancel()
                await asyncio.gather(title_task, return_exceptions=True)

    async def _auto_events(self, request: RelayRequest) -> AsyncIterator[StreamEvent]:
        decision = await self._router.route(
            request.message,
            request.attachments,
            request.api_key,
            zero_data_retention=request.zero_data_retention,
        )
        yield RouterEvent(decision)

        messages = self._conversation(request, decision.model)
        async with contextlib.aclosing(
            self._adapter.stream(
                decision.model,
                messages,
                request.api_key,
                tools=self.tools,
                image_options=request.image_options,
            )
        ) as stream:
            async for event in stream:
                yield event

    async def _manual_events(self, request: RelayRequest) -> AsyncIterator[StreamEvent]:
        # Placeholders are expanded for the first model.
        messages = self._conversation(request, request.models[0])
        async with contextlib.aclosing(
            self._merger.stream(
                request.models,
                messages,
                request.api_key,
                tools=self.tools,
                image_options=request.image_options,
            )
        ) as stream:
            async for event in stream:
                yield event

    async def _await_title(self, task: asyncio.Task[str], turns: Sequence[ChatTurn]) -> str:
        try:
            async with asyncio.timeout(self.title_timeout):
                return await task
        except TimeoutError:
            logger.warning("title_timeout: after %.1fs, using fallback", self.title_timeout)
            return fallback_title([turn for turn in turns if turn.role != "system"])


__all__ = ["RelayChatUseCase"]
