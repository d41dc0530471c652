"""Best-effort conversation title generation.

``TitleSummarizer.summarize`` never raises: every failure, empty reply or a
literal "new chat" reply falls back to a prefix of the first user turn, and
to ``"New Chat"`` when there is no user turn at all.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from chat_relay.application.interfaces import UpstreamClientInterface
from chat_relay.application.prompts import SUMMARY_PROMPT
from chat_relay.client.upstream import extract_message_text
from chat_relay.core.config import SummarizerConfig
from chat_relay.domain.entities import ChatTurn
from chat_relay.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 60
FALLBACK_PREFIX_LENGTH = 50
FALLBACK_MAX_LENGTH = 47
_QUOTES = "\"'"


def _ellipsize(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def fallback_title(turns: Sequence[ChatTurn]) -> str:
    """Title derived from the first user turn, or DEFAULT_TITLE."""
    first_user = next((turn for turn in turns if turn.role == "user"), None)
    if first_user is None:
        return DEFAULT_TITLE
    prefix = first_user.text[:FALLBACK_PREFIX_LENGTH].strip()
    return _ellipsize(prefix, FALLBACK_MAX_LENGTH) or DEFAULT_TITLE


def clean_title(raw: str) -> str:
    """Strip one pair of surrounding quotes and cap the length."""
    title = raw.strip()
    if title[:1] in _QUOTES:
        title = title[1:]
    if title[-1:] in _QUOTES:
        title = title[:-1]
    title = title.strip()
    if len(title) > TITLE_MAX_LENGTH:
        title = title[: TITLE_MAX_LENGTH - 3] + "..."
    return title


class TitleSummarizer:
    """Generates a short conversation title with one small completion.

    Attributes:
        config: Summarizer model, sampling and window settings.
    """

    def __init__(self, client: UpstreamClientInterface, config: SummarizerConfig | None = None) -> None:
        self._client = client
        self.config = config or SummarizerConfig()

    def relevant_turns(self, turns: Sequence[ChatTurn]) -> list[ChatTurn]:
        """Last ``config.window`` non-system turns with non-empty text."""
        relevant = [turn for turn in turns if turn.role != "system" and turn.text.strip()]
        return relevant[-self.config.window :]

    def build_prompt(self, turns: Sequence[ChatTurn]) -> str:
        lines = [
            f"{'User' if turn.role == 'user' else 'Assistant'}: {turn.text[: self.config.turn_max_chars]}"
            for turn in turns
        ]
        return "Conversation:\n" + "\n\n".join(lines) + "\n\nTitle:"

    async def summarize(
        self,
        turns: Sequence[ChatTurn],
        api_key: str,
        *,
        zero_data_retention: bool = False,
    ) -> str:
        """Return a title for the conversation. Never raises."""
        relevant = self.relevant_turns(turns)
        if not relevant:
            return DEFAULT_TITLE

        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SUMMARY_PROMPT},
                {"role": "user", "content": self.build_prompt(relevant)},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        if zero_data_retention:
            payload["provider"] = {"zdr": True}

        source = "model"
        try:
            async with asyncio.timeout(self.config.timeout):
                response = await self._client.create_completion(
                    payload, api_key, operation="summarize", timeout=self.config.timeout
                )
            title = clean_title(extract_message_text(response))
        except Exception:  # noqa: BLE001
            logger.warning("title_generation_failed: using fallback", exc_info=True)
            title = ""

        if not title or title.lower() == DEFAULT_TITLE.lower():
            source = "fallback"
            title = fallback_title(relevant)

        log_request_event({"event": "title_generated", "status": "success", "source": source, "title": title})
        return title or DEFAULT_TITLE


__all__ = ["DEFAULT_TITLE", "TitleSummarizer", "clean_title", "fallback_title"]
