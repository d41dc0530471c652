"""Conversation assembly for upstream requests.

Builds the ordered list of turns sent to a model:

    1. The caller's system prompt, with ``:model_name:``, ``:model_creator:``
       and ``:model_id:`` expanded for the target model
    2. The image-generation system prompt, for image-generation models
    3. Prior conversation history, unchanged
    4. The current user turn, multimodal when attachments are present
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from chat_relay.application.prompts import IMAGE_GENERATION_PROMPT
from chat_relay.core.catalog import ModelCatalog
from chat_relay.domain.entities import ChatTurn, ContentPart, MediaAttachment

_CONTROL_SEQUENCES = re.compile(r"<\|system\|>|<\|user\|>|<\|assistant\|>|\[system\]", re.IGNORECASE)
_VERSION_WORD = re.compile(r"^\d+(\.\d+)?")

_CREATOR_FIXUPS: tuple[tuple[str, str], ...] = (
    ("XAi", "xAI"),
    ("Openai", "OpenAI"),
    ("Mistralai", "Mistral AI"),
    ("Ai21", "AI21"),
)


def sanitize_input(text: str) -> str:
    """Remove role control sequences from user text and trim whitespace."""
    return _CONTROL_SEQUENCES.sub("", text).strip()


def _capitalize_first(word: str) -> str:
    return word[:1].upper() + word[1:]


def format_model_creator(model_id: str) -> str:
    """Display name of the model's provider, e.g. ``x-ai`` -> ``xAI``."""
    creator = model_id.split("/", 1)[0] if model_id else ""
    if not creator:
        return "Unknown"
    formatted = "".join(_capitalize_first(word) for word in creator.split("-"))
    for raw, fixed in _CREATOR_FIXUPS:
        formatted = formatted.replace(raw, fixed, 1)
    return formatted


def format_model_name(model_id: str) -> str:
    """Display name of the model, e.g. ``claude-4.5-sonnet`` -> ``Claude 4.5 Sonnet``."""
    parts = model_id.split("/")
    name = parts[1] if len(parts) > 1 and parts[1] else model_id
    return " ".join(
        word if _VERSION_WORD.match(word) else _capitalize_first(word) for word in name.split("-")
    )


def render_system_prompt(prompt: str, model_id: str) -> str:
    """Expand model placeholders in a caller-supplied system prompt."""
    if not prompt:
        return prompt
    return (
        prompt.replace(":model_name:", format_model_name(model_id))
        .replace(":model_creator:", format_model_creator(model_id))
        .replace(":model_id:", model_id)
    )


def build_user_turn(message: str, attachments: Sequence[MediaAttachment] = ()) -> ChatTurn:
    """Current user turn; image attachments become ``image_url`` parts."""
    if not attachments:
        return ChatTurn("user", message)

    parts: list[ContentPart] = []
    if message.strip():
        parts.append(ContentPart("text", text=message))
    parts.extend(
        ContentPart("image_url", image_url=attachment.url)
        for attachment in attachments
        if attachment.type == "image"
    )
    return ChatTurn("user", tuple(parts), attachments=tuple(attachments))


def build_conversation(
    history: Sequence[ChatTurn],
    message: str,
    attachments: Sequence[MediaAttachment],
    system_prompt: str | None,
    model_id: str,
    catalog: ModelCatalog,
) -> list[ChatTurn]:
    """Ordered turns for a request targeting ``model_id``.

    Args:
        history: Prior turns, passed through unchanged.
        message: Sanitized current user text.
        attachments: Media attached to the current turn.
        system_prompt: Caller system prompt template, or None.
        model_id: Model the placeholders are expanded for.
        catalog: Used to detect image-generation models.

    Returns:
        List of turns ending with the current user turn.
    """
    turns: list[ChatTurn] = []
    if system_prompt:
        turns.append(ChatTurn("system", render_system_prompt(system_prompt, model_id)))
    if catalog.supports_image_generation(model_id):
        turns.append(ChatTurn("system", IMAGE_GENERATION_PROMPT))
    turns.extend(history)
    turns.append(build_user_turn(message, attachments))
    return turns


__all__ = [
    "build_conversation",
    "build_user_turn",
    "format_model_creator",
    "format_model_name",
    "render_system_prompt",
    "sanitize_input",
]
