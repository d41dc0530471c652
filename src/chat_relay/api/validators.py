"""Chat request validation.

Turns a decoded JSON body into a ``RelayRequest``. Checks run in a fixed
order and the first violation is raised as ``InvalidRequestError`` with a
stable code:

    1. API key present (``API_KEY_REQUIRED``) and well-formed (``INVALID_API_KEY``)
    2. Message present (``MESSAGE_REQUIRED``), within length (``MESSAGE_TOO_LONG``)
       and non-empty after sanitization (``MESSAGE_EMPTY``)
    3. Body structure (``INVALID_REQUEST``)
    4. History length (``HISTORY_TOO_LONG``)
    5. Manual-mode models allowed (``INVALID_MODEL``), present
       (``MODELS_REQUIRED``) and not too many (``TOO_MANY_MODELS``)
    6. Image options (``INVALID_IMAGE_OPTIONS``)
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from chat_relay.api.models import ChatRequest, HistoryMessage
from chat_relay.application.conversation import sanitize_input
from chat_relay.core.catalog import ModelCatalog
from chat_relay.core.config import RelayConfig
from chat_relay.domain.entities import (
    ChatTurn,
    ContentPart,
    ImageOptions,
    MediaAttachment,
    RelayRequest,
)
from chat_relay.domain.exceptions import (
    InvalidApiKeyError,
    InvalidModelError,
    InvalidRequestError,
)
from chat_relay.domain.value_objects import ApiKey


def validate_api_key(value: Any) -> str:
    if not value:
        raise InvalidApiKeyError("API key is required", "API_KEY_REQUIRED")
    if not isinstance(value, str):
        raise InvalidApiKeyError("Invalid API key format", "INVALID_API_KEY")
    try:
        return ApiKey(value).value
    except ValueError as exc:
        raise InvalidApiKeyError(str(exc), "INVALID_API_KEY") from exc


def validate_message(value: Any, max_length: int) -> str:
    """Return the sanitized message or raise the matching InvalidRequestError."""
    if not value or not isinstance(value, str):
        raise InvalidRequestError("Message is required", "MESSAGE_REQUIRED")
    if len(value) > max_length:
        raise InvalidRequestError(
            f"Message exceeds maximum length of {max_length} characters", "MESSAGE_TOO_LONG"
        )
    sanitized = sanitize_input(value)
    if not sanitized:
        raise InvalidRequestError("Message cannot be empty after sanitization", "MESSAGE_EMPTY")
    return sanitized


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid request body: {first.get('msg', 'invalid value')} at {location or 'body'}"


def to_chat_turn(message: HistoryMessage) -> ChatTurn:
    if isinstance(message.content, str):
        return ChatTurn(message.role, message.content)
    parts = []
    for part in message.content:
        if part.type == "text":
            parts.append(ContentPart("text", text=part.text or ""))
        elif part.image_url is not None:
            parts.append(ContentPart("image_url", image_url=part.image_url.url))
    return ChatTurn(message.role, tuple(parts))


def validate_chat_request(
    body: Any,
    config: RelayConfig,
    catalog: ModelCatalog,
) -> RelayRequest:
    """Validate a decoded chat request body.

    Args:
        body: Decoded JSON body.
        config: Request limits.
        catalog: Model catalogue for the manual-mode allow-list.

    Returns:
        Validated request ready for the relay use case.

    Raises:
        InvalidRequestError: First rule the body violates.
    """
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object", "INVALID_REQUEST")

    api_key = validate_api_key(body.get("apiKey"))
    message = validate_message(body.get("message"), config.max_message_length)

    try:
        request = ChatRequest.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequestError(_first_error(exc), "INVALID_REQUEST") from exc

    if len(request.conversation_history) > config.max_conversation_history:
        raise InvalidRequestError(
            f"Conversation history exceeds maximum of {config.max_conversation_history} messages",
            "HISTORY_TOO_LONG",
        )

    models: tuple[str, ...] = ()
    if request.mode == "manual":
        invalid = catalog.invalid_models(request.models)
        if invalid:
            raise InvalidModelError(invalid)
        if not request.models:
            raise InvalidRequestError("Models are required for manual mode", "MODELS_REQUIRED")
        if len(request.models) > config.max_models_per_request:
            raise InvalidRequestError(
                f"At most {config.max_models_per_request} models can be requested at once",
                "TOO_MANY_MODELS",
            )
        # Duplicates would share one model id on the wire.
        models = tuple(dict.fromkeys(request.models))

    image_options = None
    if request.image_options is not None:
        try:
            image_options = ImageOptions(
                aspect_ratio=request.image_options.aspect_ratio,
                image_size=request.image_options.image_size,
            )
        except ValueError as exc:
            raise InvalidRequestError(str(exc), "INVALID_IMAGE_OPTIONS") from exc

    return RelayRequest(
        message=message,
        api_key=api_key,
        mode=request.mode,
        models=models,
        attachments=tuple(
            MediaAttachment(
                type=attachment.type,
                url=attachment.url,
                name=attachment.name,
                mime_type=attachment.mime_type,
                size=attachment.size,
            )
            for attachment in request.attachments
        ),
        history=tuple(to_chat_turn(turn) for turn in request.conversation_history),
        system_prompt=request.system_prompt or None,
        image_options=image_options,
        zero_data_retention=request.zero_data_retention,
    )


__all__ = [
    "to_chat_turn",
    "validate_api_key",
    "validate_chat_request",
    "validate_message",
]
