"""Domain layer for the Chat Relay service.

This package contains pure domain models, value objects, and business rules
with no dependencies on frameworks, infrastructure, or external libraries.
"""

from chat_relay.domain.entities import (
    AggregateStats,
    ChatTurn,
    ContentEvent,
    ContentPart,
    DoneEvent,
    ErrorEvent,
    ImageOptions,
    MediaAttachment,
    RelayRequest,
    RouterDecision,
    RouterEvent,
    StatsEvent,
    StreamEvent,
    SummaryEvent,
    UsageStats,
)
from chat_relay.domain.exceptions import (
    DomainError,
    InvalidApiKeyError,
    InvalidModelError,
    InvalidRequestError,
)
from chat_relay.domain.value_objects import ApiKey, ModelIdentity

__all__ = [
    "AggregateStats",
    "ApiKey",
    "ChatTurn",
    "ContentEvent",
    "ContentPart",
    "DomainError",
    "DoneEvent",
    "ErrorEvent",
    "ImageOptions",
    "InvalidApiKeyError",
    "InvalidModelError",
    "InvalidRequestError",
    "MediaAttachment",
    "RelayRequest",
    "ModelIdentity",
    "RouterDecision",
    "RouterEvent",
    "StatsEvent",
    "StreamEvent",
    "SummaryEvent",
    "UsageStats",
]
