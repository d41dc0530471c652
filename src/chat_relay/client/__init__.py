"""Upstream chat-completions client."""

from chat_relay.client.upstream import (
    AsyncUpstreamClient,
    UpstreamClientConfig,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamStatusError,
    UpstreamTimeoutError,
    extract_message_text,
)

__all__ = [
    "AsyncUpstreamClient",
    "UpstreamClientConfig",
    "UpstreamConnectionError",
    "UpstreamError",
    "UpstreamStatusError",
    "UpstreamTimeoutError",
    "extract_message_text",
]
