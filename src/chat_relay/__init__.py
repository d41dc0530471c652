"""Chat Relay - streaming multi-model chat relay for OpenRouter-compatible APIs."""

from chat_relay.client import AsyncUpstreamClient, UpstreamClientConfig, UpstreamError
from chat_relay.core import ModelCatalog, Settings, settings
from chat_relay.domain import RelayRequest, StreamEvent

__version__ = "1.0.0"

__all__ = [
    "AsyncUpstreamClient",
    "ModelCatalog",
    "RelayRequest",
    "Settings",
    "StreamEvent",
    "UpstreamClientConfig",
    "UpstreamError",
    "settings",
]
