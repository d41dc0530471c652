"""Application layer for the Chat Relay service.

This package contains the relay use case and the components it orchestrates:
model routing, single-model streaming, multi-model fan-out and title
generation. It depends only on the domain layer and on interfaces
(protocols) for infrastructure.
"""

from chat_relay.application.fanout import MultiStreamMerger
from chat_relay.application.interfaces import (
    ModelStreamInterface,
    RouterInterface,
    SummarizerInterface,
    UpstreamClientInterface,
)
from chat_relay.application.router import ModelRouter
from chat_relay.application.streaming import SingleStreamAdapter
from chat_relay.application.summarizer import TitleSummarizer
from chat_relay.application.use_cases import RelayChatUseCase

__all__ = [
    "ModelRouter",
    "ModelStreamInterface",
    "MultiStreamMerger",
    "RelayChatUseCase",
    "RouterInterface",
    "SingleStreamAdapter",
    "SummarizerInterface",
    "TitleSummarizer",
    "UpstreamClientInterface",
]
