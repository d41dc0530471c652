"""Core helpers for the Chat Relay service."""

from chat_relay.core.catalog import ModelCatalog, ModelPricing
from chat_relay.core.config import Settings, settings
from chat_relay.core.rate_limiter import (
    CompositeRateLimiter,
    RateLimiter,
    RateLimitResult,
    RateLimitSweeper,
)

__all__ = [
    "CompositeRateLimiter",
    "ModelCatalog",
    "ModelPricing",
    "RateLimitResult",
    "RateLimitSweeper",
    "RateLimiter",
    "Settings",
    "settings",
]
