"""Service settings loaded from the environment.

Each concern has its own pydantic-settings section with an environment
prefix; ``Settings`` groups them and is built once per process
(``Settings.get_settings()``). A ``.env`` file in the working directory is
read as well. Bounds are checked on load, so a bad value fails at startup
instead of on the first request.

Sections and prefixes:
    - UpstreamConfig (``UPSTREAM_``): chat-completions endpoint, headers,
      pool size, retry and streaming timeouts
    - APIConfig (``API_``): uvicorn bind address, docs URLs, CORS
    - RateLimitConfig (``RATE_LIMIT_``): per-caller and global windows
    - RelayConfig (``RELAY_``): inbound limits, fan-out queue, tools, title wait
    - RouterConfig (``ROUTER_``): classifier model and call limits
    - SummarizerConfig (``SUMMARIZER_``): title model, window and truncation

Usage:
    from chat_relay.core.config import settings

    chunk_timeout = settings.upstream.chunk_timeout
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class UpstreamConfig(BaseSettings):
    """Upstream chat-completions API configuration.

    Attributes:
        base_url: API base URL; ``/chat/completions`` is appended. Must start
            with http:// or https://.
        referer: Value of the ``HTTP-Referer`` header sent upstream.
        app_title: Value of the ``X-Title`` header sent upstream.
        request_timeout: Timeout for non-streaming completions (seconds).
        connect_timeout: TCP connect timeout (seconds).
        chunk_timeout: Maximum wait for a single streamed line (seconds).
        stream_timeout: Maximum total duration of one streamed response (seconds).
        max_connections: Connection pool size.
        max_keepalive_connections: Idle connections kept in the pool.
        max_retries: Attempts for non-streaming completions on connect errors.
        retry_delay: Wait between retry attempts (seconds).
    """

    model_config = SettingsConfigDict(
        env_prefix="UPSTREAM_",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = Field(default="https://openrouter.ai/api/v1", description="Upstream API base URL")
    referer: str = Field(default="https://selfhostablechat.app", description="HTTP-Referer header value")
    app_title: str = Field(default="Self-Hostable Chat", description="X-Title header value")
    request_timeout: float = Field(default=30.0, gt=0, le=600.0, description="Completion timeout (seconds)")
    connect_timeout: float = Field(default=10.0, gt=0, le=120.0, description="Connect timeout (seconds)")
    chunk_timeout: float = Field(default=30.0, gt=0, le=600.0, description="Per-chunk read timeout (seconds)")
    stream_timeout: float = Field(default=120.0, gt=0, le=3600.0, description="Whole-stream timeout (seconds)")
    max_connections: int = Field(default=50, ge=1, le=1000, description="Max pooled connections")
    max_keepalive_connections: int = Field(default=20, ge=0, le=1000, description="Max idle connections")
    max_retries: int = Field(default=3, ge=1, le=10, description="Completion attempts on connect errors")
    retry_delay: float = Field(default=0.5, ge=0.0, le=30.0, description="Delay between attempts (seconds)")

    @property
    def completions_url(self) -> str:
        """Full URL of the chat-completions endpoint."""
        return f"{self.base_url.rstrip('/')}/chat/completions"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url starts with http:// or https://."""
        if not v.startswith(("http://", "https://")):
            msg = "base_url must start with http:// or https://"
            raise ValueError(msg)
        return v


class APIConfig(BaseSettings):
    """FastAPI server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="API_",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="0.0.0.0", description="API server host")
    port: int = Field(default=8000, ge=1, le=65535, description="API server port")
    reload: bool = Field(default=False, description="Enable auto-reload (development)")
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(
        default="info", description="Logging level"
    )
    title: str = Field(default="Chat Relay API", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    docs_url: str = Field(default="/api/docs", description="OpenAPI docs URL")
    openapi_url: str = Field(default="/api/openapi.json", description="OpenAPI spec URL")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")


class RateLimitConfig(BaseSettings):
    """Rate limiter configuration.

    Two fixed-window limiters are composed: one keyed by caller identity and
    one shared global limiter.
    """

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
        extra="ignore",
    )

    caller_limit: int = Field(default=60, ge=1, description="Requests per caller per window")
    caller_window: float = Field(default=60.0, gt=0, description="Per-caller window (seconds)")
    global_limit: int = Field(default=100, ge=1, description="Requests globally per window")
    global_window: float = Field(default=60.0, gt=0, description="Global window (seconds)")
    max_entries: int = Field(default=10_000, ge=1, description="Max tracked keys per limiter")
    sweep_interval: float = Field(default=60.0, gt=0, description="Expired-entry sweep interval (seconds)")


class RelayConfig(BaseSettings):
    """Inbound chat request limits and fan-out settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        case_sensitive=False,
        extra="ignore",
    )

    max_message_length: int = Field(default=10_000, ge=1, description="Max user message characters")
    max_conversation_history: int = Field(default=100, ge=0, description="Max history turns per request")
    max_models_per_request: int = Field(default=10, ge=1, le=50, description="Max models in manual mode")
    fanout_queue_size: int = Field(default=256, ge=1, description="Bounded fan-out queue capacity")
    enable_tools: bool = Field(default=False, description="Send tool definitions upstream")
    title_timeout: float = Field(default=15.0, gt=0, description="Max wait for the title (seconds)")


class RouterConfig(BaseSettings):
    """Auto-mode classifier call configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTER_",
        case_sensitive=False,
        extra="ignore",
    )

    model: str = Field(default="openai/gpt-oss-20b", description="Classifier model")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0, description="Classifier temperature")
    max_tokens: int = Field(default=150, ge=1, description="Classifier max tokens")
    timeout: float = Field(default=10.0, gt=0, description="Classifier call timeout (seconds)")
    default_model: str = Field(default="x-ai/grok-4.1-fast", description="Fallback model")


class SummarizerConfig(BaseSettings):
    """Title summarizer call configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUMMARIZER_",
        case_sensitive=False,
        extra="ignore",
    )

    model: str = Field(default="openai/gpt-oss-20b", description="Summarizer model")
    temperature: float = Field(default=0.5, ge=0.0, le=2.0, description="Summarizer temperature")
    max_tokens: int = Field(default=50, ge=1, description="Summarizer max tokens")
    timeout: float = Field(default=10.0, gt=0, description="Summarizer call timeout (seconds)")
    window: int = Field(default=5, ge=1, description="Trailing turns included in the prompt")
    turn_max_chars: int = Field(default=500, ge=1, description="Per-turn truncation length")


class Settings(BaseSettings):
    """All configuration sections.

    Environment variables win over ``.env`` values, which win over defaults.
    The instance is cached, so environment changes need a restart.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)

    @classmethod
    @lru_cache(maxsize=1)
    def get_settings(cls) -> Settings:
        """Get cached settings instance (singleton pattern)."""
        return cls()


# Global settings instance
settings = Settings.get_settings()

__all__ = [
    "APIConfig",
    "RateLimitConfig",
    "RelayConfig",
    "RouterConfig",
    "Settings",
    "SummarizerConfig",
    "UpstreamConfig",
    "settings",
]
