"""Pydantic models for API requests and responses.

This module defines the request and response shapes of the relay's HTTP
API. Inbound field names are camelCase to stay compatible with existing
front-ends; response models use snake_case like the rest of the service.

Design Principles:
    - Validation: Structural checks only. Business rules (API key format,
      message limits, allowed models) are enforced in ``api.validators`` so
      each violation maps to a stable error code.
    - Compatibility: Unknown inbound fields are ignored
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Request Models
# ============================================================================


class AttachmentModel(BaseModel):
    """Media attached to the current user message."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: Literal["image", "video", "document", "audio", "file"] = Field(
        ..., description="Attachment kind"
    )
    url: str = Field(..., min_length=1, description="Remote URL or data URL")
    name: str | None = Field(None, description="Original file name")
    mime_type: str | None = Field(None, alias="mimeType", description="MIME type")
    size: int | None = Field(None, ge=0, description="Size in bytes")


class ImageURLModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = Field(..., min_length=1)


class ContentPartModel(BaseModel):
    """One part of a multimodal history message."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["text", "image_url"]
    text: str | None = None
    image_url: ImageURLModel | None = None


class HistoryMessage(BaseModel):
    """A prior conversation turn."""

    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant", "system"] = Field(..., description="Message role")
    content: str | list[ContentPartModel] = Field(..., description="Plain text or content parts")


class ImageOptionsModel(BaseModel):
    """Output options for image-generation models."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    aspect_ratio: str | None = Field(None, alias="aspectRatio", description="e.g. '16:9'")
    image_size: str | None = Field(None, alias="imageSize", description="'1K', '2K' or '4K'")


class ChatRequest(BaseModel):
    """Request body of ``POST /api/chat``.

    Attributes:
        message: Current user message.
        attachments: Media attached to the message.
        mode: ``auto`` lets the router choose one model; ``manual`` fans out
            to every model in ``models``.
        models: Models for manual mode.
        api_key: Caller's upstream API key.
        conversation_history: Prior turns, oldest first.
        system_prompt: System prompt; may contain ``:model_name:``,
            ``:model_creator:`` and ``:model_id:`` placeholders.
        image_options: Output options for image-generation models.
        zero_data_retention: Restrict upstream routing to zero-retention providers.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str = Field(..., description="Current user message")
    attachments: list[AttachmentModel] = Field(default_factory=list, description="Attachments")
    mode: Literal["auto", "manual"] = Field("auto", description="Routing mode")
    models: list[str] = Field(default_factory=list, description="Models for manual mode")
    api_key: str = Field(..., alias="apiKey", description="Upstream API key")
    conversation_history: list[HistoryMessage] = Field(
        default_factory=list, alias="conversationHistory", description="Prior turns"
    )
    system_prompt: str | None = Field(None, alias="systemPrompt", description="System prompt")
    image_options: ImageOptionsModel | None = Field(
        None, alias="imageOptions", description="Image generation options"
    )
    zero_data_retention: bool = Field(
        False, alias="zeroDataRetention", description="Zero data retention routing"
    )


# ============================================================================
# Response Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error body: ``{"error": ..., "code": ...}`` plus extra fields."""

    model_config = ConfigDict(extra="allow")

    error: str = Field(..., description="Error message")
    code: str | None = Field(None, description="Stable error code")


class ModelPricingInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input: float = Field(..., ge=0.0, description="USD per 1K input tokens")
    output: float = Field(..., ge=0.0, description="USD per 1K output tokens")


class ModelInfo(BaseModel):
    """Capabilities and pricing of one model."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Model identifier")
    supports_images: bool = Field(..., description="Accepts image input")
    supports_image_generation: bool = Field(..., description="Produces images")
    supports_streaming: bool = Field(True, description="Supports streamed output")
    context_window: int = Field(..., ge=0, description="Context window in tokens")
    auto_selectable: bool = Field(..., description="May be chosen by the router")
    pricing_per_1k: ModelPricingInfo = Field(..., description="Token pricing")


class ModelsResponse(BaseModel):
    """Response model for the model catalogue endpoint."""

    model_config = ConfigDict(extra="forbid")

    models: list[ModelInfo] = Field(..., description="Available models")
    default_model: str = Field(..., description="Fallback model for auto mode")


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"] = Field(..., description="Service status")
    upstream: str = Field(..., description="Upstream API base URL")
    version: str = Field(..., description="API version")


class MetricsResponse(BaseModel):
    """Structured response for /metrics endpoint."""

    model_config = ConfigDict(extra="forbid")

    total_requests: int = Field(..., ge=0, description="Total upstream calls observed")
    successful_requests: int = Field(..., ge=0, description="Successful calls")
    failed_requests: int = Field(..., ge=0, description="Failed calls")
    requests_by_model: dict[str, int] = Field(default_factory=dict, description="Calls per model")
    requests_by_operation: dict[str, int] = Field(
        default_factory=dict, description="Calls per operation (stream, route, summarize)"
    )
    average_latency_ms: float = Field(..., ge=0.0, description="Average latency (ms)")
    p50_latency_ms: float = Field(..., ge=0.0, description="50th percentile latency (ms)")
    p95_latency_ms: float = Field(..., ge=0.0, description="95th percentile latency (ms)")
    p99_latency_ms: float = Field(..., ge=0.0, description="99th percentile latency (ms)")
    errors_by_type: dict[str, int] = Field(default_factory=dict, description="Errors per type")
    total_input_tokens: int = Field(0, ge=0, description="Prompt tokens across streams")
    total_output_tokens: int = Field(0, ge=0, description="Completion tokens across streams")
    total_cost: float = Field(0.0, ge=0.0, description="USD cost across streams")
    last_request_time: datetime | None = Field(None, description="Most recent call")
    first_request_time: datetime | None = Field(None, description="Earliest call included")


class RateLimitStatsResponse(BaseModel):
    """Entry counts of the caller and global limiters."""

    model_config = ConfigDict(extra="forbid")

    caller: dict[str, Any] = Field(..., description="Per-caller limiter stats")
    global_: dict[str, Any] = Field(..., alias="global", description="Global limiter stats")


@dataclass(slots=True, frozen=True)
class RequestContext:
    """Context for tracking API requests.

    Attributes:
        request_id: Unique request identifier (UUID string).
        client_ip: Client IP address; also the per-caller rate limit key.
        user_agent: User-Agent header value. None if not present.
    """

    request_id: str
    client_ip: str
    user_agent: str | None = None


__all__ = [
    "AttachmentModel",
    "ChatRequest",
    "ContentPartModel",
    "ErrorResponse",
    "HealthResponse",
    "HistoryMessage",
    "ImageOptionsModel",
    "MetricsResponse",
    "ModelInfo",
    "ModelsResponse",
    "RateLimitStatsResponse",
    "RequestContext",
]
