"""Domain entities for the Chat Relay service.

Pure domain models with no framework or infrastructure dependencies. All
entities are frozen dataclasses; anything sent upstream is immutable.

Design Principles:
    - Immutability: All entities are frozen dataclasses (slots=True)
    - Validation: Business rules enforced in __post_init__ methods
    - No I/O: Entities contain no file/network operations

Key Entities:
    - ChatTurn/ContentPart: One conversation turn, plain or multimodal
    - MediaAttachment: File attached to the current user turn
    - ImageOptions: Output options for image-generation models
    - RouterDecision: Auto-mode model choice
    - StreamEvent: Tagged union of normalized relay events
    - AggregateStats: Totals across all models of one request
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

Role = Literal["user", "assistant", "system"]
AttachmentType = Literal["image", "video", "document", "audio", "file"]

VALID_ROLES = {"user", "assistant", "system"}
"""Set of valid conversation roles."""

VALID_ATTACHMENT_TYPES = {"image", "video", "document", "audio", "file"}
"""Set of valid attachment types."""

ASPECT_RATIOS = ("1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9")
"""Aspect ratios accepted by image-generation models."""

IMAGE_SIZES = ("1K", "2K", "4K")
"""Output sizes accepted by image-generation models."""

MULTI_MODEL = "multi"
"""Model attribution of the final done event of a fan-out stream."""


@dataclass(slots=True, frozen=True)
class ContentPart:
    """One part of a multimodal turn: either text or an image reference.

    Attributes:
        type: ``"text"`` or ``"image_url"``.
        text: Text for text parts.
        image_url: URL or data URL for image parts.
    """

    type: Literal["text", "image_url"]
    text: str | None = None
    image_url: str | None = None

    def __post_init__(self) -> None:
        match self.type:
            case "text" if self.text is None:
                raise ValueError("Text part requires text")
            case "image_url" if not self.image_url:
                raise ValueError("Image part requires image_url")
            case "text" | "image_url":
                pass
            case _:
                raise ValueError(f"Invalid content part type: {self.type}")

    def to_payload(self) -> dict[str, Any]:
        """Upstream chat-completions representation of this part."""
        if self.type == "text":
            return {"type": "text", "text": self.text}
        return {"type": "image_url", "image_url": {"url": self.image_url}}


@dataclass(slots=True, frozen=True)
class MediaAttachment:
    """Media attached to the current user turn.

    Attributes:
        type: Attachment kind. Images and videos influence routing.
        url: Remote URL or inline ``data:`` URL.
        name: Original file name, if known.
        mime_type: MIME type, if known.
        size: Size in bytes, if known.
    """

    type: AttachmentType
    url: str
    name: str | None = None
    mime_type: str | None = None
    size: int | None = None

    def __post_init__(self) -> None:
        if self.type not in VALID_ATTACHMENT_TYPES:
            raise ValueError(f"Invalid attachment type: {self.type}")
        if not self.url:
            raise ValueError("Attachment url cannot be empty")

    @property
    def is_visual(self) -> bool:
        """True for image and video attachments."""
        return self.type in ("image", "video")


@dataclass(slots=True, frozen=True)
class ChatTurn:
    """One conversation turn.

    Attributes:
        role: ``user``, ``assistant`` or ``system``.
        content: Plain text, or an ordered tuple of ContentPart.
        attachments: Media attached to this turn.
    """

    role: Role
    content: str | tuple[ContentPart, ...]
    attachments: tuple[MediaAttachment, ...] = ()

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise ValueError(f"Invalid role '{self.role}'. Must be one of {sorted(VALID_ROLES)}")

    @property
    def text(self) -> str:
        """Concatenated text of the turn, ignoring image parts."""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text or "" for part in self.content if part.type == "text")

    def to_payload(self) -> dict[str, Any]:
        """Upstream chat-completions message for this turn."""
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [part.to_payload() for part in self.content]}


@dataclass(slots=True, frozen=True)
class ImageOptions:
    """Output options forwarded to image-generation models.

    Attributes:
        aspect_ratio: One of ASPECT_RATIOS, or None for the model default.
        image_size: One of IMAGE_SIZES, or None for the model default.
    """

    aspect_ratio: str | None = None
    image_size: str | None = None

    def __post_init__(self) -> None:
        if self.aspect_ratio is not None and self.aspect_ratio not in ASPECT_RATIOS:
            raise ValueError(f"Invalid aspect ratio: {self.aspect_ratio}")
        if self.image_size is not None and self.image_size not in IMAGE_SIZES:
            raise ValueError(f"Invalid image size: {self.image_size}")

    def to_payload(self) -> dict[str, str]:
        """``image_config`` request field, omitting unset options."""
        config: dict[str, str] = {}
        if self.aspect_ratio:
            config["aspect_ratio"] = self.aspect_ratio
        if self.image_size:
            config["image_size"] = self.image_size
        return config


RelayMode = Literal["auto", "manual"]


@dataclass(slots=True, frozen=True)
class RelayRequest:
    """Validated chat relay request.

    Attributes:
        message: Sanitized current user text.
        api_key: Caller's upstream bearer key.
        mode: ``auto`` routes to one model, ``manual`` fans out to ``models``.
        models: Requested models (manual mode only).
        attachments: Media attached to the current user turn.
        history: Prior conversation turns.
        system_prompt: System prompt template, or None.
        image_options: Output options for image-generation models.
        zero_data_retention: Ask the upstream to route to zero-retention providers.
    """

    message: str
    api_key: str
    mode: RelayMode = "auto"
    models: tuple[str, ...] = ()
    attachments: tuple[MediaAttachment, ...] = ()
    history: tuple[ChatTurn, ...] = ()
    system_prompt: str | None = None
    image_options: ImageOptions | None = None
    zero_data_retention: bool = False

    def __post_init__(self) -> None:
        if self.mode not in ("auto", "manual"):
            raise ValueError(f"Invalid mode: {self.mode}")
        if self.mode == "manual" and not self.models:
            raise ValueError("Manual mode requires at least one model")


@dataclass(slots=True, frozen=True)
class RouterDecision:
    """Model chosen for an auto-mode request and why."""

    model: str
    reasoning: str


@dataclass(slots=True, frozen=True)
class UsageStats:
    """Token usage, cost and latency of one completed model stream."""

    model: str
    tokens_in: int
    tokens_out: int
    cost: float
    latency_ms: float


@dataclass(slots=True, frozen=True)
class AggregateStats:
    """Totals across every model of one request.

    ``average_latency_ms`` is the mean over models that reported usage only;
    with no such model every field is zero.
    """

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0
    average_latency_ms: float = 0.0

    @classmethod
    def from_stats(cls, stats: list[UsageStats]) -> AggregateStats:
        """Aggregate per-model usage into request totals."""
        if not stats:
            return cls()
        return cls(
            total_input_tokens=sum(s.tokens_in for s in stats),
            total_output_tokens=sum(s.tokens_out for s in stats),
            total_cost=sum(s.cost for s in stats),
            average_latency_ms=sum(s.latency_ms for s in stats) / len(stats),
        )


@dataclass(slots=True, frozen=True)
class ContentEvent:
    """Text produced by one model."""

    model: str
    text: str


@dataclass(slots=True, frozen=True)
class StatsEvent:
    """Usage statistics of one model, emitted after its content."""

    model: str
    stats: UsageStats


@dataclass(slots=True, frozen=True)
class ErrorEvent:
    """Failure of one model's sub-stream."""

    model: str
    message: str


@dataclass(slots=True, frozen=True)
class DoneEvent:
    """End of one model's sub-stream, or of the whole fan-out when model is ``multi``."""

    model: str
    aggregate: AggregateStats | None = None


@dataclass(slots=True, frozen=True)
class RouterEvent:
    """Auto-mode routing outcome, emitted before any content."""

    decision: RouterDecision


@dataclass(slots=True, frozen=True)
class SummaryEvent:
    """Generated conversation title, emitted last."""

    title: str


StreamEvent = ContentEvent | StatsEvent | ErrorEvent | DoneEvent | RouterEvent | SummaryEvent
"""Any event produced by the relay."""


__all__ = [
    "ASPECT_RATIOS",
    "IMAGE_SIZES",
    "MULTI_MODEL",
    "AggregateStats",
    "ChatTurn",
    "ContentEvent",
    "ContentPart",
    "DoneEvent",
    "ErrorEvent",
    "ImageOptions",
    "MediaAttachment",
    "RelayMode",
    "RelayRequest",
    "RouterDecision",
    "RouterEvent",
    "StatsEvent",
    "StreamEvent",
    "SummaryEvent",
    "UsageStats",
]
