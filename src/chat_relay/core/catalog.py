"""Immutable model catalogue: pricing, capabilities and allow-lists.

The catalogue is built once at startup (``ModelCatalog.default()``) and
injected into the stream adapter, router, summarizer and API layer. Nothing
in it is mutable after construction, so it is safe to share across
concurrent requests.

Key Features:
    - Cost Table: USD per 1K input/output tokens, with a default fallback rate
    - Capabilities: image input, image generation, context window
    - Allow-Lists: models accepted in manual mode and selectable by the router
    - Fixed Routes: vision model, image-generation model, default model
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from chat_relay.domain.value_objects import ModelIdentity

DEFAULT_CONTEXT_WINDOW = 128_000
"""Context window reported for models without a known value."""


@dataclass(slots=True, frozen=True)
class ModelPricing:
    """Price in USD per 1K tokens."""

    input: float
    output: float

    def cost(self, tokens_in: int, tokens_out: int) -> float:
        """Cost of one completion with the given token counts."""
        return (tokens_in * self.input + tokens_out * self.output) / 1000


DEFAULT_PRICING = ModelPricing(input=0.001, output=0.005)
"""Rate applied to models missing from the cost table."""

_MODEL_COSTS: dict[str, ModelPricing] = {
    "deepseek/deepseek-r1-distill-qwen-32b": ModelPricing(0.0002, 0.0008),
    "x-ai/grok-4.1-fast": ModelPricing(0.001, 0.005),
    "google/gemini-2.5-flash-lite": ModelPricing(0.0001, 0.0004),
    "google/gemini-3-flash-preview": ModelPricing(0.00015, 0.0006),
    "anthropic/claude-4.5-sonnet": ModelPricing(0.003, 0.015),
    "openai/gpt-4o": ModelPricing(0.01, 0.03),
    "openai/gpt-oss-20b": ModelPricing(0.0005, 0.002),
    "google/gemini-2.5-flash-image": ModelPricing(0.0002, 0.0008),
    "bytedance-seed/seedream-4.5": ModelPricing(0.001, 0.003),
    "google/gemini-3-pro-image-preview": ModelPricing(0.0, 0.0),
}

_ALLOWED_MODELS = (
    "openai/gpt-oss-20b:free",
    "openai/gpt-oss-20b",
    "openai/gpt-oss-120b",
    "openai/gpt-4o-mini",
    "openai/gpt-5.1",
    "openai/gpt-5.2",
    "openai/gpt-5-mini",
    "x-ai/grok-4.1-fast",
    "google/gemini-2.5-flash-lite",
    "google/gemini-3-flash-preview",
    "anthropic/claude-4.5-sonnet",
    "anthropic/claude-opus-4.5",
    "bytedance-seed/seedream-4.5",
    "google/gemini-3-pro-image-preview",
    "google/gemini-2.5-flash-image",
    "black-forest-labs/flux.2-pro",
    "black-forest-labs/flux.2-flex",
    "sourceful/riverflow-v2-standard-preview",
)

_AUTO_SUPPORTED_MODELS = (
    "openai/gpt-oss-20b:free",
    "openai/gpt-oss-20b",
    "openai/gpt-oss-120b",
    "openai/gpt-4o-mini",
    "openai/gpt-5.1",
    "openai/gpt-5.2",
    "openai/gpt-5-mini",
    "x-ai/grok-4.1-fast",
    "google/gemini-2.5-flash-lite",
    "google/gemini-3-flash-preview",
    "anthropic/claude-4.5-sonnet",
    "anthropic/claude-opus-4.5",
    "bytedance-seed/seedream-4.5",
    "google/gemini-3-pro-image-preview",
    "google/gemini-2.5-flash-image",
    "deepseek/deepseek-v3.2",
    "meta/llama-4-scout",
    "meta/llama-4-maverick",
    "moonshotai/kimi-k2",
    "moonshotai/kimi-k2.5",
    "minimax/minimax-m2.1",
)

_IMAGE_MODELS = (
    "google/gemini-2.5-flash-lite",
    "google/gemini-3-flash-preview",
    "google/gemini-3-pro-preview",
    "openai/gpt-4o-mini",
    "openai/gpt-5.1",
    "openai/gpt-5.2",
    "openai/gpt-5-mini",
    "anthropic/claude-4.5-sonnet",
    "anthropic/claude-opus-4.5",
    "google/gemini-2.5-flash-image",
    "google/gemini-3-pro-image-preview",
)

_IMAGE_GENERATION_MODELS = (
    "google/gemini-2.5-flash-image",
    "google/gemini-3-pro-image-preview",
    "black-forest-labs/flux.2-pro",
    "black-forest-labs/flux.2-flex",
    "sourceful/riverflow-v2-standard-preview",
    "bytedance-seed/seedream-4.5",
)

_CONTEXT_WINDOWS: dict[str, int] = {
    "openai/gpt-oss-20b:free": 131_072,
    "openai/gpt-oss-20b": 131_072,
    "openai/gpt-4o-mini": 128_000,
    "openai/gpt-5.1": 400_000,
    "openai/gpt-5.2": 400_000,
    "x-ai/grok-4.1-fast": 2_000_000,
    "moonshotai/kimi-k2": 262_144,
    "moonshotai/kimi-k2.5": 262_144,
    "minimax/minimax-m2.1": 196_608,
    "anthropic/claude-opus-4.5": 200_000,
    "deepseek/deepseek-v3.2": 163_840,
    "google/gemini-2.5-flash-lite": 1_000_000,
    "google/gemini-3-flash-preview": 1_000_000,
    "google/gemini-3-pro-preview": 2_000_000,
    "google/gemini-3-pro-image-preview": 4_096,
    "google/gemini-2.5-flash-image": 1_000_000,
}


def _frozen(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(slots=True, frozen=True)
class ModelCatalog:
    """Read-only lookup tables describing upstream models.

    Lookups that take a model id accept ``:modifier`` variants and resolve
    them against the base id when the full id is not listed, so
    ``x-ai/grok-4.1-fast:online`` is priced like ``x-ai/grok-4.1-fast``.

    Attributes:
        costs: Pricing per model id.
        default_pricing: Rate for models missing from ``costs``.
        allowed_models: Models accepted in manual mode.
        auto_models: Models the router may select.
        image_models: Models accepting image input.
        image_generation_models: Models producing images.
        context_windows: Known context window sizes.
        vision_model: Route for requests with image/video attachments.
        image_generation_model: Route for image-generation requests.
        default_model: Route when classification fails.
    """

    costs: Mapping[str, ModelPricing] = field(default_factory=lambda: _frozen(_MODEL_COSTS))
    default_pricing: ModelPricing = DEFAULT_PRICING
    allowed_models: frozenset[str] = frozenset(_ALLOWED_MODELS)
    auto_models: frozenset[str] = frozenset(_AUTO_SUPPORTED_MODELS)
    image_models: frozenset[str] = frozenset(_IMAGE_MODELS)
    image_generation_models: frozenset[str] = frozenset(_IMAGE_GENERATION_MODELS)
    context_windows: Mapping[str, int] = field(default_factory=lambda: _frozen(_CONTEXT_WINDOWS))
    vision_model: str = "google/gemini-2.5-flash-image"
    image_generation_model: str = "google/gemini-3-pro-image-preview"
    default_model: str = "x-ai/grok-4.1-fast"

    @classmethod
    def default(cls, *, default_model: str | None = None) -> ModelCatalog:
        """Catalogue with the built-in tables."""
        if default_model is None:
            return cls()
        return cls(default_model=default_model)

    @staticmethod
    def _candidates(model: str) -> tuple[str, ...]:
        base = ModelIdentity(model).base_id
        return (model,) if base == model else (model, base)

    def _lookup(self, table: Iterable[str] | Mapping[str, Any], model: str) -> str | None:
        for candidate in self._candidates(model):
            if candidate in table:
                return candidate
        return None

    def pricing_for(self, model: str) -> ModelPricing:
        """Pricing for a model, falling back to ``default_pricing``."""
        key = self._lookup(self.costs, model)
        return self.costs[key] if key is not None else self.default_pricing

    def cost(self, model: str, tokens_in: int, tokens_out: int) -> float:
        """USD cost of one completion."""
        return self.pricing_for(model).cost(tokens_in, tokens_out)

    def is_allowed(self, model: str) -> bool:
        """True when the model may be requested explicitly."""
        return self._lookup(self.allowed_models, model) is not None

    def is_auto_selectable(self, model: str) -> bool:
        """True when the router may pick the model. Exact match only."""
        return model in self.auto_models

    def supports_images(self, model: str) -> bool:
        return self._lookup(self.image_models, model) is not None

    def supports_image_generation(self, model: str) -> bool:
        return self._lookup(self.image_generation_models, model) is not None

    def context_window(self, model: str) -> int:
        key = self._lookup(self.context_windows, model)
        return self.context_windows[key] if key is not None else DEFAULT_CONTEXT_WINDOW

    def invalid_models(self, models: Iterable[str]) -> list[str]:
        """Models from ``models`` that are not allowed, in input order."""
        return [m for m in models if not self.is_allowed(m)]

    def describe(self, model: str) -> dict[str, Any]:
        """JSON-serializable capability and pricing summary of a model."""
        pricing = self.pricing_for(model)
        return {
            "id": model,
            "supports_images": self.supports_images(model),
            "supports_image_generation": self.supports_image_generation(model),
            "supports_streaming": True,
            "context_window": self.context_window(model),
            "auto_selectable": self.is_auto_selectable(model),
            "pricing_per_1k": {"input": pricing.input, "output": pricing.output},
        }

    def list_models(self) -> list[dict[str, Any]]:
        """Summaries of every model accepted in manual or auto mode, sorted by id."""
        return [self.describe(m) for m in sorted(self.allowed_models | self.auto_models)]


__all__ = ["DEFAULT_CONTEXT_WINDOW", "DEFAULT_PRICING", "ModelCatalog", "ModelPricing"]
