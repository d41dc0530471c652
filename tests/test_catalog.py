"""
Behavioral tests for the model catalogue.
"""

import dataclasses

import pytest

from chat_relay.core.catalog import DEFAULT_CONTEXT_WINDOW, DEFAULT_PRICING, ModelCatalog, ModelPricing


class TestPricing:
    def test_known_model_cost(self, catalog):
        cost = catalog.cost("anthropic/claude-4.5-sonnet", 1000, 1000)
        assert cost == pytest.approx(0.003 + 0.015)

    def test_unknown_model_uses_default_rate(self, catalog):
        assert catalog.pricing_for("someone/unknown-model") == DEFAULT_PRICING
        assert catalog.cost("someone/unknown-model", 2000, 1000) == pytest.approx(0.002 + 0.005)

    def test_modifier_priced_like_base_model(self, catalog):
        assert catalog.pricing_for("x-ai/grok-4.1-fast:online") == catalog.pricing_for("x-ai/grok-4.1-fast")

    def test_zero_tokens_cost_nothing(self, catalog):
        assert catalog.cost("openai/gpt-4o", 0, 0) == 0.0

    def test_pricing_cost_formula(self):
        assert ModelPricing(0.5, 1.0).cost(2000, 3000) == pytest.approx(4.0)


class TestAllowLists:
    def test_allowed_model(self, catalog):
        assert catalog.is_allowed("anthropic/claude-4.5-sonnet")

    def test_listed_modifier_variant_allowed(self, catalog):
        assert catalog.is_allowed("openai/gpt-oss-20b:free")

    def test_online_variant_of_allowed_model_allowed(self, catalog):
        assert catalog.is_allowed("x-ai/grok-4.1-fast:online")

    def test_unknown_model_not_allowed(self, catalog):
        assert not catalog.is_allowed("evil/model")

    def test_auto_selectable_requires_exact_id(self, catalog):
        assert catalog.is_auto_selectable("moonshotai/kimi-k2")
        assert not catalog.is_auto_selectable("x-ai/grok-4.1-fast:online")

    def test_invalid_models_preserves_order(self, catalog):
        models = ["b/unknown", "x-ai/grok-4.1-fast", "a/unknown"]
        assert catalog.invalid_models(models) == ["b/unknown", "a/unknown"]


class TestCapabilities:
    def test_image_generation_models(self, catalog):
        assert catalog.supports_image_generation("google/gemini-3-pro-image-preview")
        assert not catalog.supports_image_generation("x-ai/grok-4.1-fast")

    def test_image_input_models(self, catalog):
        assert catalog.supports_images("openai/gpt-4o-mini")
        assert not catalog.supports_images("moonshotai/kimi-k2")

    def test_context_window(self, catalog):
        assert catalog.context_window("x-ai/grok-4.1-fast") == 2_000_000
        assert catalog.context_window("someone/unknown-model") == DEFAULT_CONTEXT_WINDOW

    def test_fixed_routes(self, catalog):
        assert catalog.vision_model == "google/gemini-2.5-flash-image"
        assert catalog.image_generation_model == "google/gemini-3-pro-image-preview"
        assert catalog.default_model == "x-ai/grok-4.1-fast"


class TestCatalogConstruction:
    def test_default_model_override(self):
        catalog = ModelCatalog.default(default_model="openai/gpt-4o-mini")
        assert catalog.default_model == "openai/gpt-4o-mini"

    def test_catalog_is_immutable(self, catalog):
        with pytest.raises(dataclasses.FrozenInstanceError):
            catalog.default_model = "other/model"  # type: ignore[misc]

    def test_cost_table_is_read_only(self, catalog):
        with pytest.raises(TypeError):
            catalog.costs["new/model"] = ModelPricing(0, 0)  # type: ignore[index]


class TestListing:
    def test_list_models_sorted_and_deduplicated(self, catalog):
        ids = [model["id"] for model in catalog.list_models()]
        assert ids == sorted(set(ids))
        assert "moonshotai/kimi-k2" in ids
        assert "black-forest-labs/flux.2-pro" in ids

    def test_describe(self, catalog):
        described = catalog.describe("anthropic/claude-4.5-sonnet")
        assert described == {
            "id": "anthropic/claude-4.5-sonnet",
            "supports_images": True,
            "supports_image_generation": False,
            "supports_streaming": True,
            "context_window": DEFAULT_CONTEXT_WINDOW,
            "auto_selectable": True,
            "pricing_per_1k": {"input": 0.003, "output": 0.015},
        }
