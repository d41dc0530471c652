"""
Behavioral tests for domain entities and value objects.

Tests focus on validation rules and upstream payload shapes.
"""

import pytest

from chat_relay.domain.entities import (
    AggregateStats,
    ChatTurn,
    ContentPart,
    ImageOptions,
    MediaAttachment,
    RelayRequest,
    UsageStats,
)
from chat_relay.domain.exceptions import InvalidApiKeyError, InvalidModelError, InvalidRequestError
from chat_relay.domain.value_objects import ApiKey, ModelIdentity

from tests.helpers import VALID_API_KEY


class TestModelIdentity:
    def test_parts_of_full_identifier(self):
        identity = ModelIdentity("x-ai/grok-4.1-fast:online")
        assert identity.provider == "x-ai"
        assert identity.name == "grok-4.1-fast"
        assert identity.base_id == "x-ai/grok-4.1-fast"
        assert identity.modifier == "online"
        assert identity.is_online

    def test_identifier_without_modifier(self):
        identity = ModelIdentity("openai/gpt-4o")
        assert identity.modifier is None
        assert not identity.is_online

    def test_identifier_without_provider(self):
        assert ModelIdentity("local-model").provider == ""

    def test_str_returns_raw_value(self):
        assert str(ModelIdentity("openai/gpt-oss-20b:free")) == "openai/gpt-oss-20b:free"

    @pytest.mark.parametrize("value", ["", "   "])
    def test_empty_identifier_rejected(self, value):
        with pytest.raises(ValueError, match="cannot be empty"):
            ModelIdentity(value)


class TestApiKey:
    def test_valid_key(self):
        assert ApiKey(VALID_API_KEY).value == VALID_API_KEY

    @pytest.mark.parametrize(
        "value",
        [
            "sk-short",
            "pk-" + "a" * 30,
            "sk-" + "a" * 10 + " " + "b" * 10,
            "sk-" + "a" * 10 + "!" + "b" * 10,
        ],
    )
    def test_malformed_keys_rejected(self, value):
        with pytest.raises(ValueError, match="Invalid API key format"):
            ApiKey(value)

    def test_repr_masks_key(self):
        assert VALID_API_KEY not in repr(ApiKey(VALID_API_KEY))


class TestChatTurn:
    def test_plain_payload(self):
        assert ChatTurn("user", "hi").to_payload() == {"role": "user", "content": "hi"}

    def test_multimodal_payload(self):
        turn = ChatTurn(
            "user",
            (ContentPart("text", text="look"), ContentPart("image_url", image_url="https://x/img.png")),
        )
        assert turn.to_payload() == {
            "role": "user",
            "content": [
                {"type": "text", "text": "look"},
                {"type": "image_url", "image_url": {"url": "https://x/img.png"}},
            ],
        }
        assert turn.text == "look"

    def test_invalid_role_rejected(self):
        with pytest.raises(ValueError, match="Invalid role"):
            ChatTurn("tool", "hi")  # type: ignore[arg-type]

    def test_image_part_requires_url(self):
        with pytest.raises(ValueError):
            ContentPart("image_url")


class TestMediaAttachment:
    def test_visual_types(self):
        assert MediaAttachment("image", "https://x/a.png").is_visual
        assert MediaAttachment("video", "https://x/a.mp4").is_visual
        assert not MediaAttachment("document", "https://x/a.pdf").is_visual

    def test_invalid_type_rejected(self):
        with pytest.raises(ValueError):
            MediaAttachment("binary", "https://x/a")  # type: ignore[arg-type]


class TestImageOptions:
    def test_payload_omits_unset_fields(self):
        assert ImageOptions(aspect_ratio="16:9").to_payload() == {"aspect_ratio": "16:9"}
        assert ImageOptions().to_payload() == {}

    @pytest.mark.parametrize("kwargs", [{"aspect_ratio": "7:3"}, {"image_size": "8K"}])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            ImageOptions(**kwargs)


class TestRelayRequest:
    def test_manual_mode_requires_models(self):
        with pytest.raises(ValueError):
            RelayRequest(message="hi", api_key=VALID_API_KEY, mode="manual")

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            RelayRequest(message="hi", api_key=VALID_API_KEY, mode="broadcast")  # type: ignore[arg-type]


class TestAggregateStats:
    def test_empty_is_all_zero(self):
        assert AggregateStats.from_stats([]) == AggregateStats(0, 0, 0.0, 0.0)

    def test_totals_and_average(self):
        aggregate = AggregateStats.from_stats(
            [
                UsageStats("a", 10, 20, 0.5, 100.0),
                UsageStats("b", 5, 5, 0.25, 300.0),
            ]
        )
        assert aggregate.total_input_tokens == 15
        assert aggregate.total_output_tokens == 25
        assert aggregate.total_cost == pytest.approx(0.75)
        assert aggregate.average_latency_ms == pytest.approx(200.0)


class TestExceptions:
    def test_invalid_model_error_carries_models(self):
        exc = InvalidModelError(["evil/model"])
        assert exc.code == "INVALID_MODEL"
        assert exc.status_code == 400
        assert exc.extra == {"invalidModels": ["evil/model"]}

    def test_api_key_error_is_unauthorized(self):
        assert InvalidApiKeyError("API key is required", "API_KEY_REQUIRED").status_code == 401

    def test_status_override(self):
        assert InvalidRequestError("too big", "REQUEST_TOO_LARGE", status_code=413).status_code == 413
