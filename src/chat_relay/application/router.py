"""Auto-mode model selection.

Decision order, first match wins:
    1. Any image or video attachment selects the catalogue's vision model.
    2. An image-generation phrase in the user text selects the catalogue's
       image-generation model.
    3. Otherwise one low-temperature completion to the classifier model
       returns ``{"model": ..., "reasoning": ...}`` somewhere in its text.
    4. Unparseable replies, non-selectable models and upstream failures all
       fall back to the catalogue's default model.

Steps 1 and 2 do no I/O. ``ModelRouter.route`` never raises.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from typing import Any

from chat_relay.application.interfaces import UpstreamClientInterface
from chat_relay.application.prompts import IMAGE_GENERATION_KEYWORDS, ROUTING_PROMPT
from chat_relay.client.upstream import extract_message_text
from chat_relay.core.catalog import ModelCatalog
from chat_relay.core.config import RouterConfig
from chat_relay.domain.entities import MediaAttachment, RouterDecision
from chat_relay.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

REASON_VISUAL = "Image/video content detected"
REASON_IMAGE_GENERATION = "Image generation request detected"
REASON_PARSE_FAILED = "Fallback to default model"
REASON_INVALID_MODEL = "Invalid model selected, using default"
REASON_ROUTER_ERROR = "Router error, using default"


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` block in ``text``, or None.

    Braces inside JSON string literals (including escaped quotes) do not
    count towards the balance. This is best-effort extraction from free-form
    model output, not a JSON validator.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this brace; try the next one.
        start = text.find("{", start + 1)
    return None


def is_image_generation_request(text: str) -> bool:
    """Case-insensitive keyword match for image-generation intent."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in IMAGE_GENERATION_KEYWORDS)


class ModelRouter:
    """Chooses one backend model for an auto-mode request.

    Attributes:
        catalog: Model catalogue providing fixed routes and the auto allow-list.
        config: Classifier call settings.
    """

    def __init__(
        self,
        client: UpstreamClientInterface,
        catalog: ModelCatalog,
        config: RouterConfig | None = None,
    ) -> None:
        self._client = client
        self.catalog = catalog
        self.config = config or RouterConfig()

    def route_heuristic(self, user_text: str, attachments: Sequence[MediaAttachment]) -> RouterDecision | None:
        """Apply the no-I/O rules. Returns None when the classifier is needed."""
        if any(attachment.is_visual for attachment in attachments):
            return RouterDecision(self.catalog.vision_model, REASON_VISUAL)
        if is_image_generation_request(user_text):
            return RouterDecision(self.catalog.image_generation_model, REASON_IMAGE_GENERATION)
        return None

    async def route(
        self,
        user_text: str,
        attachments: Sequence[MediaAttachment],
        api_key: str,
        *,
        zero_data_retention: bool = False,
    ) -> RouterDecision:
        """Choose a model for ``user_text``. Always returns a valid decision."""
        start = time.perf_counter()
        decision = self.route_heuristic(user_text, attachments)
        if decision is None:
            decision = await self._classify(user_text, api_key, zero_data_retention)

        latency_ms = (time.perf_counter() - start) * 1000
        logger.info("router_decision: model=%s reasoning=%s", decision.model, decision.reasoning)
        log_request_event(
            {
                "event": "router_decision",
                "status": "success",
                "model": decision.model,
                "reasoning": decision.reasoning,
                "latency_ms": round(latency_ms, 3),
            }
        )
        return decision

    async def _classify(self, user_text: str, api_key: str, zero_data_retention: bool) -> RouterDecision:
        default = self.catalog.default_model
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": ROUTING_PROMPT},
                {"role": "user", "content": user_text},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        if zero_data_retention:
            payload["provider"] = {"zdr": True}

        try:
            async with asyncio.timeout(self.config.timeout):
                response = await self._client.create_completion(
                    payload, api_key, operation="route", timeout=self.config.timeout
                )
        except Exception:  # noqa: BLE001
            logger.warning("router_error: falling back to %s", default, exc_info=True)
            return RouterDecision(default, REASON_ROUTER_ERROR)

        content = extract_message_text(response)
        block = extract_json_object(content)
        try:
            parsed = json.loads(block) if block is not None else None
        except json.JSONDecodeError:
            parsed = None

        if not isinstance(parsed, dict) or not isinstance(parsed.get("model"), str):
            logger.warning("router_parse_failed: content=%.200s", content)
            return RouterDecision(default, REASON_PARSE_FAILED)

        model = parsed["model"]
        if not self.catalog.is_auto_selectable(model):
            logger.warning("router_invalid_model: model=%s", model)
            return RouterDecision(default, REASON_INVALID_MODEL)

        reasoning = parsed.get("reasoning")
        return RouterDecision(model, reasoning if isinstance(reasoning, str) else "")


__all__ = [
    "REASON_IMAGE_GENERATION",
    "REASON_INVALID_MODEL",
    "REASON_PARSE_FAILED",
    "REASON_ROUTER_ERROR",
    "REASON_VISUAL",
    "ModelRouter",
    "extract_json_object",
    "is_image_generation_request",
]
