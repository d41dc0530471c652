"""Chat relay route.

Endpoint:
    POST /api/chat (also mounted as POST /api/v1/chat)
        - Request: ChatRequest JSON (camelCase fields)
        - Response: ``text/event-stream`` of relay events, or a JSON error
        - Rate Limited: Yes (per-caller plus global fixed windows)

Request Flow:
    1. Rate limit check keyed by client address (429 when denied)
    2. Body parsed and validated into a RelayRequest (400/401/413 on violation)
    3. RelayChatUseCase stream encoded as Server-Sent Events

Nothing after step 2 can fail the HTTP request: upstream failures are
reported in-band as ``error`` events.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from chat_relay.api.dependencies import (
    get_catalog,
    get_rate_limiter,
    get_relay_use_case,
    get_request_context,
    parse_request_json,
)
from chat_relay.api.error_handlers import handle_route_errors
from chat_relay.api.http_errors import rate_limited_response
from chat_relay.api.response_builders import sse_response
from chat_relay.api.validators import validate_chat_request
from chat_relay.application.use_cases import RelayChatUseCase
from chat_relay.core.catalog import ModelCatalog
from chat_relay.core.config import settings
from chat_relay.core.rate_limiter import CompositeRateLimiter
from chat_relay.domain.entities import RelayRequest
from chat_relay.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

router = APIRouter()

UseCaseDep = Annotated[RelayChatUseCase, Depends(get_relay_use_case)]
CatalogDep = Annotated[ModelCatalog, Depends(get_catalog)]
RateLimiterDep = Annotated[CompositeRateLimiter, Depends(get_rate_limiter)]


@router.post("/chat", tags=["Chat"], response_model=None)
async def chat(
    request: Request,
    use_case: UseCaseDep,
    catalog: CatalogDep,
    rate_limiter: RateLimiterDep,
) -> Response:
    """Relay one chat turn to one (auto) or many (manual) models.

    Returns:
        StreamingResponse of SSE frames: an optional ``router`` event, every
        model's ``content``/``stats``/``error``/``done`` events, the fan-out
        ``done`` (manual mode), the ``summary`` title and ``[DONE]``.

    Raises:
        InvalidRequestError: Request rejected before streaming started.
    """
    ctx = get_request_context(request)
    start_time = time.perf_counter()
    relay_request: RelayRequest | None = None

    limit = rate_limiter.check(ctx.client_ip)
    if not limit.allowed:
        logger.warning("chat_rate_limited: request_id=%s, client_ip=%s", ctx.request_id, ctx.client_ip)
        log_request_event(
            {
                "event": "relay_request",
                "operation": "chat",
                "status": "rate_limited",
                "request_id": ctx.request_id,
                "client_ip": ctx.client_ip,
                "reset_time_ms": limit.reset_time_ms,
            }
        )
        return rate_limited_response(limit)

    handle_error = handle_route_errors(ctx, "chat", start_time=start_time)
    try:
        body = await parse_request_json(request)
        relay_request = validate_chat_request(body, settings.relay, catalog)
    except Exception as exc:
        handle_error(exc)

    logger.info(
        "chat_accepted: request_id=%s, mode=%s, models=%s",
        ctx.request_id,
        relay_request.mode,
        ",".join(relay_request.models) or "auto",
    )
    log_request_event(
        {
            "event": "relay_request",
            "operation": "chat",
            "status": "accepted",
            "request_id": ctx.request_id,
            "client_ip": ctx.client_ip,
            "mode": relay_request.mode,
            "models": list(relay_request.models),
            "attachments": len(relay_request.attachments),
            "history_length": len(relay_request.history),
            "remaining": limit.remaining,
            "latency_ms": round((time.perf_counter() - start_time) * 1000, 3),
        }
    )

    response = sse_response(
        use_case.execute(relay_request),
        ctx,
        is_disconnected=request.is_disconnected,
    )
    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)
    response.headers["X-RateLimit-Reset"] = str(limit.reset_time_ms)
    return response
