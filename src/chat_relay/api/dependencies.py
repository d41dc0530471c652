"""Dependency injection for FastAPI endpoints.

Components are created once during lifespan startup, stored with
``set_dependencies()`` and handed to routes through ``Depends(get_*)``.
Every getter raises 503 while the service is not initialized.

Dependency Flow:
    1. Lifespan startup builds the upstream client, catalogue, limiters and use case
    2. set_dependencies() stores the instances
    3. get_*() functions retrieve them (503 if not initialized)
    4. FastAPI Depends() wires them into route handlers
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from fastapi import HTTPException, Request, status
from slowapi.util import get_remote_address

from chat_relay.api.http_errors import invalid_json_error, request_too_large_error
from chat_relay.api.limits import MAX_REQUEST_BODY_BYTES
from chat_relay.api.models import RequestContext
from chat_relay.application.use_cases import RelayChatUseCase
from chat_relay.client.upstream import AsyncUpstreamClient
from chat_relay.core.catalog import ModelCatalog
from chat_relay.core.rate_limiter import CompositeRateLimiter

logger = logging.getLogger(__name__)

# Global instances (initialized in lifespan)
_client: AsyncUpstreamClient | None = None
_catalog: ModelCatalog | None = None
_rate_limiter: CompositeRateLimiter | None = None
_relay_use_case: RelayChatUseCase | None = None


def validate_dependencies() -> dict[str, bool]:
    """Initialization status of every dependency, keyed by name."""
    return {
        "client": _client is not None,
        "catalog": _catalog is not None,
        "rate_limiter": _rate_limiter is not None,
        "relay_use_case": _relay_use_case is not None,
    }


def set_dependencies(
    client: AsyncUpstreamClient,
    catalog: ModelCatalog,
    rate_limiter: CompositeRateLimiter,
    relay_use_case: RelayChatUseCase,
) -> None:
    """Store the instances created during lifespan startup.

    Args:
        client: Shared upstream HTTP client.
        catalog: Model catalogue.
        rate_limiter: Caller plus global limiter pair.
        relay_use_case: Chat relay use case.
    """
    global _client, _catalog, _rate_limiter, _relay_use_case
    _client = client
    _catalog = catalog
    _rate_limiter = rate_limiter
    _relay_use_case = relay_use_case


def clear_dependencies() -> None:
    """Forget all instances; getters raise 503 afterwards."""
    global _client, _catalog, _rate_limiter, _relay_use_case
    _client = None
    _catalog = None
    _rate_limiter = None
    _relay_use_case = None


def _not_initialized(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"{name} not initialized",
    )


def get_catalog() -> ModelCatalog:
    if _catalog is None:
        raise _not_initialized("Model catalog")
    return _catalog


def get_rate_limiter() -> CompositeRateLimiter:
    if _rate_limiter is None:
        raise _not_initialized("Rate limiter")
    return _rate_limiter


def get_relay_use_case() -> RelayChatUseCase:
    if _relay_use_case is None:
        raise _not_initialized("Relay service")
    return _relay_use_case


def get_request_context(request: Request) -> RequestContext:
    """Extract (or reuse) request context from the FastAPI request.

    The context is cached in ``request.state`` so middleware, dependencies
    and route handlers share the same request_id.
    """
    ctx: RequestContext | None = getattr(request.state, "request_context", None)
    if ctx is None:
        ctx = RequestContext(
            request_id=str(uuid.uuid4()),
            client_ip=get_remote_address(request),
            user_agent=request.headers.get("user-agent"),
        )
        request.state.request_context = ctx
    return ctx


async def parse_request_json(request: Request) -> Any:
    """Read and decode the JSON request body.

    Raises:
        InvalidRequestError: ``REQUEST_TOO_LARGE`` (413) when the body exceeds
            MAX_REQUEST_BODY_BYTES, ``INVALID_JSON`` (400) when it is empty or
            not valid JSON.
    """
    body_bytes = await request.body()
    if len(body_bytes) > MAX_REQUEST_BODY_BYTES:
        raise request_too_large_error(len(body_bytes), MAX_REQUEST_BODY_BYTES)
    if not body_bytes:
        raise invalid_json_error()
    try:
        return json.loads(body_bytes)
    except ValueError as exc:
        raise invalid_json_error() from exc


__all__ = [
    "clear_dependencies",
    "get_catalog",
    "get_rate_limiter",
    "get_relay_use_case",
    "get_request_context",
    "parse_request_json",
    "set_dependencies",
    "validate_dependencies",
]
