"""System routes for health, model catalogue and observability.

Endpoints:
    GET /api/v1/health
        - Response: HealthResponse (service status, upstream base URL)
        - Rate Limited: No (health checks should be fast)

    GET /api/v1/models
        - Response: ModelsResponse (catalogue with capabilities and pricing)
        - Rate Limited: Yes (via slowapi)

    GET /api/v1/metrics
        - Response: MetricsResponse (upstream call metrics with token and cost totals)
        - Query Params: window_minutes (optional, default: all time)
        - Rate Limited: Yes (via slowapi)

    GET /api/v1/rate-limit/stats
        - Response: RateLimitStatsResponse (tracked keys per limiter)
        - Rate Limited: Yes (via slowapi)
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from chat_relay.api.dependencies import get_catalog, get_rate_limiter, validate_dependencies
from chat_relay.api.middleware import limiter
from chat_relay.api.models import (
    HealthResponse,
    MetricsResponse,
    ModelsResponse,
    RateLimitStatsResponse,
)
from chat_relay.core.catalog import ModelCatalog
from chat_relay.core.config import settings
from chat_relay.core.rate_limiter import CompositeRateLimiter
from chat_relay.telemetry.metrics import MetricsCollector

logger = logging.getLogger(__name__)

router = APIRouter()

CatalogDep = Annotated[ModelCatalog, Depends(get_catalog)]
RateLimiterDep = Annotated[CompositeRateLimiter, Depends(get_rate_limiter)]


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint.

    Reports ``unhealthy`` until lifespan startup wired every dependency. The
    upstream API is not called: its availability depends on each caller's key.
    """
    ready = all(validate_dependencies().values())
    return HealthResponse(
        status="healthy" if ready else "unhealthy",
        upstream=settings.upstream.base_url,
        version=settings.api.version,
    )


@router.get("/models", response_model=ModelsResponse, tags=["Models"])
@limiter.limit("30/minute")
async def list_models(request: Request, catalog: CatalogDep) -> ModelsResponse:
    """List every model accepted in manual mode or selectable by the router."""
    return ModelsResponse.model_validate(
        {"models": catalog.list_models(), "default_model": catalog.default_model}
    )


@router.get("/metrics", response_model=MetricsResponse, tags=["Metrics"])
@limiter.limit("60/minute")
async def get_metrics(
    request: Request,
    window_minutes: Annotated[int | None, Query(ge=1)] = None,
) -> MetricsResponse:
    """Get upstream call metrics.

    Args:
        window_minutes: Only include calls from the last N minutes. All
            calls since startup when omitted.
    """
    return MetricsResponse.model_validate(MetricsCollector.get_metrics_json(window_minutes))


@router.get("/rate-limit/stats", response_model=RateLimitStatsResponse, tags=["Rate Limit"])
@limiter.limit("60/minute")
async def rate_limit_stats(request: Request, rate_limiter: RateLimiterDep) -> RateLimitStatsResponse:
    """Tracked entries of the per-caller and global limiters."""
    return RateLimitStatsResponse.model_validate(rate_limiter.get_stats())
