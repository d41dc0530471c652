"""Application lifespan management.

Lifespan Responsibilities:
    - Startup:
        1. Build the immutable model catalogue
        2. Create the shared upstream HTTP client
        3. Create the caller and global rate limiters and start their sweeper
        4. Wire router, stream adapter, fan-out merger, summarizer and use case
        5. Set up dependency injection (store instances for FastAPI Depends)
    - Shutdown:
        1. Stop the rate limit sweeper
        2. Close the upstream HTTP client
        3. Clear dependencies
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from chat_relay.api.dependencies import clear_dependencies, set_dependencies
from chat_relay.application.fanout import MultiStreamMerger
from chat_relay.application.router import ModelRouter
from chat_relay.application.streaming import SingleStreamAdapter
from chat_relay.application.summarizer import TitleSummarizer
from chat_relay.application.use_cases import RelayChatUseCase
from chat_relay.client.upstream import AsyncUpstreamClient, UpstreamClientConfig
from chat_relay.core.catalog import ModelCatalog
from chat_relay.core.config import Settings, settings
from chat_relay.core.rate_limiter import CompositeRateLimiter, RateLimiter, RateLimitSweeper

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RelayServices:
    """Long-lived components shared by every request."""

    client: AsyncUpstreamClient
    catalog: ModelCatalog
    rate_limiter: CompositeRateLimiter
    sweeper: RateLimitSweeper
    use_case: RelayChatUseCase


def build_services(config: Settings, client: AsyncUpstreamClient | None = None) -> RelayServices:
    """Create and wire all relay components from settings.

    Args:
        config: Service settings.
        client: Upstream client to use instead of one built from
            ``config.upstream``.
    """
    catalog = ModelCatalog.default(default_model=config.router.default_model)
    upstream = client or AsyncUpstreamClient(UpstreamClientConfig.from_settings(config.upstream))

    caller_limiter = RateLimiter(
        config.rate_limit.caller_limit,
        config.rate_limit.caller_window,
        config.rate_limit.max_entries,
    )
    global_limiter = RateLimiter(
        config.rate_limit.global_limit,
        config.rate_limit.global_window,
        config.rate_limit.max_entries,
    )
    sweeper = RateLimitSweeper(
        (caller_limiter, global_limiter),
        interval=config.rate_limit.sweep_interval,
    )

    adapter = SingleStreamAdapter(
        upstream,
        catalog,
        chunk_timeout=config.upstream.chunk_timeout,
        stream_timeout=config.upstream.stream_timeout,
    )
    use_case = RelayChatUseCase(
        router=ModelRouter(upstream, catalog, config.router),
        adapter=adapter,
        merger=MultiStreamMerger(adapter, queue_size=config.relay.fanout_queue_size),
        summarizer=TitleSummarizer(upstream, config.summarizer),
        catalog=catalog,
        enable_tools=config.relay.enable_tools,
        title_timeout=config.relay.title_timeout,
    )
    return RelayServices(
        client=upstream,
        catalog=catalog,
        rate_limiter=CompositeRateLimiter(caller_limiter, global_limiter),
        sweeper=sweeper,
        use_case=use_case,
    )


@asynccontextmanager
async def lifespan_context(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan (startup and shutdown)."""
    logger.info("LIFESPAN: Starting Chat Relay API (upstream=%s)", settings.upstream.base_url)

    services = build_services(settings)
    services.sweeper.start()
    set_dependencies(
        services.client,
        services.catalog,
        services.rate_limiter,
        services.use_case,
    )
    logger.info(
        "LIFESPAN: Dependencies initialized (caller_limit=%d/%ss, global_limit=%d/%ss, tools=%s)",
        settings.rate_limit.caller_limit,
        settings.rate_limit.caller_window,
        settings.rate_limit.global_limit,
        settings.rate_limit.global_window,
        settings.relay.enable_tools,
    )

    try:
        yield
    finally:
        logger.info("LIFESPAN: Shutting down Chat Relay API")
        await services.sweeper.stop()
        try:
            await services.client.close()
        except Exception as exc:
            logger.warning("LIFESPAN: Error closing upstream client: %s", exc)
        clear_dependencies()


__all__ = ["RelayServices", "build_services", "lifespan_context"]
