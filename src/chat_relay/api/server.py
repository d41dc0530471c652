"""FastAPI application for the Chat Relay service.

Endpoints:
    - POST /api/chat - Streaming chat relay (auto routing or multi-model fan-out)
    - POST /api/v1/chat - Same endpoint under the versioned prefix
    - GET /api/v1/health - Health check
    - GET /api/v1/models - Model catalogue
    - GET /api/v1/metrics - Upstream call metrics
    - GET /api/v1/rate-limit/stats - Rate limiter statistics
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from chat_relay.api.lifespan import lifespan_context
from chat_relay.api.middleware import setup_exception_handlers, setup_middleware
from chat_relay.api.routes import chat_router, system_router
from chat_relay.core.config import settings

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.api.title,
    description="Streaming chat relay with automatic model routing and multi-model fan-out",
    version=settings.api.version,
    docs_url=settings.api.docs_url,
    openapi_url=settings.api.openapi_url,
    lifespan=lifespan_context,
)

setup_middleware(app)
setup_exception_handlers(app)

app.include_router(chat_router, prefix="/api")
app.include_router(chat_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Basic API metadata and links to documentation endpoints."""
    return {
        "service": settings.api.title,
        "version": settings.api.version,
        "docs": settings.api.docs_url,
        "health": "/api/v1/health",
    }


def main() -> None:
    """Run the API server with uvicorn."""
    logging.basicConfig(
        level=settings.api.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "chat_relay.api.server:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload,
        log_level=settings.api.log_level,
    )


if __name__ == "__main__":
    main()
