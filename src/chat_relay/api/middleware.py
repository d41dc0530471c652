"""HTTP middleware and exception handlers.

Registered on the app by ``server.py``:
    - StructuredLoggingMiddleware writes one ``http_request`` event per request
    - CORS exposes the rate limit headers to browser clients
    - ``limiter`` (slowapi) guards the read-only system routes through
      ``@limiter.limit``

The chat route does its own caller plus global check so that a denial
carries ``X-RateLimit-*`` headers; it is not decorated.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from chat_relay.api.dependencies import get_request_context
from chat_relay.api.error_handlers import INTERNAL_ERROR_MESSAGE, error_body
from chat_relay.api.models import ErrorResponse
from chat_relay.core.config import settings
from chat_relay.domain.exceptions import InvalidRequestError
from chat_relay.telemetry.structured_logging import log_request_event

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

RATE_LIMIT_HEADERS = ["X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"]


def _http_event(request: Request, status_code: int | None, started: float) -> dict[str, object]:
    ctx = get_request_context(request)
    return {
        "event": "http_request",
        "request_id": ctx.request_id,
        "client_ip": ctx.client_ip,
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "latency_ms": round((time.perf_counter() - started) * 1000, 3),
    }


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Writes an ``http_request`` event for every request.

    Latency of a streamed response covers the time until its headers were
    sent; ``relay_stream`` events cover the stream itself.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            event = _http_event(
                request,
                getattr(exc, "status_code", status.HTTP_500_INTERNAL_SERVER_ERROR),
                started,
            )
            event["error_type"] = type(exc).__name__
            event["error_message"] = str(exc)
            log_request_event(event)
            raise
        log_request_event(_http_event(request, response.status_code, started))
        return response


def setup_middleware(app: FastAPI) -> None:
    """Install request logging, CORS and the slowapi limiter state on ``app``."""
    app.state.limiter = limiter
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=RATE_LIMIT_HEADERS,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Map exceptions raised before streaming to JSON error bodies.

    InvalidRequestError answers with its own status and code, query
    validation failures with 400 ``INVALID_REQUEST``, slowapi denials with
    429 ``RATE_LIMITED`` and anything else with a bare 500.
    """

    async def on_invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    async def on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        logger.warning(
            "validation_error: request_id=%s, errors=%s", get_request_context(request).request_id, errors
        )
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request parameters"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error=message, code="INVALID_REQUEST").model_dump(),
        )

    async def on_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        ctx = get_request_context(request)
        logger.warning("system_rate_limited: request_id=%s, client_ip=%s", ctx.request_id, ctx.client_ip)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=ErrorResponse(error="Rate limit exceeded", code="RATE_LIMITED").model_dump(),
            headers={"Retry-After": "60"},
        )

    async def on_unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_exception: request_id=%s, error_type=%s",
            get_request_context(request).request_id,
            type(exc).__name__,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": INTERNAL_ERROR_MESSAGE},
        )

    app.add_exception_handler(InvalidRequestError, on_invalid_request)
    app.add_exception_handler(RequestValidationError, on_validation_error)
    app.add_exception_handler(RateLimitExceeded, on_rate_limited)
    app.add_exception_handler(Exception, on_unhandled)


__all__ = ["StructuredLoggingMiddleware", "limiter", "setup_exception_handlers", "setup_middleware"]
