"""Reusable error response builders for guardrail responses."""

from __future__ import annotations

from fastapi import status
from fastapi.responses import JSONResponse

from chat_relay.core.rate_limiter import RateLimitResult
from chat_relay.domain.exceptions import InvalidRequestError


def rate_limited_response(result: RateLimitResult) -> JSONResponse:
    """Return the 429 response for a denied rate limit check."""

    retry_after = result.retry_after()
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Rate limit exceeded",
            "code": "RATE_LIMITED",
            "retryAfter": retry_after,
        },
        headers={
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(result.reset_time_ms),
            "Retry-After": str(retry_after),
        },
    )


def request_too_large_error(size: int, limit: int) -> InvalidRequestError:
    """Return the error raised for oversized request bodies."""

    return InvalidRequestError(
        f"Request body is {size:,} bytes but the limit is {limit:,} bytes",
        "REQUEST_TOO_LARGE",
        status_code=status.HTTP_413_CONTENT_TOO_LARGE,
        extra={"limitBytes": limit},
    )


def invalid_json_error() -> InvalidRequestError:
    """Return the error raised for bodies that are not valid JSON."""

    return InvalidRequestError("Invalid JSON in request body", "INVALID_JSON")


__all__ = ["invalid_json_error", "rate_limited_response", "request_too_large_error"]
