"""Rejection logging for the chat route and the JSON error body shape.

Only failures that happen before streaming starts reach these helpers;
upstream failures during a stream are reported in-band as ``error`` events.

Error Handling Strategy:
    - InvalidRequestError -> its own status (400/401/413) with ``{error, code, ...}``
    - Unknown Errors -> 500 ``{"error": "Internal server error"}`` via the
      global handler
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import NoReturn

from fastapi import status

from chat_relay.api.models import RequestContext
from chat_relay.domain.exceptions import InvalidRequestError
from chat_relay.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


def error_body(exc: InvalidRequestError) -> dict[str, object]:
    """JSON body for a rejected request."""
    return {"error": exc.message, "code": exc.code, **exc.extra}


def handle_route_errors(
    ctx: RequestContext,
    operation_name: str,
    *,
    start_time: float | None = None,
) -> Callable[[Exception], NoReturn]:
    """Return a callback that logs a pre-stream failure and re-raises it.

    The returned function logs a structured ``relay_request`` error event and
    re-raises the exception for the application's exception handlers.

    Args:
        ctx: Request context for logging.
        operation_name: Operation label for log messages.
        start_time: ``time.perf_counter()`` at request start, for latency.

    Example:
        >>> handle_error = handle_route_errors(ctx, "chat")
        >>> try:
        ...     relay_request = validate_chat_request(body, config, catalog)
        ... except Exception as exc:
        ...     handle_error(exc)
    """

    def _build_event(**extra: object) -> dict[str, object]:
        event: dict[str, object] = {
            "event": "relay_request",
            "operation": operation_name,
            "status": "rejected",
            "request_id": ctx.request_id,
            "client_ip": ctx.client_ip,
        }
        if start_time is not None:
            event["latency_ms"] = round((time.perf_counter() - start_time) * 1000, 3)
        event.update({k: v for k, v in extra.items() if v is not None})
        return event

    def handle_error(exc: Exception) -> NoReturn:
        match exc:
            case InvalidRequestError():
                logger.warning(
                    "%s_rejected: request_id=%s, code=%s, error=%s",
                    operation_name,
                    ctx.request_id,
                    exc.code,
                    exc.message,
                )
                log_request_event(
                    _build_event(
                        error_type=type(exc).__name__,
                        error_code=exc.code,
                        error_message=exc.message,
                        http_status=exc.status_code,
                    )
                )
            case _:
                logger.exception(
                    "unexpected_error_%s: request_id=%s, error_type=%s",
                    operation_name,
                    ctx.request_id,
                    type(exc).__name__,
                )
                log_request_event(
                    _build_event(
                        status="error",
                        error_type=type(exc).__name__,
                        error_message=str(exc),
                        http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    )
                )
        raise exc

    return handle_error


__all__ = ["INTERNAL_ERROR_MESSAGE", "error_body", "handle_route_errors"]
