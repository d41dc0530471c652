"""JSON Lines event log for relay requests.

Every relay request leaves a trail of events in ``requests.jsonl``, one JSON
object per line, written through a dedicated logger that does not propagate
to the root logger. Application diagnostics go through ordinary module
loggers instead.

The log directory is ``logs/`` at the project root unless
``CHAT_RELAY_LOG_DIR`` names another one.

Events written by the relay:
    - http_request: one per HTTP request (middleware)
    - relay_request: chat request accepted, rejected or rate limited
    - relay_stream: how the SSE stream to the caller ended
    - upstream_request: one upstream stream or completion
    - router_decision: auto-mode model choice
    - title_generated: conversation title and its source

Every event carries ``event`` and ``timestamp`` (ISO 8601, added when
missing); ``status`` and ``request_id`` where they apply.
"""

from __future__ import annotations

import functools
import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

_DATETIME_ADAPTER = TypeAdapter(datetime)


@functools.cache
def _get_logs_dir() -> Path:
    """``$CHAT_RELAY_LOG_DIR`` when set, otherwise ``<project root>/logs``. Created if missing."""
    override = os.environ.get("CHAT_RELAY_LOG_DIR")
    logs_dir = Path(override) if override else Path(__file__).resolve().parents[3] / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def _build_event_logger(path: Path) -> logging.Logger:
    event_logger = logging.getLogger("chat_relay.requests")
    if event_logger.handlers:
        return event_logger
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    event_logger.addHandler(file_handler)
    event_logger.setLevel(logging.INFO)
    event_logger.propagate = False
    return event_logger


LOGS_DIR = _get_logs_dir()
REQUEST_LOGGER = _build_event_logger(LOGS_DIR / "requests.jsonl")


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return _DATETIME_ADAPTER.dump_python(value, mode="json")
    return str(value)


def log_request_event(event: dict[str, Any]) -> None:
    """Append one event to the requests log.

    ``event`` is mutated: ``timestamp`` is set when absent. Values JSON
    cannot encode natively are written as ISO strings (datetimes) or
    ``str()``.

    Example:
        >>> log_request_event({
        ...     "event": "upstream_request",
        ...     "operation": "stream",
        ...     "status": "success",
        ...     "model": "x-ai/grok-4.1-fast",
        ...     "latency_ms": 1234.56,
        ... })
    """
    event.setdefault("timestamp", datetime.now(UTC).isoformat())
    REQUEST_LOGGER.info(json.dumps(event, default=_json_default))


__all__ = ["LOGS_DIR", "log_request_event"]
