"""Telemetry utilities (metrics, structured logging)."""

from chat_relay.telemetry.metrics import MetricsCollector, ServiceMetrics, track_request
from chat_relay.telemetry.structured_logging import log_request_event

__all__ = [
    "MetricsCollector",
    "ServiceMetrics",
    "log_request_event",
    "track_request",
]
