"""In-process metrics for upstream calls made by the relay.

One RequestMetrics entry is kept per upstream call: per model stream
(``operation="stream"``), per classifier call (``"route"``) and per title
call (``"summarize"``). Streams also carry token counts and cost.

The store is a class-level list capped at ``_max_metrics`` entries (oldest
dropped first). Aggregation happens on read, optionally restricted to the
last N minutes, and reports latency percentiles alongside token and cost
totals.
"""

from __future__ import annotations

import logging
import statistics
import threading
import time
from collections import Counter
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar, Self

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RequestMetrics:
    """Metrics for a single upstream call.

    Attributes:
        model: Model identifier used for the call.
        operation: ``stream``, ``route`` or ``summarize``.
        latency_ms: Wall-clock latency in milliseconds.
        success: Whether the call succeeded.
        error: Error type if the call failed. None if successful.
        tokens_in: Prompt tokens reported by the upstream, if any.
        tokens_out: Completion tokens reported by the upstream, if any.
        cost: Computed cost in USD.
        timestamp: Call timestamp in UTC.
    """

    model: str
    operation: str
    latency_ms: float
    success: bool
    error: str | None = None
    tokens_in: int = 0
    tokens_out: int = 0
    cost: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class ServiceMetrics:
    """Aggregated relay metrics over a time window."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    requests_by_model: dict[str, int] = field(default_factory=dict)
    requests_by_operation: dict[str, int] = field(default_factory=dict)
    average_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    errors_by_type: dict[str, int] = field(default_factory=dict)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0
    last_request_time: datetime | None = None
    first_request_time: datetime | None = None


class MetricsCollector:
    """Class-level metrics storage with automatic size limiting.

    Appends and snapshots are taken under a class-level lock.
    """

    _metrics: ClassVar[list[RequestMetrics]] = []
    _max_metrics: ClassVar[int] = 10_000
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def record_request(
        cls,
        model: str,
        operation: str,
        latency_ms: float,
        success: bool,
        error: str | None = None,
        *,
        tokens_in: int = 0,
        tokens_out: int = 0,
        cost: float = 0.0,
    ) -> None:
        """Record one upstream call.

        Trims the oldest entries once more than ``_max_metrics`` are held.
        """
        metric = RequestMetrics(
            model=model,
            operation=operation,
            latency_ms=latency_ms,
            success=success,
            error=error,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            cost=cost,
        )
        with cls._lock:
            cls._metrics.append(metric)
            if len(cls._metrics) > cls._max_metrics:
                cls._metrics = cls._metrics[-cls._max_metrics :]

        logger.debug("Recorded metric: %s on %s - %.2fms", operation, model, latency_ms)

    @classmethod
    def get_metrics(cls, window_minutes: int | None = None) -> ServiceMetrics:
        """Aggregate collected metrics, optionally over the last ``window_minutes``."""
        with cls._lock:
            snapshot = list(cls._metrics)

        match window_minutes:
            case None:
                metrics = snapshot
            case minutes if minutes > 0:
                cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
                metrics = [m for m in snapshot if m.timestamp >= cutoff]
            case _:
                metrics = []

        if not metrics:
            return ServiceMetrics()

        latencies = sorted(m.latency_ms for m in metrics)
        successful = sum(1 for m in metrics if m.success)

        match len(latencies):
            case n if n >= 2:
                quantiles = statistics.quantiles(latencies, n=100)
                p50, p95, p99 = quantiles[49], quantiles[94], quantiles[98]
            case _:
                p50 = p95 = p99 = latencies[0]

        return ServiceMetrics(
            total_requests=len(metrics),
            successful_requests=successful,
            failed_requests=len(metrics) - successful,
            requests_by_model=dict(Counter(m.model for m in metrics)),
            requests_by_operation=dict(Counter(m.operation for m in metrics)),
            average_latency_ms=statistics.fmean(latencies),
            p50_latency_ms=p50,
            p95_latency_ms=p95,
            p99_latency_ms=p99,
            errors_by_type=dict(Counter(m.error for m in metrics if m.error)),
            total_input_tokens=sum(m.tokens_in for m in metrics),
            total_output_tokens=sum(m.tokens_out for m in metrics),
            total_cost=sum(m.cost for m in metrics),
            last_request_time=max(m.timestamp for m in metrics),
            first_request_time=min(m.timestamp for m in metrics),
        )

    @classmethod
    def get_metrics_json(cls, window_minutes: int | None = None) -> dict[str, Any]:
        """Aggregated metrics as plain JSON types.

        Latencies are rounded to 2 decimals, cost to 6 and timestamps are
        ISO 8601 strings.
        """
        data = asdict(cls.get_metrics(window_minutes))
        for key, value in data.items():
            match value:
                case datetime():
                    data[key] = value.isoformat()
                case float() if key.endswith("_latency_ms"):
                    data[key] = round(value, 2)
        data["total_cost"] = round(data["total_cost"], 6)
        return data

    @classmethod
    def reset(cls) -> Self:
        """Clear all collected metrics. Returns the class for chaining."""
        with cls._lock:
            cls._metrics = []
        return cls


@contextmanager
def track_request(model: str, operation: str) -> Generator[None, None, None]:
    """Record latency and outcome of the wrapped block as one metric.

    Example:
        >>> with track_request("openai/gpt-oss-20b", "route"):
        ...     response = await client.create_completion(payload, api_key)
    """
    start = time.perf_counter()
    error: str | None = None
    try:
        yield
    except Exception as exc:
        error = exc.__class__.__name__
        raise
    finally:
        MetricsCollector.record_request(
            model=model,
            operation=operation,
            latency_ms=(time.perf_counter() - start) * 1000,
            success=error is None,
            error=error,
        )


__all__ = ["MetricsCollector", "RequestMetrics", "ServiceMetrics", "track_request"]
