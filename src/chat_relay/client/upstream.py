"""Asynchronous client for the upstream chat-completions API.

This module provides an asynchronous HTTP client for an OpenRouter-compatible
chat-completions endpoint using httpx. It supports connection pooling, SSE
streaming with stall protection, and translation of transport failures into
a small exception hierarchy.

Key behaviors:
    - Uses one shared httpx.AsyncClient with connection pooling and keep-alive
    - Non-streaming completions retry connect errors (tenacity)
    - Streaming completions decode ``data: <json>`` lines until ``data: [DONE]``
    - Every streamed read is bounded by a per-chunk timeout, and the whole
      stream by an overall deadline
    - Structured ``upstream_request`` events for every call

Exceptions:
    - UpstreamError: Base class, carries an optional HTTP status code
    - UpstreamStatusError: Non-2xx response or error chunk in the stream
    - UpstreamTimeoutError: Connect/read timeout, stalled or overlong stream
    - UpstreamConnectionError: Network failure before a response arrived

Concurrency:
    - All operations are async and safe for concurrent use from many tasks
    - Closing an in-progress stream generator releases its HTTP connection
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import types
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from chat_relay.core.config import UpstreamConfig
from chat_relay.telemetry.metrics import track_request
from chat_relay.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class UpstreamError(Exception):
    """Base exception for upstream API failures.

    Attributes:
        message: Human-readable error message (upstream's own when available).
        status_code: HTTP status of the failed response, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UpstreamStatusError(UpstreamError):
    """Upstream answered with a non-2xx status or sent an error chunk."""


class UpstreamTimeoutError(UpstreamError):
    """Upstream did not answer, or stopped streaming, within the allowed time."""


class UpstreamConnectionError(UpstreamError):
    """Network failure while reaching the upstream."""


@dataclass(slots=True, frozen=True)
class UpstreamClientConfig:
    """Configuration for the upstream client. All time values are in seconds.

    Attributes:
        completions_url: Full chat-completions endpoint URL.
        referer: ``HTTP-Referer`` header value.
        app_title: ``X-Title`` header value.
        request_timeout: Read timeout for non-streaming completions.
        connect_timeout: TCP connect timeout.
        chunk_timeout: Maximum wait for one streamed line.
        stream_timeout: Maximum duration of one streamed response.
        max_connections: Connection pool size.
        max_keepalive_connections: Idle connections kept in the pool.
        max_retries: Attempts for non-streaming completions on connect errors.
        retry_delay: Initial backoff between attempts.
    """

    completions_url: str = "https://openrouter.ai/api/v1/chat/completions"
    referer: str = "https://selfhostablechat.app"
    app_title: str = "Self-Hostable Chat"
    request_timeout: float = 30.0
    connect_timeout: float = 10.0
    chunk_timeout: float = 30.0
    stream_timeout: float = 120.0
    max_connections: int = 50
    max_keepalive_connections: int = 20
    max_retries: int = 3
    retry_delay: float = 0.5

    @classmethod
    def from_settings(cls, upstream: UpstreamConfig) -> UpstreamClientConfig:
        return cls(
            completions_url=upstream.completions_url,
            referer=upstream.referer,
            app_title=upstream.app_title,
            request_timeout=upstream.request_timeout,
            connect_timeout=upstream.connect_timeout,
            chunk_timeout=upstream.chunk_timeout,
            stream_timeout=upstream.stream_timeout,
            max_connections=upstream.max_connections,
            max_keepalive_connections=upstream.max_keepalive_connections,
            max_retries=upstream.max_retries,
            retry_delay=upstream.retry_delay,
        )


def extract_message_text(response: dict[str, Any]) -> str:
    """Text of the first choice of a non-streaming completion.

    Handles both plain string content and multimodal part lists (text parts
    are concatenated, other parts ignored). Returns an empty string when the
    response has no usable content.
    """
    choices = response.get("choices") if isinstance(response, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    match message.get("content"):
        case str() as text:
            return text
        case list() as parts:
            return "".join(
                part.get("text") or ""
                for part in parts
                if isinstance(part, dict) and part.get("type") == "text"
            )
        case _:
            return ""


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the upstream's error message."""
    fallback = f"Upstream API error: {response.status_code} {response.reason_phrase}".strip()
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or fallback
    match body:
        case {"error": {"message": str() as message}} if message:
            return message
        case {"error": str() as message} if message:
            return message
        case {"message": str() as message} if message:
            return message
        case _:
            return fallback


class AsyncUpstreamClient:
    """Async client for the upstream chat-completions API.

    Can be used as an async context manager for automatic resource cleanup.
    The API key is supplied per call because every caller brings their own.

    Attributes:
        config: Client configuration.
        client: httpx.AsyncClient instance (initialized lazily).
    """

    __slots__ = ("_owns_client", "client", "config")

    def __init__(
        self,
        config: UpstreamClientConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration. If None, uses UpstreamClientConfig().
            client: Pre-built httpx client to use. The caller keeps ownership
                and must close it.
        """
        self.config = config or UpstreamClientConfig()
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self) -> AsyncUpstreamClient:
        self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=self.config.connect_timeout,
                    read=self.config.request_timeout,
                    write=self.config.connect_timeout,
                    pool=self.config.connect_timeout,
                ),
                limits=httpx.Limits(
                    max_keepalive_connections=self.config.max_keepalive_connections,
                    max_connections=self.config.max_connections,
                ),
            )
            self._owns_client = True
        return self.client

    async def close(self) -> None:
        """Close the owned httpx client. Safe to call multiple times."""
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": self.config.referer,
            "X-Title": self.config.app_title,
            "Content-Type": "application/json",
        }

    async def _post_completion(self, payload: dict[str, Any], api_key: str, timeout: float) -> dict[str, Any]:
        client = self._ensure_client()
        try:
            response = await client.post(
                self.config.completions_url,
                json=payload,
                headers=self._headers(api_key),
                timeout=httpx.Timeout(timeout, connect=self.config.connect_timeout),
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(f"Upstream request timed out after {timeout}s") from exc
        except httpx.RequestError as exc:
            raise UpstreamConnectionError(f"Upstream connection failed: {exc.__class__.__name__}") from exc

        if response.is_error:
            raise UpstreamStatusError(_error_message(response), response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamStatusError("Upstream returned invalid JSON", response.status_code) from exc

    async def create_completion(
        self,
        payload: dict[str, Any],
        api_key: str,
        *,
        operation: str = "completion",
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Request a non-streaming chat completion.

        Connect errors are retried with exponential backoff up to
        ``config.max_retries`` attempts. Status errors and timeouts are not
        retried.

        Args:
            payload: Request body. ``stream`` is forced to False.
            api_key: Caller's upstream bearer key.
            operation: Metrics operation label (e.g. ``"route"``).
            timeout: Read timeout override in seconds.

        Returns:
            Decoded JSON response.

        Raises:
            UpstreamError: Any upstream failure (see subclasses).
        """
        body = {**payload, "stream": False}
        model = str(body.get("model", ""))
        request_id = str(uuid.uuid4())
        read_timeout = timeout or self.config.request_timeout
        start_time = time.perf_counter()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(multiplier=self.config.retry_delay, min=self.config.retry_delay, max=10),
            retry=retry_if_exception_type(UpstreamConnectionError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            with track_request(model, operation):
                async for attempt in retrying:
                    with attempt:
                        response = await self._post_completion(body, api_key, read_timeout)
        except UpstreamError as exc:
            self._log_error(model, request_id, start_time, operation, exc, stream=False)
            raise

        log_request_event(
            {
                "event": "upstream_request",
                "operation": operation,
                "status": "success",
                "model": model,
                "stream": False,
                "request_id": request_id,
                "latency_ms": round((time.perf_counter() - start_time) * 1000, 3),
            }
        )
        return response

    async def stream_completion(
        self,
        payload: dict[str, Any],
        api_key: str,
        *,
        chunk_timeout: float | None = None,
        stream_timeout: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a chat completion as decoded SSE chunks.

        Blank lines, SSE comments and undecodable JSON lines are skipped. The
        generator ends at ``data: [DONE]`` or when the upstream closes the
        connection. Closing the generator early releases the connection.

        Args:
            payload: Request body. ``stream`` is forced to True.
            api_key: Caller's upstream bearer key.
            chunk_timeout: Maximum wait for one line (default from config).
            stream_timeout: Maximum total duration (default from config).

        Yields:
            Decoded chunk dictionaries in upstream order.

        Raises:
            UpstreamStatusError: Non-2xx response, or an error chunk.
            UpstreamTimeoutError: Stalled, overlong or timed-out stream.
            UpstreamConnectionError: Network failure.
        """
        client = self._ensure_client()
        body = {**payload, "stream": True}
        model = str(body.get("model", ""))
        request_id = str(uuid.uuid4())
        per_chunk = chunk_timeout or self.config.chunk_timeout
        overall = stream_timeout or self.config.stream_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + overall
        start_time = time.perf_counter()
        chunks = 0

        try:
            async with client.stream(
                "POST",
                self.config.completions_url,
                json=body,
                headers=self._headers(api_key),
                timeout=httpx.Timeout(per_chunk, connect=self.config.connect_timeout),
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise UpstreamStatusError(_error_message(response), response.status_code)

                lines = response.aiter_lines()
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise UpstreamTimeoutError(f"Stream exceeded {overall}s")
                    wait = min(per_chunk, remaining)
                    try:
                        async with asyncio.timeout(wait):
                            line = await anext(lines)
                    except StopAsyncIteration:
                        break
                    except TimeoutError as exc:
                        if wait < per_chunk:
                            raise UpstreamTimeoutError(f"Stream exceeded {overall}s") from exc
                        raise UpstreamTimeoutError(f"Stream stalled: no data for {per_chunk}s") from exc

                    line = line.strip()
                    if not line or line.startswith(":") or not line.startswith(SSE_DATA_PREFIX):
                        continue
                    data = line[len(SSE_DATA_PREFIX) :].strip()
                    if data == SSE_DONE:
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("upstream_bad_chunk: request_id=%s line=%.200s", request_id, line)
                        continue
                    if isinstance(chunk, dict) and chunk.get("error"):
                        error = chunk["error"]
                        message = error.get("message") if isinstance(error, dict) else str(error)
                        code = error.get("code") if isinstance(error, dict) else None
                        raise UpstreamStatusError(
                            message or "Upstream stream error",
                            code if isinstance(code, int) else None,
                        )
                    chunks += 1
                    yield chunk
        except UpstreamError as exc:
            self._log_error(model, request_id, start_time, "stream", exc, stream=True)
            raise
        except httpx.TimeoutException as exc:
            error = UpstreamTimeoutError(f"Upstream timed out: {exc.__class__.__name__}")
            self._log_error(model, request_id, start_time, "stream", error, stream=True)
            raise error from exc
        except httpx.RequestError as exc:
            error = UpstreamConnectionError(f"Upstream connection failed: {exc.__class__.__name__}")
            self._log_error(model, request_id, start_time, "stream", error, stream=True)
            raise error from exc

        log_request_event(
            {
                "event": "upstream_request",
                "operation": "stream",
                "status": "success",
                "model": model,
                "stream": True,
                "request_id": request_id,
                "chunks": chunks,
                "latency_ms": round((time.perf_counter() - start_time) * 1000, 3),
            }
        )

    def _log_error(
        self,
        model: str,
        request_id: str,
        start_time: float,
        operation: str,
        exc: UpstreamError,
        *,
        stream: bool,
    ) -> None:
        """Log an upstream failure with consistent format."""
        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.warning(
            "upstream_error: model=%s operation=%s type=%s status=%s message=%s",
            model,
            operation,
            exc.__class__.__name__,
            exc.status_code,
            exc.message,
        )
        log_data: dict[str, Any] = {
            "event": "upstream_request",
            "operation": operation,
            "status": "error",
            "model": model,
            "stream": stream,
            "request_id": request_id,
            "latency_ms": round(latency_ms, 3),
            "error_type": exc.__class__.__name__,
            "error_message": exc.message,
        }
        if exc.status_code is not None:
            log_data["http_status"] = exc.status_code
        log_request_event(log_data)


__all__ = [
    "AsyncUpstreamClient",
    "UpstreamClientConfig",
    "UpstreamConnectionError",
    "UpstreamError",
    "UpstreamStatusError",
    "UpstreamTimeoutError",
    "extract_message_text",
]
