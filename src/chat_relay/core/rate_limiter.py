"""In-memory fixed-window rate limiting.

This module gates chat requests per caller identity and globally. Counters
live in a bounded cachetools TTLCache whose TTL equals the window length,
so many distinct caller identities cannot grow memory without bound.

Key Features:
    - Fixed Window: One counter per key, reset when its window ends
    - Lazy Expiry: Expired entries are dropped on next access
    - LRU Eviction: Least-recently-accessed key evicted when the map is full
    - Composition: Caller check first, then global check with caller rollback
    - Periodic Sweep: Background asyncio task purges expired entries
    - Thread-safe: Each check is one critical section under threading.Lock

Denial is a normal return value. Nothing in this module raises on a limit.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from cachetools import TTLCache

logger = logging.getLogger(__name__)

GLOBAL_KEY = "global"
"""Key used by the global limiter."""


@dataclass(slots=True)
class RateLimitEntry:
    """Counter state of one key.

    Attributes:
        count: Requests granted in the current window.
        reset_time: Epoch seconds at which the window ends.
        last_accessed: Epoch seconds of the last check for this key.
    """

    count: int
    reset_time: float
    last_accessed: float


@dataclass(slots=True, frozen=True)
class RateLimitResult:
    """Outcome of one rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window.
        reset_time: Epoch seconds at which the window ends.
    """

    allowed: bool
    remaining: int
    reset_time: float

    @property
    def reset_time_ms(self) -> int:
        """Window end as epoch milliseconds."""
        return int(self.reset_time * 1000)

    def retry_after(self, now: float | None = None) -> int:
        """Whole seconds until the window ends, at least 1."""
        current = time.time() if now is None else now
        return max(1, math.ceil(self.reset_time - current))


class RateLimiter:
    """Fixed-window counter keyed by an arbitrary string.

    Attributes:
        limit: Requests allowed per window.
        window_seconds: Window length.
        max_entries: Maximum number of tracked keys.
    """

    def __init__(
        self,
        limit: int = 60,
        window_seconds: float = 60.0,
        max_entries: int = 10_000,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: TTLCache[str, RateLimitEntry] = TTLCache(
            maxsize=max_entries, ttl=window_seconds, timer=clock
        )
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and report whether it is allowed.

        A denied request does not consume quota but still refreshes the
        key's recency for LRU eviction.
        """
        with self._lock:
            now = self._clock()
            # Expired entries read as missing.
            entry = self._entries.get(key)

            if entry is None:
                entry = RateLimitEntry(count=1, reset_time=now + self.window_seconds, last_accessed=now)
                # When full, TTLCache drops expired keys first, then the least recently used.
                self._entries[key] = entry
                return RateLimitResult(allowed=True, remaining=self.limit - 1, reset_time=entry.reset_time)

            entry.last_accessed = now
            if entry.count >= self.limit:
                return RateLimitResult(allowed=False, remaining=0, reset_time=entry.reset_time)

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=self.limit - entry.count,
                reset_time=entry.reset_time,
            )

    def release(self, key: str) -> None:
        """Undo one granted request for ``key`` in its current window."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.count > 0:
                entry.count -= 1

    def reset(self, key: str) -> None:
        """Forget ``key`` entirely."""
        with self._lock:
            self._entries.pop(key, None)

    def cleanup(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        with self._lock:
            expired = self._entries.expire()
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {"size": len(self._entries), "max_entries": self.max_entries}


class CompositeRateLimiter:
    """Per-caller limiter guarded by a global limiter.

    The caller check runs first. When it passes but the global check fails,
    the caller's increment is rolled back so the caller is not charged for
    global contention, and the global result is returned.
    """

    def __init__(self, caller: RateLimiter, global_: RateLimiter, *, global_key: str = GLOBAL_KEY) -> None:
        self.caller = caller
        self.global_ = global_
        self.global_key = global_key

    def check(self, caller_key: str) -> RateLimitResult:
        caller_result = self.caller.check(caller_key)
        if not caller_result.allowed:
            return caller_result

        global_result = self.global_.check(self.global_key)
        if not global_result.allowed:
            self.caller.release(caller_key)
            logger.info("rate_limit_global_denied: caller=%s", caller_key)
            return global_result

        return caller_result

    def get_stats(self) -> dict[str, Any]:
        return {"caller": self.caller.get_stats(), "global": self.global_.get_stats()}


class RateLimitSweeper:
    """Background task purging expired entries from limiters at an interval."""

    def __init__(self, limiters: Iterable[RateLimiter], interval: float = 60.0) -> None:
        self._limiters = tuple(limiters)
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> int:
        """Run one cleanup pass over all limiters. Returns entries removed."""
        removed = sum(limiter.cleanup() for limiter in self._limiters)
        if removed:
            logger.debug("rate_limit_sweep: removed=%d", removed)
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.sweep()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None


__all__ = [
    "GLOBAL_KEY",
    "CompositeRateLimiter",
    "RateLimitEntry",
    "RateLimitResult",
    "RateLimitSweeper",
    "RateLimiter",
]
