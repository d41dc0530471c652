"""
Behavioral tests for the fixed-window rate limiters.

A controllable clock drives window expiry; nothing sleeps except the
sweeper lifecycle test.
"""

import asyncio

import pytest

from chat_relay.core.rate_limiter import (
    CompositeRateLimiter,
    RateLimiter,
    RateLimitResult,
    RateLimitSweeper,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestRateLimiter:
    """Behavioral tests for RateLimiter."""

    def test_allows_up_to_limit_then_denies(self, clock):
        limiter = RateLimiter(limit=3, window_seconds=60, clock=clock)

        results = [limiter.check("caller") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    def test_reset_time_is_window_end(self, clock):
        limiter = RateLimiter(limit=3, window_seconds=60, clock=clock)

        first = limiter.check("caller")
        second = limiter.check("caller")

        assert first.reset_time == clock.now + 60
        assert second.reset_time == first.reset_time

    def test_new_window_after_expiry(self, clock):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
        assert limiter.check("caller").allowed
        assert not limiter.check("caller").allowed

        clock.advance(61)
        result = limiter.check("caller")

        assert result.allowed
        assert result.remaining == 0

    def test_keys_are_independent(self, clock):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)

        assert limiter.check("a").allowed
        assert not limiter.check("a").allowed
        assert limiter.check("b").allowed

    def test_denied_request_does_not_consume_quota(self, clock):
        limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)
        limiter.check("caller")
        limiter.check("caller")
        for _ in range(5):
            assert not limiter.check("caller").allowed

        limiter.release("caller")

        assert limiter.check("caller").allowed

    def test_least_recently_used_key_is_evicted_when_full(self, clock):
        limiter = RateLimiter(limit=2, window_seconds=60, max_entries=2, clock=clock)
        limiter.check("a")
        limiter.check("b")
        limiter.check("a")  # "a" is now at its limit and most recently used

        limiter.check("c")  # evicts "b"

        assert not limiter.check("a").allowed
        fresh = limiter.check("b")
        assert fresh.allowed
        assert fresh.remaining == 1

    def test_size_never_exceeds_max_entries(self, clock):
        limiter = RateLimiter(limit=5, window_seconds=60, max_entries=10, clock=clock)

        for index in range(50):
            limiter.check(f"caller-{index}")

        assert limiter.get_stats() == {"size": 10, "max_entries": 10}

    def test_cleanup_removes_expired_entries(self, clock):
        limiter = RateLimiter(limit=5, window_seconds=60, clock=clock)
        limiter.check("a")
        limiter.check("b")
        clock.advance(30)
        limiter.check("c")

        clock.advance(31)
        removed = limiter.cleanup()

        assert removed == 2
        assert limiter.get_stats()["size"] == 1

    def test_reset_forgets_key(self, clock):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
        limiter.check("caller")

        limiter.reset("caller")

        assert limiter.check("caller").allowed

    @pytest.mark.parametrize("limit,window", [(0, 60), (5, 0)])
    def test_rejects_invalid_configuration(self, limit, window):
        with pytest.raises(ValueError):
            RateLimiter(limit=limit, window_seconds=window)


class TestRateLimitResult:
    def test_reset_time_ms(self):
        assert RateLimitResult(False, 0, 1_700_000_000.5).reset_time_ms == 1_700_000_000_500

    def test_retry_after_rounds_up(self):
        result = RateLimitResult(False, 0, 1_000.2)
        assert result.retry_after(now=990.0) == 11

    def test_retry_after_is_at_least_one_second(self):
        result = RateLimitResult(False, 0, 1_000.0)
        assert result.retry_after(now=1_005.0) == 1


class TestCompositeRateLimiter:
    """Behavioral tests for the caller plus global composition."""

    def test_caller_denial_wins(self, clock):
        composite = CompositeRateLimiter(
            RateLimiter(limit=1, window_seconds=60, clock=clock),
            RateLimiter(limit=100, window_seconds=60, clock=clock),
        )
        composite.check("caller")

        result = composite.check("caller")

        assert not result.allowed
        # The global counter only saw the first request.
        assert composite.global_.check("global").remaining == 98

    def test_global_denial_rolls_back_caller(self, clock):
        composite = CompositeRateLimiter(
            RateLimiter(limit=5, window_seconds=60, clock=clock),
            RateLimiter(limit=2, window_seconds=60, clock=clock),
        )
        assert composite.check("a").allowed
        assert composite.check("b").allowed

        denied = composite.check("c")

        assert not denied.allowed
        assert denied.remaining == 0
        assert composite.caller.check("c").remaining == 4

    def test_allowed_result_reports_caller_remaining(self, clock):
        composite = CompositeRateLimiter(
            RateLimiter(limit=5, window_seconds=60, clock=clock),
            RateLimiter(limit=100, window_seconds=60, clock=clock),
        )

        result = composite.check("caller")

        assert result.allowed
        assert result.remaining == 4

    def test_get_stats_reports_both_limiters(self, clock):
        composite = CompositeRateLimiter(
            RateLimiter(limit=5, window_seconds=60, max_entries=100, clock=clock),
            RateLimiter(limit=5, window_seconds=60, max_entries=1, clock=clock),
        )
        composite.check("a")
        composite.check("b")

        stats = composite.get_stats()

        assert stats["caller"] == {"size": 2, "max_entries": 100}
        assert stats["global"] == {"size": 1, "max_entries": 1}


@pytest.mark.asyncio
class TestRateLimitSweeper:
    async def test_start_and_stop(self):
        sweeper = RateLimitSweeper([RateLimiter()], interval=0.01)

        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.03)
        await sweeper.stop()

        assert not sweeper.running

    async def test_stop_without_start_is_noop(self):
        sweeper = RateLimitSweeper([RateLimiter()])
        await sweeper.stop()
        assert not sweeper.running

    async def test_sweep_counts_removed_entries(self, clock):
        first = RateLimiter(limit=5, window_seconds=10, clock=clock)
        second = RateLimiter(limit=5, window_seconds=10, clock=clock)
        first.check("a")
        second.check("b")
        second.check("c")
        clock.advance(11)

        assert RateLimitSweeper([first, second]).sweep() == 3
