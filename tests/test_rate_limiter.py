#!/usr/bin/env python3
"""Tests for the RateLimiter.

Tests cover:
    - Minimum spacing between dispatches
    - FIFO ordering and per-operation result delivery
    - Failure isolation (one failing operation never blocks the queue)
    - Quota backoff, its cap and the reset on success
    - submit_batch / submit_batch_operation grouping

A fake clock whose sleep advances time keeps the tests instant.
"""
import asyncio

import pytest

from src.wbssync.api.exceptions import QuotaExceededError, TransientError
from src.wbssync.api.rate_limiter import RateLimiter


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


def make_limiter(clock: FakeClock, **kwargs) -> RateLimiter:
    kwargs.setdefault("min_interval", 1.0)
    return RateLimiter(clock=clock, sleep=clock.sleep, **kwargs)


def recorder(clock: FakeClock, log: list, name: str, result=None, error: Exception | None = None):
    async def operation():
        log.append((name, clock.now))
        if error:
            raise error
        return result if result is not None else name
    return operation


# ============================================
# Spacing and ordering
# ============================================

class TestSubmit:
    """Test single-operation submission."""

    async def test_returns_operation_result(self, clock):
        limiter = make_limiter(clock)
        assert await limiter.submit(recorder(clock, [], "a", result=42)) == 42

    async def test_dispatches_are_spaced_by_min_interval(self, clock):
        """No two operations start closer than min_interval."""
        limiter = make_limiter(clock, min_interval=1.0)
        log: list = []

        await asyncio.gather(*(limiter.submit(recorder(clock, log, str(i))) for i in range(4)))

        starts = [t for _, t in log]
        for earlier, later in zip(starts, starts[1:]):
            assert later - earlier >= 1.0 - 1e-9

    async def test_fifo_order(self, clock):
        limiter = make_limiter(clock)
        log: list = []

        results = await asyncio.gather(
            *(limiter.submit(recorder(clock, log, name)) for name in "abcde")
        )

        assert [name for name, _ in log] == list("abcde")
        assert results == list("abcde")

    async def test_first_call_does_not_wait(self, clock):
        limiter = make_limiter(clock, min_interval=5.0)
        await limiter.submit(recorder(clock, [], "a"))
        assert clock.sleeps == []

    async def test_spacing_holds_across_separate_submissions(self, clock):
        """A later submit still waits out the interval since the last dispatch."""
        limiter = make_limiter(clock, min_interval=2.0)
        log: list = []

        await limiter.submit(recorder(clock, log, "a"))
        clock.now += 0.5
        await limiter.submit(recorder(clock, log, "b"))

        assert log[1][1] - log[0][1] == pytest.approx(2.0)

    async def test_failure_does_not_block_queue(self, clock):
        """A failing operation settles only its own future."""
        limiter = make_limiter(clock)
        log: list = []

        results = await asyncio.gather(
            limiter.submit(recorder(clock, log, "a")),
            limiter.submit(recorder(clock, log, "b", error=ValueError("bad row"))),
            limiter.submit(recorder(clock, log, "c")),
            return_exceptions=True,
        )

        assert results[0] == "a"
        assert isinstance(results[1], ValueError)
        assert results[2] == "c"
        assert [name for name, _ in log] == ["a", "b", "c"]

    async def test_worker_stops_when_queue_drains(self, clock):
        limiter = make_limiter(clock)
        await limiter.submit(recorder(clock, [], "a"))
        await asyncio.sleep(0)

        status = limiter.get_status()
        assert status["queue_length"] == 0
        assert status["processing"] is False


# ============================================
# Backoff
# ============================================

class TestBackoff:
    """Test interval widening on quota errors."""

    async def test_quota_error_doubles_interval(self, clock):
        limiter = make_limiter(clock, min_interval=1.0)

        with pytest.raises(QuotaExceededError):
            await limiter.submit(recorder(clock, [], "a", error=QuotaExceededError()))

        assert limiter.consecutive_errors == 1
        assert limiter.min_interval == 2.0

    async def test_consecutive_quota_errors_grow_then_saturate(self, clock):
        limiter = make_limiter(clock, min_interval=1.0, max_consecutive_errors=3)
        intervals = []

        for _ in range(5):
            with pytest.raises(QuotaExceededError):
                await limiter.submit(recorder(clock, [], "x", error=QuotaExceededError()))
            intervals.append(limiter.min_interval)

        assert intervals == [2.0, 4.0, 8.0, 8.0, 8.0]
        assert limiter.consecutive_errors == 3

    async def test_interval_capped_at_max_interval(self, clock):
        limiter = make_limiter(clock, min_interval=10.0, max_interval=30.0)

        for _ in range(2):
            with pytest.raises(QuotaExceededError):
                await limiter.submit(recorder(clock, [], "x", error=QuotaExceededError()))

        assert limiter.min_interval == 30.0

    async def test_success_resets_interval(self, clock):
        limiter = make_limiter(clock, min_interval=1.0)

        with pytest.raises(QuotaExceededError):
            await limiter.submit(recorder(clock, [], "x", error=QuotaExceededError()))
        await limiter.submit(recorder(clock, [], "ok"))

        assert limiter.min_interval == 1.0
        assert limiter.consecutive_errors == 0

    async def test_non_quota_error_keeps_interval(self, clock):
        """Transient failures count but do not widen the interval."""
        limiter = make_limiter(clock, min_interval=1.0)

        with pytest.raises(TransientError):
            await limiter.submit(recorder(clock, [], "x", error=TransientError("flaky")))

        assert limiter.consecutive_errors == 1
        assert limiter.min_interval == 1.0

    async def test_backoff_applies_to_next_dispatch(self, clock):
        limiter = make_limiter(clock, min_interval=1.0)
        log: list = []

        with pytest.raises(QuotaExceededError):
            await limiter.submit(recorder(clock, log, "a", error=QuotaExceededError()))
        await limiter.submit(recorder(clock, log, "b"))

        assert log[1][1] - log[0][1] == pytest.approx(2.0)


# ============================================
# Batch helpers
# ============================================

class TestSubmitBatch:
    """Test grouped submission."""

    async def test_sequential_preserves_order(self, clock):
        limiter = make_limiter(clock, min_interval=1.0, batch_delay=0.1)
        log: list = []
        ops = [recorder(clock, log, str(i)) for i in range(5)]

        results = await limiter.submit_batch(ops, batch_size=2)

        assert results == ["0", "1", "2", "3", "4"]
        assert [name for name, _ in log] == ["0", "1", "2", "3", "4"]

    async def test_sequential_sleeps(self, clock):
        """batch_delay after each op, min_interval between groups."""
        limiter = make_limiter(clock, min_interval=1.0, batch_delay=0.1)
        ops = [recorder(clock, [], str(i)) for i in range(3)]

        await limiter.submit_batch(ops, batch_size=2)

        assert clock.sleeps == [0.1, 0.1, 1.0, 0.1]

    async def test_parallel_within_batch_staggers(self, clock):
        limiter = make_limiter(clock, min_interval=1.0, batch_delay=0.1)
        ops = [recorder(clock, [], str(i)) for i in range(3)]

        results = await limiter.submit_batch(ops, batch_size=3, parallel_within_batch=True)

        assert results == ["0", "1", "2"]
        assert sorted(clock.sleeps) == pytest.approx([0.0, 0.1, 0.2])

    async def test_failure_fails_the_call(self, clock):
        limiter = make_limiter(clock)
        ops = [
            recorder(clock, [], "a"),
            recorder(clock, [], "b", error=ValueError("boom")),
        ]

        with pytest.raises(ValueError):
            await limiter.submit_batch(ops)

    async def test_batch_operation_chunks_items(self, clock):
        limiter = make_limiter(clock, min_interval=1.0)
        seen_chunks = []

        async def write(chunk):
            seen_chunks.append(list(chunk))
            return len(chunk)

        results = await limiter.submit_batch_operation(write, list(range(7)), batch_size=3)

        assert seen_chunks == [[0, 1, 2], [3, 4, 5], [6]]
        assert results == [3, 3, 1]

    async def test_batch_operation_empty(self, clock):
        limiter = make_limiter(clock)

        async def write(chunk):
            raise AssertionError("should not be called")

        assert await limiter.submit_batch_operation(write, []) == []


class TestStatus:
    async def test_get_status_fields(self, clock):
        limiter = make_limiter(clock, min_interval=1.5)
        await limiter.submit(recorder(clock, [], "a"))

        status = limiter.get_status()
        assert set(status) == {
            "queue_length",
            "processing",
            "min_interval",
            "consecutive_errors",
            "last_call_time",
        }
        assert status["min_interval"] == 1.5
        assert status["last_call_time"] == 0.0
