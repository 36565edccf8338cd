"""
Unit Tests for Rate Limiting, Retry and Circuit Breaking
========================================================
Tests cover:
- AsyncTokenBucket capacity, refill, resize and acquire timeouts
- with_retry on sync and async callables
- ServiceCircuitBreaker CLOSED -> OPEN -> HALF_OPEN -> CLOSED transitions

Run with: pytest stratscan/tests/unit/test_resilience.py -v
"""
import asyncio

import pytest

from stratscan.exceptions import CircuitOpenError, IndicatorProviderError, RateLimitExceededError
from stratscan.services.resilience import (
    AsyncTokenBucket,
    CircuitState,
    ServiceCircuitBreaker,
    with_retry,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================
# Token bucket
# ============================================================

@pytest.mark.unit
class TestAsyncTokenBucket:

    def test_starts_full(self, clock):
        bucket = AsyncTokenBucket(60, clock=clock)
        assert bucket.tokens == pytest.approx(60.0)

    def test_exhaust_and_refill(self, clock):
        bucket = AsyncTokenBucket(2, clock=clock)

        assert bucket.try_acquire()
        assert bucket.try_acquire()
        assert not bucket.try_acquire()

        # 2/min refills one token every 30 seconds
        clock.advance(30)
        assert bucket.try_acquire()
        assert not bucket.try_acquire()

    def test_refill_capped_at_capacity(self, clock):
        bucket = AsyncTokenBucket(5, clock=clock)
        clock.advance(3600)
        assert bucket.tokens == pytest.approx(5.0)

    def test_resize_clips_tokens(self, clock):
        bucket = AsyncTokenBucket(60, clock=clock)
        bucket.resize(15)

        assert bucket.capacity == 15
        assert bucket.tokens == pytest.approx(15.0)
        assert bucket.refill_rate == pytest.approx(0.25)

    def test_resize_up_keeps_tokens(self, clock):
        bucket = AsyncTokenBucket(5, clock=clock)
        bucket.resize(60)
        assert bucket.tokens == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_acquire_with_token_available(self, clock):
        bucket = AsyncTokenBucket(10, clock=clock)
        await bucket.acquire(timeout=0)
        assert bucket.tokens == pytest.approx(9.0)

    @pytest.mark.asyncio
    async def test_acquire_times_out(self, clock):
        bucket = AsyncTokenBucket(1, clock=clock)
        assert bucket.try_acquire()

        with pytest.raises(RateLimitExceededError) as exc_info:
            await bucket.acquire(timeout=0.01)
        assert exc_info.value.retry_after == pytest.approx(60.0)


# ============================================================
# Retry
# ============================================================

@pytest.mark.unit
class TestWithRetry:

    @pytest.mark.asyncio
    async def test_async_retries_then_succeeds(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0, jitter=False)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_async_gives_up_after_max_attempts(self):
        calls = []

        @with_retry(max_attempts=2, base_delay=0, jitter=False)
        async def down():
            calls.append(1)
            raise IndicatorProviderError("unavailable", symbol="TEST")

        with pytest.raises(IndicatorProviderError):
            await down()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_non_retryable_raised_immediately(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0)
        async def broken():
            calls.append(1)
            raise ValueError("bug")

        with pytest.raises(ValueError):
            await broken()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_circuit_open_not_retried(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0)
        async def rejected():
            calls.append(1)
            raise CircuitOpenError("indicators", retry_after=30)

        with pytest.raises(CircuitOpenError):
            await rejected()
        assert len(calls) == 1

    def test_sync_retry(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0, jitter=False, retryable_exceptions=(TimeoutError,))
        def slow():
            calls.append(1)
            if len(calls) == 1:
                raise TimeoutError()
            return 42

        assert slow() == 42
        assert len(calls) == 2

    def test_wraps_preserves_name(self):
        @with_retry()
        async def get_snapshot():
            return None

        assert get_snapshot.__name__ == "get_snapshot"


# ============================================================
# Circuit breaker
# ============================================================

async def _fail():
    raise ConnectionError("down")


async def _ok():
    return "ok"


@pytest.mark.unit
class TestServiceCircuitBreaker:

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, clock):
        breaker = ServiceCircuitBreaker("indicators", failure_threshold=2, recovery_timeout=60, clock=clock)

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_without_calling(self, clock):
        breaker = ServiceCircuitBreaker("indicators", failure_threshold=1, recovery_timeout=60, clock=clock)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

        calls = []

        async def trial():
            calls.append(1)
            return "ok"

        clock.advance(10)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(trial)
        assert calls == []
        assert exc_info.value.retry_after == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_half_open_trial_success_closes(self, clock):
        breaker = ServiceCircuitBreaker("indicators", failure_threshold=1, recovery_timeout=60, clock=clock)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

        clock.advance(60)
        assert breaker.state == CircuitState.HALF_OPEN
        assert await breaker.call(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_trial_failure_reopens(self, clock):
        breaker = ServiceCircuitBreaker("indicators", failure_threshold=3, recovery_timeout=60, clock=clock)
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(_fail)

        clock.advance(61)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_half_open_admits_one_concurrent_caller(self, clock):
        breaker = ServiceCircuitBreaker("indicators", failure_threshold=1, recovery_timeout=60, clock=clock)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)
        clock.advance(60)

        release = asyncio.Event()
        calls = []

        async def slow_ok():
            calls.append(1)
            await release.wait()
            return "ok"

        first = asyncio.create_task(breaker.call(slow_ok))
        await asyncio.sleep(0)
        assert calls == [1]

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(slow_ok)
        assert exc_info.value.retry_after == 0.0
        assert calls == [1]

        release.set()
        assert await first == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_trial_frees_the_slot_after_timeout(self, clock):
        breaker = ServiceCircuitBreaker("indicators", failure_threshold=1, recovery_timeout=60, clock=clock)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)
        clock.advance(60)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

        clock.advance(60)
        assert await breaker.call(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, clock):
        breaker = ServiceCircuitBreaker("indicators", failure_threshold=2, recovery_timeout=60, clock=clock)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)
        await breaker.call(_ok)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

        assert breaker.state == CircuitState.CLOSED
