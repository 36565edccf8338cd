"""
Resilience Utilities
Shared rate limiting, retry and circuit breaking for outbound collaborator calls.

This service provides:
1. AsyncTokenBucket: per-minute call budget shared by all symbol pipelines
2. with_retry: exponential backoff with jitter for sync and async callables
3. ServiceCircuitBreaker: CLOSED / OPEN / HALF_OPEN breaker for a collaborator
"""
import asyncio
import functools
import inspect
import logging
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx

from ..exceptions import CircuitOpenError, ProviderError, RateLimitExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exception types that warrant a retry
DEFAULT_RETRYABLE: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    httpx.TransportError,
    ProviderError,
)


# =============================================================================
# Rate limiting
# =============================================================================

class AsyncTokenBucket:
    """
    Token bucket sized from a per-minute budget.

    Capacity equals the budget, refilled continuously at budget/60 tokens per
    second. Callers await acquire(); the session scheduler resizes the bucket
    when the session budget changes.
    """

    def __init__(
        self,
        budget_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            budget_per_minute: Calls allowed per minute
            clock: Monotonic time source (injectable for tests)
        """
        self._clock = clock
        self._lock = asyncio.Lock()
        self.capacity = float(budget_per_minute)
        self.refill_rate = budget_per_minute / 60.0
        self._tokens = float(budget_per_minute)
        self._last = clock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last = now

    def resize(self, budget_per_minute: int) -> None:
        """Change the budget; current tokens are clipped to the new capacity."""
        if budget_per_minute == self.capacity:
            return
        self._refill()
        logger.info(f"Rate limit budget changed: {self.capacity:.0f} -> {budget_per_minute}/min")
        self.capacity = float(budget_per_minute)
        self.refill_rate = budget_per_minute / 60.0
        self._tokens = min(self._tokens, self.capacity)

    def try_acquire(self) -> bool:
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self, timeout: Optional[float] = None) -> None:
        """
        Wait for a token.

        Raises:
            RateLimitExceededError: If no token becomes available within timeout
        """
        waited = 0.0
        async with self._lock:
            while not self.try_acquire():
                delay = (1.0 - self._tokens) / self.refill_rate if self.refill_rate > 0 else 1.0
                if timeout is not None and waited + delay > timeout:
                    raise RateLimitExceededError(retry_after=delay)
                await asyncio.sleep(delay)
                waited += delay


# =============================================================================
# Retry
# =============================================================================

def _compute_delay(attempt: int, base_delay: float, max_delay: float, backoff_factor: float, jitter: bool) -> float:
    """Calculate delay for a given attempt with exponential backoff + jitter."""
    delay = base_delay * (backoff_factor ** (attempt - 1))
    if jitter:
        delay *= random.uniform(0.5, 1.5)
    return min(delay, max_delay)


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
) -> Callable:
    """
    Decorator that retries a function on transient failures.

    Circuit-open rejections are never retried.

    Usage:
        @with_retry(max_attempts=3)
        async def get_snapshot(...):
            ...
    """
    retry_on = retryable_exceptions or DEFAULT_RETRYABLE

    def _should_retry(exc: Exception, attempt: int) -> bool:
        return not isinstance(exc, CircuitOpenError) and attempt < max_attempts

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as exc:
                    if not _should_retry(exc, attempt):
                        raise
                    delay = _compute_delay(attempt, base_delay, max_delay, backoff_factor, jitter)
                    logger.warning(
                        f"{func.__qualname__} failed (attempt {attempt}/{max_attempts}), "
                        f"retrying in {delay:.2f}s: {exc}"
                    )
                    await asyncio.sleep(delay)

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as exc:
                    if not _should_retry(exc, attempt):
                        raise
                    delay = _compute_delay(attempt, base_delay, max_delay, backoff_factor, jitter)
                    logger.warning(
                        f"{func.__qualname__} failed (attempt {attempt}/{max_attempts}), "
                        f"retrying in {delay:.2f}s: {exc}"
                    )
                    time.sleep(delay)

        return async_wrapper if inspect.iscoroutinefunction(func) else sync_wrapper

    return decorator


# =============================================================================
# Circuit breaker
# =============================================================================

class CircuitState(str, Enum):
    """Circuit breaker state"""
    CLOSED = "closed"        # Calls pass, failures counted
    OPEN = "open"            # Calls rejected until recovery timeout
    HALF_OPEN = "half_open"  # One trial call allowed


class ServiceCircuitBreaker:
    """
    Per-collaborator circuit breaker.

    Opens after failure_threshold consecutive failures; after
    recovery_timeout one trial call is let through, which closes the
    circuit on success and reopens it on failure. Other callers are
    rejected while the trial call is in flight.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            service_name: Identifier for the collaborator
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds before a trial call is allowed
            clock: Monotonic time source (injectable for tests)
        """
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info(f"Circuit for {self.service_name} half-open, allowing a trial call")
        return self._state

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Await func() through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open, or half-open with the
                trial call still in flight
        """
        state = self.state
        if state == CircuitState.OPEN:
            retry_after = self.recovery_timeout - (self._clock() - self._opened_at)
            raise CircuitOpenError(self.service_name, max(0.0, retry_after))

        trial = state == CircuitState.HALF_OPEN
        if trial:
            if self._trial_in_flight:
                raise CircuitOpenError(self.service_name, 0.0)
            self._trial_in_flight = True

        try:
            result = await func()
        except Exception as exc:
            self._on_failure(exc)
            raise
        finally:
            if trial:
                self._trial_in_flight = False
        self._on_success()
        return result

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit for {self.service_name} closed, trial call succeeded")
        self._state = CircuitState.CLOSED
        self._failure_count = 0

    def _on_failure(self, exc: Exception) -> None:
        self._failure_count += 1
        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(
                    f"Circuit for {self.service_name} opened after {self._failure_count} failures: {exc}"
                )
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
