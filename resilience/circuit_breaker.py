"""
Circuit breaker for the point store and the geocoding provider.

A breaker opens after a run of consecutive failures and then rejects calls
immediately until its recovery timeout has elapsed, after which a single
probe call decides whether it closes again:

- CLOSED: calls pass through, failures are counted
- OPEN: calls fail fast with CircuitOpenException
- HALF_OPEN: one probe call is let through

Exceptions listed in ``CircuitBreakerConfig.ignored_exceptions`` propagate
to the caller without counting as failures. The point store uses this for
Elasticsearch version conflicts, which are a normal outcome of concurrent
appends and say nothing about the health of the cluster.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")


class CircuitState(Enum):
    """
    Circuit breaker states.

    Transitions:
    - CLOSED -> OPEN after failure_threshold consecutive failures
    - OPEN -> HALF_OPEN once recovery_timeout has elapsed
    - HALF_OPEN -> CLOSED when the probe succeeds
    - HALF_OPEN -> OPEN when the probe fails
    """
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """
    Configuration for a circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures before the circuit opens.
        recovery_timeout: How long the circuit stays open before probing.
        half_open_max_calls: Probe calls allowed while half-open.
        ignored_exceptions: Exception types that are re-raised without
            being recorded as failures.
    """
    failure_threshold: int = 3
    recovery_timeout: timedelta = field(default_factory=lambda: timedelta(seconds=30))
    half_open_max_calls: int = 1
    ignored_exceptions: Tuple[Type[BaseException], ...] = ()


class CircuitOpenException(Exception):
    """Raised instead of calling the protected service while the circuit is open."""

    def __init__(self, circuit_name: str, time_until_retry: Optional[timedelta] = None):
        """
        Initialize a CircuitOpenException.

        Args:
            circuit_name: The name of the circuit breaker that is open
            time_until_retry: Time until the circuit will let a probe through,
                if known
        """
        self.circuit_name = circuit_name
        self.time_until_retry = time_until_retry

        message = f"Circuit breaker '{circuit_name}' is open"
        if time_until_retry is not None:
            seconds = int(time_until_retry.total_seconds())
            message += f", retry in {seconds} seconds"

        super().__init__(message)


class CircuitBreaker:
    """
    Guards calls to an external dependency.

    Example:
        breaker = CircuitBreaker("point_store", CircuitBreakerConfig(failure_threshold=3))

        try:
            doc = await breaker.execute(client.get, index="location_reports", id=doc_id)
        except CircuitOpenException:
            # Fail fast with 503
            ...

    Args:
        name: Name used in logs and error details (e.g. "point_store")
        config: Thresholds; defaults to CircuitBreakerConfig()
        clock: Monotonic clock in seconds, replaceable in tests
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def _elapsed_since_open(self) -> timedelta:
        if self._opened_at is None:
            return self.config.recovery_timeout
        return timedelta(seconds=self._clock() - self._opened_at)

    def _time_until_retry(self) -> Optional[timedelta]:
        remaining = self.config.recovery_timeout - self._elapsed_since_open()
        if remaining.total_seconds() <= 0:
            return None
        return remaining

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.CLOSED
            self._half_open_calls = 0
        self._failure_count = 0

    def _on_failure(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._trip()
            return

        self._failure_count += 1
        if self._failure_count >= self.config.failure_threshold:
            self._trip()

    def _on_ignored(self) -> None:
        # The probe reached the service, so the circuit may close
        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.CLOSED
            self._half_open_calls = 0
            self._failure_count = 0

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_calls = 0

    async def _admit(self) -> None:
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._time_until_retry() is not None:
                    raise CircuitOpenException(self.name, self._time_until_retry())
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitOpenException(self.name, self._time_until_retry())
                self._half_open_calls += 1

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any
    ) -> T:
        """
        Await ``func(*args, **kwargs)`` under circuit breaker protection.

        Args:
            func: The coroutine function to call
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Whatever func returns

        Raises:
            CircuitOpenException: If the circuit is open, or half-open with
                its probe already in flight
            Exception: Anything raised by func
        """
        await self._admit()

        # The call itself runs outside the lock
        try:
            result = await func(*args, **kwargs)
        except self.config.ignored_exceptions:
            async with self._lock:
                self._on_ignored()
            raise
        except Exception:
            async with self._lock:
                self._on_failure()
            raise

        async with self._lock:
            self._on_success()
        return result

    def reset(self) -> None:
        """Force the circuit closed, e.g. after a known recovery or in tests."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._half_open_calls = 0

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self.name!r}, state={self._state.value}, "
            f"failure_count={self._failure_count})"
        )
