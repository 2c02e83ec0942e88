"""Retry, timeout and circuit-breaker primitives for async I/O."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from signal_core.errors import CircuitOpenError, OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    backoff: str = "linear",
    factor: float = 2.0,
) -> float:
    """Delay before retry number `attempt` (1-based).

    Linear waits base_delay * attempt, exponential base_delay * factor ** (attempt - 1).
    """
    if backoff == "exponential":
        delay = base_delay * factor ** (attempt - 1)
    else:
        delay = base_delay * attempt
    return min(delay, max_delay)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    backoff: str = "linear",
    factor: float = 2.0,
    retry_on: Callable[[BaseException], bool] | None = None,
    operation: str = "operation",
) -> T:
    """Call `fn` until it succeeds, at most `max_retries` extra times.

    Args:
        fn: Zero-argument coroutine function.
        max_retries: Retries after the first attempt.
        base_delay: Seconds for the first backoff step.
        max_delay: Upper bound on any single delay.
        backoff: "linear" or "exponential".
        factor: Exponential growth factor.
        retry_on: Predicate deciding whether an error is retryable.
        operation: Name used in log messages.

    Raises:
        The last error once retries are exhausted or `retry_on` rejects it.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if attempt >= max_retries or (retry_on is not None and not retry_on(e)):
                raise
            attempt += 1
            delay = backoff_delay(attempt, base_delay, max_delay, backoff, factor)
            logger.warning(f"{operation}: retry {attempt}/{max_retries} in {delay:.2f}s after error: {e}")
            await asyncio.sleep(delay)


async def with_timeout(awaitable: Awaitable[T], timeout: float, operation: str = "operation") -> T:
    """Await with a deadline.

    Raises:
        OperationTimeoutError: If `timeout` seconds pass first.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise OperationTimeoutError(operation, timeout) from e


async def safe_execute(
    fn: Callable[[], Awaitable[T]],
    fallback: Any = None,
    context: dict[str, Any] | None = None,
) -> T | Any:
    """Run `fn`; on failure log it and return the fallback.

    A callable fallback is called with the exception.
    """
    try:
        return await fn()
    except Exception as e:
        logger.warning(f"Safe execution failed ({context or {}}): {type(e).__name__}: {e}")
        if callable(fallback):
            return fallback(e)
        return fallback


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Stops calling a failing dependency for a while.

    CLOSED: calls pass; `failure_threshold` consecutive failures open the circuit.
    OPEN: calls are rejected until `reset_timeout` seconds after the last failure.
    HALF_OPEN: up to `half_open_requests` probes pass; that many successes close
    the circuit, any failure reopens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        half_open_requests: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_requests = half_open_requests
        self._clock = clock
        self._state = CircuitState.CLOSED
        self.failures = 0
        self.successes = 0
        self.half_open_attempts = 0
        self.last_failure_time: float | None = None

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._reset_elapsed():
            self._state = CircuitState.HALF_OPEN
            self.half_open_attempts = 0
            self.successes = 0
            logger.info(f"Circuit '{self.name}' HALF_OPEN")
        return self._state

    def _reset_elapsed(self) -> bool:
        return self.last_failure_time is not None and self._clock() - self.last_failure_time >= self.reset_timeout

    def _retry_after(self) -> float:
        if self.last_failure_time is None:
            return 0.0
        return max(0.0, self.reset_timeout - (self._clock() - self.last_failure_time))

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is not admitting calls.
        """
        state = self.state
        if state is CircuitState.OPEN:
            raise CircuitOpenError(self.name, retry_after=self._retry_after())
        if state is CircuitState.HALF_OPEN:
            if self.half_open_attempts >= self.half_open_requests:
                raise CircuitOpenError(self.name, half_open=True)
            self.half_open_attempts += 1

        try:
            result = await fn()
        except Exception:
            self._on_failure()
            raise
        except BaseException:
            # Cancelled: no outcome to record, hand the half-open slot back.
            if self._state is CircuitState.HALF_OPEN and self.half_open_attempts > 0:
                self.half_open_attempts -= 1
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            self.successes += 1
            if self.successes >= self.half_open_requests:
                logger.info(f"Circuit '{self.name}' CLOSED after successful probe")
                self.reset()
        else:
            self.failures = 0

    def _on_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = self._clock()
        if self._state is CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self.half_open_attempts = 0
            logger.warning(f"Circuit '{self.name}' reopened after failed probe")
        elif self.failures >= self.failure_threshold and self._state is CircuitState.CLOSED:
            self._state = CircuitState.OPEN
            logger.warning(f"Circuit '{self.name}' OPEN after {self.failures} consecutive failures")

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self.failures = 0
        self.successes = 0
        self.half_open_attempts = 0

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failures": self.failures,
            "last_failure_time": self.last_failure_time,
        }
