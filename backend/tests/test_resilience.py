"""Tests for retry, timeout and circuit breaker behaviour."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from signal_app.resilience import (
    CircuitBreaker,
    CircuitState,
    backoff_delay,
    retry_async,
    safe_execute,
    with_timeout,
)
from signal_core.errors import CircuitOpenError, ErrorCode, OperationTimeoutError


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def fail():
    raise ConnectionError("down")


async def ok():
    return "ok"


# ---------------------------------------------------------------------------
# Backoff and retry
# ---------------------------------------------------------------------------

class TestBackoff:
    @pytest.mark.parametrize("attempt,expected", [(1, 1.0), (2, 2.0), (3, 3.0), (20, 10.0)])
    def test_linear(self, attempt, expected):
        assert backoff_delay(attempt, 1.0, 10.0) == expected

    @pytest.mark.parametrize("attempt,expected", [(1, 0.5), (2, 1.0), (3, 2.0), (10, 5.0)])
    def test_exponential(self, attempt, expected):
        assert backoff_delay(attempt, 0.5, 5.0, backoff="exponential") == expected


class TestRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        fn = AsyncMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "done"])
        with patch("signal_app.resilience.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await retry_async(fn, max_retries=3, base_delay=1.0) == "done"
        assert fn.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up(self):
        fn = AsyncMock(side_effect=ConnectionError("down"))
        with patch("signal_app.resilience.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ConnectionError):
                await retry_async(fn, max_retries=2)
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_raised_immediately(self):
        fn = AsyncMock(side_effect=ValueError("bad input"))
        with pytest.raises(ValueError):
            await retry_async(fn, retry_on=lambda e: isinstance(e, ConnectionError))
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        fn = AsyncMock(side_effect=ConnectionError("down"))
        with pytest.raises(ConnectionError):
            await retry_async(fn, max_retries=0)
        assert fn.await_count == 1


class TestTimeoutAndSafeExecute:
    @pytest.mark.asyncio
    async def test_timeout(self):
        with pytest.raises(OperationTimeoutError) as exc_info:
            await with_timeout(asyncio.sleep(1), 0.01, operation="slow")
        assert exc_info.value.code == ErrorCode.TIMEOUT
        assert exc_info.value.context["operation"] == "slow"

    @pytest.mark.asyncio
    async def test_within_deadline(self):
        assert await with_timeout(ok(), 1.0) == "ok"

    @pytest.mark.asyncio
    async def test_safe_execute_fallbacks(self):
        assert await safe_execute(fail, fallback=[]) == []
        assert await safe_execute(fail, fallback=lambda e: type(e).__name__) == "ConnectionError"
        assert await safe_execute(ok, fallback=None) == "ok"


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------

class TestCircuitBreaker:
    @staticmethod
    async def _trip(breaker: CircuitBreaker, times: int) -> None:
        for _ in range(times):
            with pytest.raises(ConnectionError):
                await breaker.call(fail)

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker("feed", failure_threshold=3, clock=FakeClock())
        await self._trip(breaker, 2)
        assert breaker.state is CircuitState.CLOSED
        await self._trip(breaker, 1)
        assert breaker.state is CircuitState.OPEN
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(ok)
        assert exc_info.value.code == ErrorCode.CIRCUIT_OPEN

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        breaker = CircuitBreaker("feed", failure_threshold=3, clock=FakeClock())
        await self._trip(breaker, 2)
        await breaker.call(ok)
        assert breaker.failures == 0
        await self._trip(breaker, 2)
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_probe_closes(self):
        clock = FakeClock()
        breaker = CircuitBreaker("feed", failure_threshold=1, reset_timeout=30, clock=clock)
        await self._trip(breaker, 1)
        clock.now = 29.9
        assert breaker.state is CircuitState.OPEN
        clock.now = 30
        assert breaker.state is CircuitState.HALF_OPEN
        assert await breaker.call(ok) == "ok"
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_probe_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker("feed", failure_threshold=1, reset_timeout=30, clock=clock)
        await self._trip(breaker, 1)
        clock.now = 31
        await self._trip(breaker, 1)
        assert breaker.state is CircuitState.OPEN
        assert breaker.stats()["state"] == "OPEN"

    @pytest.mark.asyncio
    async def test_half_open_admits_limited_probes(self):
        clock = FakeClock()
        breaker = CircuitBreaker("feed", failure_threshold=1, reset_timeout=30, half_open_requests=1, clock=clock)
        await self._trip(breaker, 1)
        clock.now = 30
        gate = asyncio.Event()

        async def slow():
            await gate.wait()
            return "ok"

        probe = asyncio.create_task(breaker.call(slow))
        await asyncio.sleep(0)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(ok)
        assert exc_info.value.code == ErrorCode.CIRCUIT_HALF_OPEN
        gate.set()
        assert await probe == "ok"
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_half_open_call_releases_slot(self):
        clock = FakeClock()
        breaker = CircuitBreaker("feed", failure_threshold=1, reset_timeout=30, half_open_requests=1, clock=clock)
        await self._trip(breaker, 1)
        clock.now = 30

        async def hang():
            await asyncio.Event().wait()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(breaker.call(hang), 0.01)
        assert breaker.half_open_attempts == 0
        clock.now = 10_000
        assert await breaker.call(ok) == "ok"
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_retry_after(self):
        clock = FakeClock()
        breaker = CircuitBreaker("feed", failure_threshold=1, reset_timeout=30, clock=clock)
        await self._trip(breaker, 1)
        clock.now = 10
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(ok)
        assert exc_info.value.context["retry_after"] == 20.0
