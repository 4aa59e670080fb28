"""Tests for the retry/backoff engine."""

from __future__ import annotations

import pytest

from device_gateway.core.errors import (
    DeviceBusy,
    NetworkError,
    PermissionDenied,
    RateLimitExceeded,
    ServerError,
)
from device_gateway.services.retry import MIN_DELAY, RetryEngine


class FlakyOperation:
    """Raises the queued errors in order, then returns a value."""

    def __init__(self, *errors: Exception, result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestRetryEngine:
    """Test retry decisions and delays."""

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, fake_sleep):
        """Test a non-recoverable error is raised after one attempt."""
        engine = RetryEngine(max_retries=3, sleep=fake_sleep)
        operation = FlakyOperation(PermissionDenied("nope"))

        with pytest.raises(PermissionDenied):
            await engine.run(operation)

        assert operation.calls == 1
        assert fake_sleep.calls == []

    @pytest.mark.asyncio
    async def test_exponential_backoff(self, fake_sleep):
        """Test recoverable errors use doubling delays and max+1 attempts."""
        engine = RetryEngine(max_retries=3, base_delay=1.0, jitter=0.0, sleep=fake_sleep)
        operation = FlakyOperation(*(NetworkError("down") for _ in range(10)))

        with pytest.raises(NetworkError):
            await engine.run(operation)

        assert operation.calls == 4
        assert fake_sleep.calls == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(self, fake_sleep):
        """Test the result is returned once an attempt succeeds."""
        engine = RetryEngine(max_retries=3, jitter=0.0, sleep=fake_sleep)
        operation = FlakyOperation(NetworkError("a"), ServerError(503), result="done")

        assert await engine.run(operation) == "done"
        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_error_delay_hint_used(self, fake_sleep):
        """Test errors with their own delay override backoff."""
        engine = RetryEngine(max_retries=2, jitter=0.0, sleep=fake_sleep)
        operation = FlakyOperation(
            RateLimitExceeded(retry_after=7.0), DeviceBusy("busy")
        )

        await engine.run(operation)

        assert fake_sleep.calls == [7.0, 5.0]

    def test_delay_capped(self):
        """Test backoff never exceeds max_delay."""
        engine = RetryEngine(base_delay=1.0, max_delay=30.0, jitter=0.0)
        assert engine.compute_delay(NetworkError("x"), 10) == 30.0

    def test_jitter_bounds(self):
        """Test jitter stays within the configured fraction."""
        low = RetryEngine(base_delay=2.0, jitter=0.1, rng=lambda: 0.0)
        high = RetryEngine(base_delay=2.0, jitter=0.1, rng=lambda: 1.0)
        assert low.compute_delay(None, 0) == pytest.approx(1.8)
        assert high.compute_delay(None, 0) == pytest.approx(2.2)

    def test_minimum_delay(self):
        """Test tiny base delays are raised to the floor."""
        engine = RetryEngine(base_delay=0.01, jitter=0.0)
        assert engine.compute_delay(None, 0) == MIN_DELAY
