"""Retry/backoff engine for vendor calls.

Wraps an async operation with tenacity. Recoverable gateway errors are
retried using the error's own delay hint when it has one, otherwise
exponential backoff with jitter. Everything else is raised immediately.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from device_gateway.core.errors import DeviceGatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_DELAY = 0.1


def is_retryable(error: BaseException) -> bool:
    """Check whether an error should be retried locally."""
    return isinstance(error, DeviceGatewayError) and error.is_recoverable


class RetryEngine:
    """Retry policy shared by all vendor adapters.

    Attributes:
        max_retries: Retries after the first attempt
        base_delay: Backoff base in seconds
        max_delay: Backoff cap in seconds
        jitter: Fractional perturbation applied to backoff delays
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._sleep = sleep
        self._rng = rng

    def compute_delay(self, error: BaseException | None, attempt: int) -> float:
        """Delay before the next attempt.

        Args:
            error: Error raised by the failed attempt
            attempt: Zero-based index of the failed attempt

        Returns:
            Seconds to wait
        """
        if isinstance(error, DeviceGatewayError) and error.retry_delay > 0:
            return error.retry_delay
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        spread = delay * self.jitter * (2 * self._rng() - 1)
        return max(MIN_DELAY, min(delay + spread, self.max_delay))

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return self.compute_delay(error, retry_state.attempt_number - 1)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        name = getattr(retry_state.fn, "__name__", "operation")
        logger.warning(
            f"Retrying {name} in {delay:.2f}s "
            f"(attempt {retry_state.attempt_number}/{self.max_retries + 1}): {error}"
        )

    async def run(
        self, operation: Callable[..., Awaitable[T]], *args, **kwargs
    ) -> T:
        """Run an operation under the retry policy.

        Args:
            operation: Async callable to invoke
            *args: Positional arguments for the operation
            **kwargs: Keyword arguments for the operation

        Returns:
            The operation's result

        Raises:
            Exception: The last error once attempts are exhausted, or the
                first non-retryable error
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            retry=retry_if_exception(is_retryable),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )
        return await retrying(operation, *args, **kwargs)
