"""
Retry policy with exponential backoff for async operations.

Built on tenacity's ``AsyncRetrying``.

Usage:
    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    vector = await policy.run(lambda: embedder.aembed_query(text), "embed query")
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from support_mediator.exceptions import NonRetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Default retry predicate: everything except NonRetryableError."""
    return not isinstance(error, NonRetryableError)


class wait_schedule(wait_base):
    """Wait strategy driven by a function of the 0-based failed attempt index."""

    def __init__(self, backoff: Callable[[int], float]):
        self.backoff = backoff

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.backoff(retry_state.attempt_number - 1)


class RetryPolicy:
    """
    Reusable retry policy.

    After failed attempt ``i`` (0-based) the policy sleeps ``backoff(i)``
    seconds, which defaults to ``base_delay * 2 ** i`` (1s, 2s, 4s, ...).
    No sleep happens after the final attempt; the last error propagates
    unchanged. Errors rejected by ``retry_on`` propagate immediately.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        backoff: Optional[Callable[[int], float]] = None,
        retry_on: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            max_attempts: Total number of attempts (>= 1)
            base_delay: Delay in seconds before the second attempt
            backoff: Optional custom schedule, attempt index -> seconds
            retry_on: Predicate deciding whether an error is retry-eligible
            sleep: Awaitable sleep (injected in tests)
            timeout: Optional per-attempt timeout in seconds
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.retry_on = retry_on
        self.timeout = timeout
        self._sleep = sleep
        if backoff is not None:
            self._wait = wait_schedule(backoff)
        else:
            self._wait = wait_exponential(multiplier=base_delay, exp_base=2)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(self.retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
    ) -> T:
        """
        Run ``operation`` until it succeeds or attempts are exhausted.

        Args:
            operation: Zero-argument callable returning an awaitable
            description: Label used in log messages

        Returns:
            The operation's result
        """
        try:
            async for attempt in self._retrying():
                with attempt:
                    if self.timeout is not None:
                        result = await asyncio.wait_for(operation(), timeout=self.timeout)
                    else:
                        result = await operation()
        except Exception as e:
            if self.retry_on(e):
                logger.error(f"{description} failed after {self.max_attempts} attempts: {e!r}")
            raise
        return result


async def retry(operation: Callable[[], Awaitable[T]], max_retries: int = 3) -> T:
    """Run ``operation`` with the default exponential schedule."""
    return await RetryPolicy(max_attempts=max_retries).run(operation)
