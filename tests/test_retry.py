"""
Tests for Retry Policy Module

Backoff schedules are asserted with a recording sleep, so no test waits.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from support_mediator.exceptions import ClassificationFailure, TransientBackendFailure
from support_mediator.retry import RetryPolicy, is_retryable, retry


class RecordingSleep:
    """Awaitable sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def sleep():
    return RecordingSleep()


class TestRetryPolicy:
    """Tests for RetryPolicy.run."""

    def test_invalid_attempts(self):
        """At least one attempt is required."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    @pytest.mark.asyncio
    async def test_base_delay_scales_schedule(self, sleep):
        """Delays double from the base delay."""
        operation = AsyncMock(side_effect=RuntimeError("down"))
        policy = RetryPolicy(max_attempts=4, base_delay=0.5, sleep=sleep)

        with pytest.raises(RuntimeError):
            await policy.run(operation)

        assert sleep.delays == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_custom_backoff(self, sleep):
        """A custom schedule replaces the exponential one."""
        operation = AsyncMock(side_effect=[ConnectionError(), ConnectionError(), "ok"])
        policy = RetryPolicy(backoff=lambda attempt: 0.25 * (attempt + 1), sleep=sleep)

        assert await policy.run(operation) == "ok"
        assert sleep.delays == [0.25, 0.5]

    @pytest.mark.asyncio
    async def test_success_first_try(self, sleep):
        """No sleep when the first attempt succeeds."""
        operation = AsyncMock(return_value="ok")
        policy = RetryPolicy(sleep=sleep)

        assert await policy.run(operation) == "ok"
        assert operation.await_count == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self, sleep):
        """Transient errors are retried until success."""
        operation = AsyncMock(side_effect=[ConnectionError("down"), ConnectionError("down"), "ok"])
        policy = RetryPolicy(max_attempts=3, sleep=sleep)

        assert await policy.run(operation) == "ok"
        assert operation.await_count == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self, sleep):
        """An always-failing operation runs max_attempts times, then raises."""
        errors = [TransientBackendFailure(f"fail {i}") for i in range(3)]
        operation = AsyncMock(side_effect=errors)
        policy = RetryPolicy(max_attempts=3, sleep=sleep)

        with pytest.raises(TransientBackendFailure) as exc_info:
            await policy.run(operation)

        assert exc_info.value is errors[-1]
        assert operation.await_count == 3
        # No sleep after the final attempt
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_longer_schedule(self, sleep):
        """Five attempts sleep 1, 2, 4, 8 seconds."""
        operation = AsyncMock(side_effect=RuntimeError("nope"))
        policy = RetryPolicy(max_attempts=5, sleep=sleep)

        with pytest.raises(RuntimeError):
            await policy.run(operation)

        assert sleep.delays == [1.0, 2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self, sleep):
        """NonRetryableError subclasses are not retried."""
        operation = AsyncMock(side_effect=ClassificationFailure("bad json"))
        policy = RetryPolicy(max_attempts=3, sleep=sleep)

        with pytest.raises(ClassificationFailure):
            await policy.run(operation)

        assert operation.await_count == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_custom_predicate(self, sleep):
        """retry_on decides which errors are eligible."""
        operation = AsyncMock(side_effect=KeyError("x"))
        policy = RetryPolicy(retry_on=lambda e: not isinstance(e, KeyError), sleep=sleep)

        with pytest.raises(KeyError):
            await policy.run(operation)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, sleep):
        """A hung attempt times out and is retried."""
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                await asyncio.sleep(10)
            return "ok"

        policy = RetryPolicy(max_attempts=2, sleep=sleep, timeout=0.01)

        assert await policy.run(operation) == "ok"
        assert len(calls) == 2
        assert sleep.delays == [1.0]


class TestHelpers:
    """Tests for module-level helpers."""

    def test_is_retryable(self):
        assert is_retryable(ConnectionError()) is True
        assert is_retryable(ClassificationFailure("x")) is False

    @pytest.mark.asyncio
    async def test_retry_function(self):
        """retry() returns the operation's result."""
        operation = AsyncMock(return_value=[0.1, 0.2])
        assert await retry(operation) == [0.1, 0.2]
