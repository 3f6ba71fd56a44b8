"""Tests for the retry handler."""

import asyncio

import pytest

from app.pipelines.errors import RemoteRejection, TransportFailure
from app.pipelines.retry_handler import RetryConfig, RetryHandler


class FlakyOperation:
    """Fails ``failures`` times, then returns ``result``."""

    def __init__(self, failures: int, result: str = "ok"):
        self.failures = failures
        self.result = result
        self.calls = 0
        self.raised = []

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            error = TransportFailure(f"attempt {self.calls} failed")
            self.raised.append(error)
            raise error
        return self.result


@pytest.mark.asyncio
async def test_fails_twice_then_succeeds(recording_sleep):
    operation = FlakyOperation(failures=2)
    handler = RetryHandler(RetryConfig(), sleep=recording_sleep)

    result = await handler.execute_with_retry(operation, operation_name="flaky")

    assert result == "ok"
    assert operation.calls == 3


@pytest.mark.asyncio
async def test_always_failing_returns_final_error(recording_sleep):
    operation = FlakyOperation(failures=10)
    handler = RetryHandler(RetryConfig(), sleep=recording_sleep)

    with pytest.raises(TransportFailure) as exc_info:
        await handler.execute_with_retry(operation, operation_name="broken")

    assert operation.calls == 3
    assert exc_info.value is operation.raised[-1]
    assert "attempt 3 failed" in str(exc_info.value)


@pytest.mark.asyncio
async def test_backoff_doubles_between_attempts(recording_sleep):
    operation = FlakyOperation(failures=10)
    handler = RetryHandler(RetryConfig(), sleep=recording_sleep)

    with pytest.raises(TransportFailure):
        await handler.execute_with_retry(operation)

    assert recording_sleep.delays == pytest.approx([0.1, 0.2])


@pytest.mark.asyncio
async def test_success_on_first_attempt_does_not_sleep(recording_sleep):
    operation = FlakyOperation(failures=0)
    handler = RetryHandler(RetryConfig(), sleep=recording_sleep)

    assert await handler.execute_with_retry(operation) == "ok"
    assert operation.calls == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_permanent_error_stops_immediately(recording_sleep):
    calls = []

    async def rejected():
        calls.append(1)
        raise RemoteRejection(400, "bad request", retryable=False)

    handler = RetryHandler(RetryConfig(), sleep=recording_sleep)

    with pytest.raises(RemoteRejection):
        await handler.execute_with_retry(rejected)

    assert len(calls) == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_permanent_flag_ignored_when_disabled(recording_sleep):
    calls = []

    async def rejected():
        calls.append(1)
        raise RemoteRejection(400, "bad request", retryable=False)

    handler = RetryHandler(RetryConfig(respect_retryable_flag=False), sleep=recording_sleep)

    with pytest.raises(RemoteRejection):
        await handler.execute_with_retry(rejected)

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_non_matching_exception_is_not_retried(recording_sleep):
    calls = []

    def explode():
        calls.append(1)
        raise KeyError("missing")

    handler = RetryHandler(RetryConfig(retryable_exceptions=(TransportFailure,)), sleep=recording_sleep)

    with pytest.raises(KeyError):
        await handler.execute_with_retry(explode)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_sync_callable_and_arguments():
    handler = RetryHandler(RetryConfig(max_attempts=1))

    result = await handler.execute_with_retry(lambda a, b=0: a + b, 2, b=3)

    assert result == 5


@pytest.mark.asyncio
async def test_delay_is_capped(recording_sleep):
    operation = FlakyOperation(failures=10)
    config = RetryConfig(max_attempts=4, base_delay=1.0, max_delay=1.5)
    handler = RetryHandler(config, sleep=recording_sleep)

    with pytest.raises(TransportFailure):
        await handler.execute_with_retry(operation)

    assert recording_sleep.delays == pytest.approx([1.0, 1.5, 1.5])


@pytest.mark.asyncio
async def test_cancellation_abandons_pending_backoff():
    operation = FlakyOperation(failures=10)
    handler = RetryHandler(RetryConfig(base_delay=10.0))

    task = asyncio.create_task(handler.execute_with_retry(operation))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert operation.calls == 1


def test_invalid_attempt_budget():
    with pytest.raises(ValueError):
        RetryConfig(max_attempts=0)
