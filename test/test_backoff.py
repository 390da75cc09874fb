import asyncio

import aiohttp
import pytest
from image_job_client.backoff import BackoffExecutor, is_transient_error
from image_job_client.exceptions import DomainRejection, JobTimedOut
from image_job_client.models import PERSISTENCE_BACKOFF, BackoffConfig


class CodedError(Exception):
    def __init__(self, code, message="database error"):
        super().__init__(message)
        self.code = code


class FlakyOperation:
    """Fails the first ``failures`` calls with ``error``, then returns ``value``"""

    def __init__(self, failures, error=None, value="ok"):
        self.failures = failures
        self.error = error or aiohttp.ClientConnectionError("connection refused")
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


def test_delay_schedule_for_persistence_bounds():
    executor = BackoffExecutor(PERSISTENCE_BACKOFF)
    schedule = executor.delay_schedule()

    assert schedule == [1000, 1500, 2250, 3375, 5062]
    assert schedule == sorted(schedule)


def test_delays_are_capped():
    executor = BackoffExecutor(BackoffConfig(max_retries=12, initial_delay_ms=1000))
    schedule = executor.delay_schedule()

    assert max(schedule) == 10000
    assert all(delay <= 10000 for delay in schedule)
    assert schedule == sorted(schedule)


@pytest.mark.asyncio
@pytest.mark.parametrize("failures", [0, 1, 2, 4])
async def test_succeeds_after_transient_failures(fake_sleep, failures):
    executor = BackoffExecutor(PERSISTENCE_BACKOFF, sleep=fake_sleep)
    operation = FlakyOperation(failures)

    result = await executor.execute(operation, "load project")

    assert result == "ok"
    assert operation.calls == failures + 1
    assert fake_sleep.calls == [delay / 1000 for delay in executor.delay_schedule()[:failures]]


@pytest.mark.asyncio
async def test_reraises_last_error_after_exhausting_attempts(fake_sleep):
    error = asyncio.TimeoutError()
    executor = BackoffExecutor(PERSISTENCE_BACKOFF, sleep=fake_sleep)
    operation = FlakyOperation(failures=100, error=error)

    with pytest.raises(asyncio.TimeoutError) as excinfo:
        await executor.execute(operation, "load project")

    assert excinfo.value is error
    assert operation.calls == 5
    assert fake_sleep.calls == [1.0, 1.5, 2.25, 3.375]


@pytest.mark.asyncio
async def test_non_retryable_error_is_raised_immediately(fake_sleep):
    error = ValueError("unique constraint violated")
    executor = BackoffExecutor(PERSISTENCE_BACKOFF, sleep=fake_sleep)
    operation = FlakyOperation(failures=1, error=error)

    with pytest.raises(ValueError):
        await executor.execute(operation, "create task")

    assert operation.calls == 1
    assert fake_sleep.calls == []


@pytest.mark.asyncio
async def test_zero_retries_runs_once(fake_sleep):
    executor = BackoffExecutor(BackoffConfig(max_retries=0), sleep=fake_sleep)
    operation = FlakyOperation(failures=1)

    with pytest.raises(aiohttp.ClientConnectionError):
        await executor.execute(operation)

    assert operation.calls == 1
    assert fake_sleep.calls == []


@pytest.mark.asyncio
async def test_success_on_last_attempt_does_not_sleep_again(fake_sleep):
    executor = BackoffExecutor(BackoffConfig(max_retries=3, initial_delay_ms=2000), sleep=fake_sleep)
    operation = FlakyOperation(failures=2)

    assert await executor.execute(operation) == "ok"
    assert operation.calls == 3
    assert fake_sleep.calls == [2.0, 3.0]


@pytest.mark.asyncio
async def test_concurrent_calls_keep_separate_attempt_counts(fake_sleep):
    executor = BackoffExecutor(BackoffConfig(max_retries=3), sleep=fake_sleep)
    first = FlakyOperation(failures=2, value="first")
    second = FlakyOperation(failures=0, value="second")

    results = await asyncio.gather(executor.execute(first), executor.execute(second))

    assert results == ["first", "second"]
    assert first.calls == 3
    assert second.calls == 1


@pytest.mark.parametrize(
    "error",
    [
        aiohttp.ClientConnectionError(),
        aiohttp.ServerDisconnectedError(),
        asyncio.TimeoutError(),
        ConnectionResetError(),
        CodedError("P1001"),
        CodedError("P1002"),
        Exception("Can't reach database server at localhost:5432"),
    ],
)
def test_connection_class_errors_are_transient(error):
    assert is_transient_error(error)


@pytest.mark.parametrize(
    "error",
    [
        ValueError("bad input"),
        CodedError("P2002", "Unique constraint failed"),
        DomainRejection("Banned prompt"),
        JobTimedOut("task-1", 60, 295000),
    ],
)
def test_other_errors_are_not_transient(error):
    assert not is_transient_error(error)
