import asyncio
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import aiohttp
from loguru import logger

from image_job_client.exceptions import ImageJobError
from image_job_client.models import BackoffConfig, RetryState

T = TypeVar("T")

CONNECTION_ERROR_CODES = frozenset(
    {
        "P1001",  # can't reach database server
        "P1002",  # database server timed out
        "P1008",  # operation timed out
        "P1017",  # server closed the connection
        "ECONNREFUSED",
        "ECONNRESET",
        "ETIMEDOUT",
    }
)

CONNECTION_ERROR_PHRASES = (
    "can't reach database",
    "connection refused",
    "connection reset",
    "timed out",
)


def is_transient_error(error: BaseException) -> bool:
    """Tells connection/timeout-class failures apart from everything else"""
    if isinstance(error, ImageJobError):
        return False
    if isinstance(
        error,
        (aiohttp.ClientConnectionError, asyncio.TimeoutError, TimeoutError, ConnectionError),
    ):
        return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.upper() in CONNECTION_ERROR_CODES:
        return True

    message = str(error).lower()
    return any(phrase in message for phrase in CONNECTION_ERROR_PHRASES)


class BackoffExecutor:
    """Runs an operation, retrying transient failures with geometric backoff.

    ``max_retries`` is the total number of attempts; zero still runs the
    operation once. Nothing is kept on the executor between calls, so one
    instance can serve any number of concurrent operations.
    """

    def __init__(
        self,
        config: Optional[BackoffConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        is_retryable: Callable[[BaseException], bool] = is_transient_error,
    ):
        self.config = config or BackoffConfig()
        self.sleep = sleep
        self.is_retryable = is_retryable
        self.logger = logger

    @property
    def max_attempts(self) -> int:
        return max(1, self.config.max_retries)

    def calculate_delay(self, attempt: int) -> int:
        """Delay in milliseconds before the retry that follows failed attempt ``attempt`` (0-based)"""
        delay = min(
            self.config.initial_delay_ms * (self.config.multiplier**attempt),
            self.config.max_delay_ms,
        )
        return int(delay)

    def delay_schedule(self) -> List[int]:
        return [self.calculate_delay(attempt) for attempt in range(self.config.max_retries)]

    async def execute(self, operation: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        state = RetryState(label=label)

        while True:
            try:
                return await operation()
            except Exception as error:
                if not self.is_retryable(error):
                    raise

                state.attempt += 1
                if state.attempt >= self.max_attempts:
                    self.logger.error(
                        f"{label} failed after {state.attempt} attempts: {error!r}"
                    )
                    raise

                state.next_delay_ms = self.calculate_delay(state.attempt - 1)
                self.logger.warning(
                    f"{label} failed (attempt {state.attempt}/{self.max_attempts}), "
                    f"retrying in {state.next_delay_ms}ms: {error!r}"
                )
                await self.sleep(state.next_delay_ms / 1000)
