"""Retry and health checks around calls into the relational store.

Only connection-class failures are retried; anything else reaches the caller
on the first attempt so non-idempotent writes are never repeated. Health is
reported per call instead of being cached in a module-wide flag.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from loguru import logger
from pydantic import BaseModel, Field

from image_job_client.backoff import BackoffExecutor
from image_job_client.models import PERSISTENCE_BACKOFF, BackoffConfig

T = TypeVar("T")


class DatabaseHealth(BaseModel):
    healthy: bool
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None


async def check_database_health(probe: Callable[[], Awaitable[Any]]) -> DatabaseHealth:
    """Runs a trivial query (e.g. ``SELECT 1``) and reports whether it succeeded"""
    try:
        await probe()
    except Exception as error:
        logger.error(f"Database health check failed: {error}")
        return DatabaseHealth(healthy=False, error=str(error))
    return DatabaseHealth(healthy=True)


async def warmup_database_connection(
    probe: Callable[[], Awaitable[Any]],
    config: Optional[BackoffConfig] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> bool:
    executor = BackoffExecutor(config or PERSISTENCE_BACKOFF, sleep=sleep)
    logger.info("Warming up database connection...")

    for attempt in range(executor.max_attempts):
        health = await check_database_health(probe)
        if health.healthy:
            logger.info("Database connection warmed up")
            return True

        logger.warning(f"Warm-up attempt {attempt + 1}/{executor.max_attempts} failed")
        if attempt < executor.max_attempts - 1:
            delay = executor.calculate_delay(attempt)
            logger.debug(f"Waiting {delay}ms before next warm-up attempt")
            await sleep(delay / 1000)

    logger.error("Database connection warm-up failed")
    return False


_default_executor = BackoffExecutor(PERSISTENCE_BACKOFF)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str = "database operation",
    executor: Optional[BackoffExecutor] = None,
) -> T:
    return await (executor or _default_executor).execute(operation, label)
