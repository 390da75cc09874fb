import asyncio
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from image_job_client.backoff import BackoffExecutor
from image_job_client.exceptions import DomainRejection, JobFailed, JobTimedOut
from image_job_client.models import (
    STATUS_BACKOFF,
    NON_TERMINAL_STATUSES,
    STATUS_ORDER,
    TERMINAL_STATUSES,
    JobHandle,
    JobStatus,
    PollingConfig,
    StatusResponse,
)
from image_job_client.transport import HttpTransport


def has_image_output(status_response: StatusResponse) -> bool:
    return bool(status_response.image_urls)


class StatusPoller:
    """Polls a job's status on a fixed cadence until it reaches a terminal state.

    SUBMITTED, PROCESSING and unrecognized statuses all mean "keep polling".
    SUCCESS with output is returned, FAILURE raises JobFailed, and running out
    of attempts raises JobTimedOut.
    """

    def __init__(
        self,
        transport: HttpTransport,
        config: Optional[PollingConfig] = None,
        executor: Optional[BackoffExecutor] = None,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_status_change: Optional[Callable[[StatusResponse], Awaitable[Any]]] = None,
    ):
        self.transport = transport
        self.config = config or PollingConfig()
        self.executor = executor or BackoffExecutor(STATUS_BACKOFF, sleep=sleep)
        self.timeout = timeout
        self.sleep = sleep
        self.on_status_change = on_status_change
        self.logger = logger

    async def _get_status_once(self, handle: JobHandle) -> StatusResponse:
        """Fetches the current status for a handle; connection failures go through the executor"""
        start_time = asyncio.get_running_loop().time()
        path = f"/mj/task/{handle.id}/fetch"

        response = await self.executor.execute(
            lambda: self.transport.get_json(path, self.timeout),
            label=f"fetch task {handle.id}",
        )
        if not response.ok:
            self.logger.error(f"HTTP error {response.status} at {path}: {response.text}")
            raise DomainRejection(response.text, response.status)

        elapsed_time = asyncio.get_running_loop().time() - start_time
        return StatusResponse.from_remote(handle.id, response.json_body(), elapsed_time)

    async def _handle_status_change(
        self, status_response: StatusResponse, last_status: Optional[JobStatus]
    ) -> None:
        """Warns on a status that moved backwards, then notifies the callback of the change"""
        if last_status == status_response.status:
            return
        if last_status is not None and STATUS_ORDER[status_response.status] < STATUS_ORDER[last_status]:
            self.logger.warning(
                f"Task {status_response.job_id} reported {status_response.status.value} "
                f"after {last_status.value}"
            )
        self.logger.debug(f"Task {status_response.job_id} status changed to {status_response.status.value}")
        if self.on_status_change is not None:
            await self.on_status_change(status_response)

    async def _wait_before_next_poll(self, handle: JobHandle) -> None:
        delay = self.config.interval_ms / 1000
        self.logger.debug(f"Task {handle.id} not finished, waiting {delay:.2f}s before next check")
        await self.sleep(delay)

    async def poll(
        self,
        handle: JobHandle,
        has_output: Callable[[StatusResponse], bool] = has_image_output,
    ) -> StatusResponse:
        last_status = None

        for attempt in range(1, self.config.max_attempts + 1):
            status_response = await self._get_status_once(handle)
            self.logger.info(
                f"Task {handle.id} status: {status_response.status.value} | "
                f"Progress: {status_response.progress or 'N/A'}"
            )

            await self._handle_status_change(status_response, last_status)
            last_status = status_response.status

            if status_response.status in NON_TERMINAL_STATUSES:
                pass
            elif status_response.status == JobStatus.failure:
                raise JobFailed(handle.id, status_response.fail_reason)
            elif status_response.status in TERMINAL_STATUSES and has_output(status_response):
                return status_response
            # SUCCESS with no output yet is polled again

            if attempt < self.config.max_attempts:
                await self._wait_before_next_poll(handle)

        waited_ms = int(self.config.max_attempts * self.config.interval_ms)
        self.logger.error(f"Task {handle.id} did not finish after {self.config.max_attempts} checks")
        raise JobTimedOut(handle.id, self.config.max_attempts, waited_ms)
