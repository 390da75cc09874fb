from typing import Optional

from loguru import logger

from image_job_client.backoff import BackoffExecutor
from image_job_client.exceptions import DomainRejection
from image_job_client.models import SUBMIT_BACKOFF, JobHandle, SubmitRequest
from image_job_client.transport import HttpTransport

SUBMIT_SUCCESS_CODE = 1


class SubmissionClient:
    """Starts remote jobs and turns the service's acknowledgement into a JobHandle"""

    def __init__(
        self,
        transport: HttpTransport,
        executor: Optional[BackoffExecutor] = None,
        timeout: float = 15.0,
    ):
        self.transport = transport
        self.executor = executor or BackoffExecutor(SUBMIT_BACKOFF)
        self.timeout = timeout
        self.logger = logger

    async def submit(self, request: SubmitRequest) -> JobHandle:
        """Submits one job and returns its handle.

        Connection failures are retried by the executor. A non-2xx status or a
        2xx body without the success code raises DomainRejection, unretried.
        """
        response = await self.executor.execute(
            lambda: self.transport.post_json(request.endpoint, request.payload, self.timeout),
            label=f"submit {request.endpoint}",
        )

        if not response.ok:
            self.logger.error(f"HTTP error {response.status} at {request.endpoint}: {response.text}")
            raise DomainRejection(response.text, response.status)

        data = response.json_body()
        if data.get("code") != SUBMIT_SUCCESS_CODE or not data.get("result"):
            description = data.get("description") or "Unknown"
            self.logger.error(f"Submission to {request.endpoint} rejected: {description}")
            raise DomainRejection(description)

        handle = JobHandle(id=str(data["result"]))
        self.logger.info(f"Task submitted to {request.endpoint}, task id: {handle.id}")
        return handle
