import time
from typing import Any, Dict, Optional

from loguru import logger

from image_job_client.exceptions import JobFailed
from image_job_client.kinds import JobKindAdapter, default_adapters
from image_job_client.models import JobKind, JobRequest, JobResult, SubmitRequest
from image_job_client.poller import StatusPoller
from image_job_client.submission import SubmissionClient


def elapsed_ms_since(started_at: float) -> int:
    return int((time.monotonic() - started_at) * 1000)


class TaskOrchestrator:
    """Runs one job to completion: submit, poll, normalize.

    Submission and polling errors propagate to the caller unchanged.
    """

    def __init__(
        self,
        submission: SubmissionClient,
        poller: StatusPoller,
        adapters: Optional[Dict[JobKind, JobKindAdapter]] = None,
    ):
        self.submission = submission
        self.poller = poller
        self.adapters = adapters or default_adapters()
        self.logger = logger

    def adapter_for(self, kind: JobKind) -> JobKindAdapter:
        try:
            return self.adapters[kind]
        except KeyError:
            raise ValueError(f"No adapter registered for job kind {kind.value!r}")

    async def run(self, kind: JobKind, params: Any) -> JobResult:
        adapter = self.adapter_for(kind)
        return await self.run_request(adapter, adapter.build_request(params), params)

    async def run_job(self, request: JobRequest) -> JobResult:
        return await self.run(request.kind, request.parameters)

    async def run_request(
        self,
        adapter: JobKindAdapter,
        request: SubmitRequest,
        params: Any,
        model_label: Optional[str] = None,
        started_at: Optional[float] = None,
    ) -> JobResult:
        if started_at is None:
            started_at = time.monotonic()

        self.logger.info(f"Submitting {adapter.kind.value} task to {request.endpoint}")
        handle = await self.submission.submit(request)

        self.logger.debug(f"Waiting for {adapter.kind.value} task {handle.id}")
        status_response = await self.poller.poll(handle, has_output=adapter.has_output)

        result = adapter.extract(
            status_response,
            handle,
            params,
            elapsed_ms_since(started_at),
            model_label=model_label,
        )
        if not result.primary_output_uri:
            self.logger.error(f"{adapter.kind.value} task {handle.id} finished without an output")
            raise JobFailed(handle.id, "No image URL in completed task")

        self.logger.info(
            f"{adapter.kind.value} task {handle.id} completed in {result.metadata.elapsed_ms}ms: "
            f"{result.primary_output_uri}"
        )
        return result
