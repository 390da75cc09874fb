import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional

import aiohttp
from loguru import logger

from image_job_client.backoff import BackoffExecutor
from image_job_client.cascade import StrategyCascade
from image_job_client.fallback import FallbackPolicy
from image_job_client.kinds import default_adapters
from image_job_client.models import (
    BlendInput,
    DescribeInput,
    GenerateInput,
    JobKind,
    JobResult,
    ServiceConfig,
    StatusResponse,
    UpscaleInput,
    VariationInput,
    VaryRegionInput,
)
from image_job_client.orchestrator import TaskOrchestrator
from image_job_client.poller import StatusPoller
from image_job_client.submission import SubmissionClient
from image_job_client.transport import HttpTransport


class ImageJobClient:
    """One coroutine per job kind, each running the job to completion.

    Only ``generate`` falls back to a placeholder image; every other kind
    raises whatever went wrong.
    """

    def __init__(
        self,
        config: ServiceConfig,
        session: Optional[aiohttp.ClientSession] = None,
        on_status_change: Optional[Callable[[StatusResponse], Awaitable[Any]]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.logger = logger
        self.transport = HttpTransport(config.base_url, config.api_key, session=session)
        self.submission = SubmissionClient(
            self.transport,
            executor=BackoffExecutor(config.submit_backoff, sleep=sleep),
            timeout=config.submit_timeout,
        )
        self.poller = StatusPoller(
            self.transport,
            config=config.polling,
            executor=BackoffExecutor(config.status_backoff, sleep=sleep),
            timeout=config.fetch_timeout,
            sleep=sleep,
            on_status_change=on_status_change,
        )
        self.orchestrator = TaskOrchestrator(
            self.submission, self.poller, default_adapters(config.model_version)
        )
        self.cascade = StrategyCascade(self.orchestrator)
        self.fallback = FallbackPolicy()

    @classmethod
    def from_env(cls, **kwargs: Any) -> "ImageJobClient":
        return cls(ServiceConfig.from_env(), **kwargs)

    async def generate(self, params: GenerateInput) -> JobResult:
        self.logger.info(f"Generating {params.style_type} image")
        started_at = time.monotonic()
        return await self.fallback.run(
            lambda: self.orchestrator.run(JobKind.generate, params),
            style_type=params.style_type,
            started_at=started_at,
        )

    async def create_variation(self, params: VariationInput) -> JobResult:
        self.logger.info(f"Creating variation {params.index} of task {params.task_id}")
        return await self.orchestrator.run(JobKind.variation, params)

    async def upscale(self, params: UpscaleInput) -> JobResult:
        self.logger.info(f"Upscaling image {params.index} of task {params.task_id}")
        return await self.orchestrator.run(JobKind.upscale, params)

    async def describe(self, params: DescribeInput) -> JobResult:
        self.logger.info("Describing image")
        return await self.orchestrator.run(JobKind.describe, params)

    async def describe_prompts(self, image_url: str) -> List[str]:
        result = await self.describe(DescribeInput(image_url=image_url))
        return result.prompts

    async def blend(self, params: BlendInput) -> JobResult:
        self.logger.info(f"Blending {len(params.images)} images")
        return await self.orchestrator.run(JobKind.blend, params)

    async def vary_region(self, params: VaryRegionInput) -> JobResult:
        self.logger.info(f"Inpainting region of task {params.task_id}")
        return await self.cascade.run(params)
