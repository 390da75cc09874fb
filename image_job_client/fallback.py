import time
from typing import Awaitable, Callable, Optional

from loguru import logger

from image_job_client.models import JobMetadata, JobResult
from image_job_client.orchestrator import elapsed_ms_since

PLACEHOLDER_MODEL = "placeholder"

PLACEHOLDER_URLS = {
    "wireframe": "https://placehold.co/1920x1080/e5e5e5/666666?text=Wireframe+Mockup",
    "high_fidelity": "https://placehold.co/1920x1080/f0f0f0/333333?text=High+Fidelity+Design",
    "sketch": "https://placehold.co/1920x1080/fafafa/999999?text=Sketch+Style",
}


def placeholder_result(style_type: Optional[str], elapsed_ms: int) -> JobResult:
    url = PLACEHOLDER_URLS.get(style_type or "wireframe", PLACEHOLDER_URLS["wireframe"])
    return JobResult(
        primary_output_uri=url,
        mime_type="image/png",
        output_uris=[url],
        metadata=JobMetadata(
            model=PLACEHOLDER_MODEL,
            job_id=f"placeholder-{int(time.time() * 1000)}",
            elapsed_ms=elapsed_ms,
            progress="100%",
        ),
    )


class FallbackPolicy:
    """Turns a failed generate run into a placeholder image so callers always get a result"""

    def __init__(self):
        self.logger = logger

    async def run(
        self,
        operation: Callable[[], Awaitable[JobResult]],
        style_type: Optional[str] = None,
        started_at: Optional[float] = None,
    ) -> JobResult:
        if started_at is None:
            started_at = time.monotonic()
        try:
            return await operation()
        except Exception as error:
            self.logger.opt(exception=error).warning(
                f"Image generation failed, using placeholder image: {error}"
            )
            return placeholder_result(style_type, elapsed_ms_since(started_at))
