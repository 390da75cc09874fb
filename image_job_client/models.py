import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from image_job_client.exceptions import ConfigurationError


class JobKind(str, Enum):
    generate = "generate"
    variation = "variation"
    upscale = "upscale"
    describe = "describe"
    blend = "blend"
    region_edit = "region_edit"


class JobStatus(str, Enum):
    submitted = "SUBMITTED"
    processing = "PROCESSING"
    success = "SUCCESS"
    failure = "FAILURE"
    timed_out = "TIMED_OUT"
    unknown = "UNKNOWN"

    @classmethod
    def from_remote(cls, value: Optional[str]) -> "JobStatus":
        """Maps the status string reported by the image service onto a JobStatus"""
        if not value:
            return cls.unknown
        value = value.upper()
        if value == "FAILED":
            return cls.failure
        if value == cls.timed_out.value:
            # only ever synthesized locally
            return cls.unknown
        try:
            return cls(value)
        except ValueError:
            return cls.unknown


TERMINAL_STATUSES = frozenset({JobStatus.success, JobStatus.failure, JobStatus.timed_out})
NON_TERMINAL_STATUSES = frozenset({JobStatus.submitted, JobStatus.processing, JobStatus.unknown})

# Position of each status in the remote life cycle; unknown values sit with SUBMITTED.
STATUS_ORDER = {
    JobStatus.unknown: 0,
    JobStatus.submitted: 0,
    JobStatus.processing: 1,
    JobStatus.success: 2,
    JobStatus.failure: 2,
    JobStatus.timed_out: 2,
}


class JobRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: JobKind
    parameters: Any


class JobHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SubmitRequest(BaseModel):
    """One concrete request that starts a remote job"""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    payload: Dict[str, Any]


class Strategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    build: Callable[[Any], SubmitRequest]


class StatusResponse(BaseModel):
    status: JobStatus
    job_id: str
    progress: Optional[str] = None
    fail_reason: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    prompt: Optional[str] = None
    raw_response: dict = Field(default_factory=dict)
    elapsed_time: float = 0.0

    @classmethod
    def from_remote(cls, job_id: str, data: dict, elapsed_time: float = 0.0) -> "StatusResponse":
        image_urls = [
            item["url"]
            for item in data.get("imageUrls") or []
            if isinstance(item, dict) and item.get("url")
        ]
        if data.get("imageUrl") and data["imageUrl"] not in image_urls:
            image_urls.append(data["imageUrl"])

        return cls(
            status=JobStatus.from_remote(data.get("status")),
            job_id=data.get("id") or job_id,
            progress=data.get("progress"),
            fail_reason=data.get("failReason"),
            image_urls=image_urls,
            prompt=data.get("prompt"),
            raw_response=data,
            elapsed_time=elapsed_time,
        )


class JobMetadata(BaseModel):
    model: str
    job_id: str
    elapsed_ms: int
    progress: Optional[str] = None
    strategy: Optional[str] = None


class JobResult(BaseModel):
    primary_output_uri: str
    mime_type: str = "image/png"
    metadata: JobMetadata
    output_uris: List[str] = Field(default_factory=list)
    prompts: List[str] = Field(default_factory=list)

    def to_contract(self) -> Dict[str, Any]:
        """Renders the result in the shape the request handlers return to clients"""
        metadata: Dict[str, Any] = {
            "model": self.metadata.model,
            "jobId": self.metadata.job_id,
            "elapsedMs": self.metadata.elapsed_ms,
        }
        if self.metadata.progress is not None:
            metadata["progress"] = self.metadata.progress
        if self.metadata.strategy is not None:
            metadata["strategy"] = self.metadata.strategy
        return {
            "primaryOutputUri": self.primary_output_uri,
            "mimeType": self.mime_type,
            "metadata": metadata,
        }


class RetryState(BaseModel):
    label: str
    attempt: int = 0
    next_delay_ms: int = 0


class GenerateInput(BaseModel):
    prompt: str = Field(min_length=1)
    platform: Optional[Literal["web", "ios", "android"]] = None
    style_type: Literal["wireframe", "high_fidelity", "sketch"] = "wireframe"
    translate: bool = True


class VariationInput(BaseModel):
    task_id: str
    index: int = Field(default=1, ge=1, le=4)
    custom_prompt: Optional[str] = None


class UpscaleInput(BaseModel):
    task_id: str
    index: int = Field(ge=1, le=4)


class DescribeInput(BaseModel):
    image_url: str = Field(min_length=1)


class BlendInput(BaseModel):
    images: List[str] = Field(min_length=2, max_length=5)
    dimensions: Literal["PORTRAIT", "SQUARE", "LANDSCAPE"] = "SQUARE"


class VaryRegionInput(BaseModel):
    task_id: str
    mask_data_url: str = Field(min_length=1)
    prompt: str
    image_url: Optional[str] = None


class BackoffConfig(BaseModel):
    max_retries: int = Field(default=3, ge=0)
    initial_delay_ms: float = 2000.0
    multiplier: float = 1.5
    max_delay_ms: float = 10000.0


class PollingConfig(BaseModel):
    max_attempts: int = Field(default=60, ge=1)
    interval_ms: float = 5000.0  # 60 x 5s = 5 minutes


PERSISTENCE_BACKOFF = BackoffConfig(max_retries=5, initial_delay_ms=1000.0)
SUBMIT_BACKOFF = BackoffConfig(max_retries=3, initial_delay_ms=3000.0)
STATUS_BACKOFF = BackoffConfig(max_retries=3, initial_delay_ms=2000.0)


class ServiceConfig(BaseModel):
    api_key: str
    base_url: str = "https://api.aigc2d.com"
    model_version: str = "7"
    submit_timeout: float = 15.0
    fetch_timeout: float = 10.0
    submit_backoff: BackoffConfig = SUBMIT_BACKOFF
    status_backoff: BackoffConfig = STATUS_BACKOFF
    polling: PollingConfig = Field(default_factory=PollingConfig)

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        api_key = os.getenv("MIDJOURNEY_API_KEY", "").strip()
        if not api_key:
            raise ConfigurationError("MIDJOURNEY_API_KEY is not configured")
        return cls(
            api_key=api_key,
            base_url=os.getenv("MIDJOURNEY_API_URL") or "https://api.aigc2d.com",
            model_version=os.getenv("MIDJOURNEY_MODEL_VERSION") or "7",
        )
