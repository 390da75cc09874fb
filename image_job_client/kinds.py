"""Per-kind request builders and output extractors.

Each job kind differs only in the endpoint it submits to, the payload it
sends and how the finished job is read back; everything else is shared by
the TaskOrchestrator.
"""
from typing import Any, Dict, List, Optional

from image_job_client.models import (
    BlendInput,
    DescribeInput,
    GenerateInput,
    JobHandle,
    JobKind,
    JobMetadata,
    JobResult,
    StatusResponse,
    Strategy,
    SubmitRequest,
    UpscaleInput,
    VariationInput,
    VaryRegionInput,
)

IMAGINE_ENDPOINT = "/mj/submit/imagine"
ACTION_ENDPOINT = "/mj/submit/action"
DESCRIBE_ENDPOINT = "/mj/submit/describe"
BLEND_ENDPOINT = "/mj/submit/blend"

INPAINT_BOT_TYPE = "mj_fast_inpaint"

STYLE_PARAMS = {
    "wireframe": "--style raw",
    "high_fidelity": "--stylize 100",
    "sketch": "--style raw",
}


def build_prompt(prompt: str, style_type: str, model_version: str) -> str:
    """Appends the Midjourney parameters for the style and model version to the user's prompt"""
    params = ["--ar 16:9"]
    if "niji" in model_version:
        params.append(f"--{model_version}")
    else:
        params.append(f"--v {model_version}")
    if style_type in STYLE_PARAMS:
        params.append(STYLE_PARAMS[style_type])
    return f"{prompt} {' '.join(params)}"


def strip_data_url(data_url: str) -> str:
    if data_url.startswith("data:"):
        _, _, data = data_url.partition(",")
        return data or data_url
    return data_url


class JobKindAdapter:
    kind: JobKind
    endpoint: str
    model_label: str

    def build_request(self, params: Any) -> SubmitRequest:
        raise NotImplementedError

    def has_output(self, status_response: StatusResponse) -> bool:
        return bool(status_response.image_urls)

    def extract(
        self,
        status_response: StatusResponse,
        handle: JobHandle,
        params: Any,
        elapsed_ms: int,
        model_label: Optional[str] = None,
    ) -> JobResult:
        return JobResult(
            primary_output_uri=status_response.image_urls[0],
            output_uris=list(status_response.image_urls),
            metadata=JobMetadata(
                model=model_label or self.model_label,
                job_id=handle.id,
                elapsed_ms=elapsed_ms,
                progress=status_response.progress,
            ),
        )


class GenerateAdapter(JobKindAdapter):
    kind = JobKind.generate
    endpoint = IMAGINE_ENDPOINT
    model_label = "midjourney"

    def __init__(self, model_version: str = "7"):
        self.model_version = model_version

    def build_request(self, params: GenerateInput) -> SubmitRequest:
        return SubmitRequest(
            endpoint=self.endpoint,
            payload={
                "botType": "MID_JOURNEY",
                "prompt": build_prompt(params.prompt, params.style_type, self.model_version),
                "base64Array": [],
                "notifyHook": "",
                "state": "",
            },
        )


class VariationAdapter(JobKindAdapter):
    kind = JobKind.variation
    endpoint = ACTION_ENDPOINT
    model_label = "midjourney-variation"

    def build_request(self, params: VariationInput) -> SubmitRequest:
        payload: Dict[str, Any] = {
            "taskId": params.task_id,
            "action": "VARIATION",
            "index": params.index,
        }
        if params.custom_prompt:
            payload["customId"] = params.custom_prompt
        return SubmitRequest(endpoint=self.endpoint, payload=payload)


class UpscaleAdapter(JobKindAdapter):
    kind = JobKind.upscale
    endpoint = ACTION_ENDPOINT
    model_label = "midjourney-upscale"

    def build_request(self, params: UpscaleInput) -> SubmitRequest:
        return SubmitRequest(
            endpoint=self.endpoint,
            payload={"taskId": params.task_id, "action": "UPSCALE", "index": params.index},
        )


class DescribeAdapter(JobKindAdapter):
    """Describe jobs produce prompt text rather than new images"""

    kind = JobKind.describe
    endpoint = DESCRIBE_ENDPOINT
    model_label = "midjourney-describe"

    def build_request(self, params: DescribeInput) -> SubmitRequest:
        if params.image_url.startswith("data:"):
            payload = {"base64": params.image_url}
        else:
            payload = {"imageUrl": params.image_url}
        return SubmitRequest(endpoint=self.endpoint, payload=payload)

    def has_output(self, status_response: StatusResponse) -> bool:
        return bool(status_response.prompt) or bool(status_response.image_urls)

    @staticmethod
    def split_prompts(prompt: Optional[str]) -> List[str]:
        if not prompt:
            return []
        return [line.strip() for line in prompt.splitlines() if line.strip()]

    def extract(self, status_response, handle, params, elapsed_ms, model_label=None) -> JobResult:
        # falls back to the described image itself, data URIs included
        primary = status_response.image_urls[0] if status_response.image_urls else params.image_url
        return JobResult(
            primary_output_uri=primary,
            mime_type="text/plain",
            output_uris=list(status_response.image_urls),
            prompts=self.split_prompts(status_response.prompt),
            metadata=JobMetadata(
                model=model_label or self.model_label,
                job_id=handle.id,
                elapsed_ms=elapsed_ms,
                progress=status_response.progress,
            ),
        )


class BlendAdapter(JobKindAdapter):
    kind = JobKind.blend
    endpoint = BLEND_ENDPOINT
    model_label = "midjourney-blend"

    def build_request(self, params: BlendInput) -> SubmitRequest:
        return SubmitRequest(
            endpoint=self.endpoint,
            payload={
                "base64Array": list(params.images),
                "dimensions": params.dimensions,
                "notifyHook": "",
                "state": "",
            },
        )


def _inpaint_payload(params: VaryRegionInput, **fields: Any) -> Dict[str, Any]:
    payload = {
        "botType": INPAINT_BOT_TYPE,
        "prompt": params.prompt,
        "base64Array": [strip_data_url(params.mask_data_url)],
    }
    payload.update({key: value for key, value in fields.items() if value is not None})
    payload.update({"notifyHook": "", "state": ""})
    return payload


def _mask_with_image_url(params: VaryRegionInput) -> SubmitRequest:
    return SubmitRequest(
        endpoint=IMAGINE_ENDPOINT,
        payload=_inpaint_payload(params, imageUrl=params.image_url),
    )


def _mask_with_custom_id(params: VaryRegionInput) -> SubmitRequest:
    return SubmitRequest(
        endpoint=IMAGINE_ENDPOINT,
        payload=_inpaint_payload(params, customId=params.task_id),
    )


def _mask_only(params: VaryRegionInput) -> SubmitRequest:
    return SubmitRequest(
        endpoint=IMAGINE_ENDPOINT,
        payload=_inpaint_payload(params, prompt=f"{params.task_id} {params.prompt}"),
    )


# Ordered by how often the current server build has accepted each shape.
REGION_EDIT_STRATEGIES = (
    Strategy(name="imagine+mask+imageUrl", build=_mask_with_image_url),
    Strategy(name="imagine+mask+customId", build=_mask_with_custom_id),
    Strategy(name="imagine+mask-only", build=_mask_only),
)


class RegionEditAdapter(JobKindAdapter):
    kind = JobKind.region_edit
    endpoint = IMAGINE_ENDPOINT
    model_label = "midjourney-inpaint"

    def __init__(self, strategies=REGION_EDIT_STRATEGIES):
        self.strategies = tuple(strategies)

    def build_request(self, params: VaryRegionInput) -> SubmitRequest:
        return self.strategies[0].build(params)


def default_adapters(model_version: str = "7") -> Dict[JobKind, JobKindAdapter]:
    adapters = [
        GenerateAdapter(model_version),
        VariationAdapter(),
        UpscaleAdapter(),
        DescribeAdapter(),
        BlendAdapter(),
        RegionEditAdapter(),
    ]
    return {adapter.kind: adapter for adapter in adapters}
