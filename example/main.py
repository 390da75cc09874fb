import asyncio

from image_job_server import ImageJobServer
from image_job_client.image_job_client import ImageJobClient
from image_job_client.models import (
    GenerateInput,
    PollingConfig,
    ServiceConfig,
    UpscaleInput,
    VaryRegionInput,
)


async def status_changed(status_response):
    print(f"Task {status_response.job_id} status changed to: {status_response.status.value}")
    print(f"Progress: {status_response.progress or 'N/A'}")


async def main():
    PORT = 8000
    server = ImageJobServer(
        completion_time=6.0, error_rate=0.1, rejected_inpaint_shapes={"imageUrl"}
    )
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    config = ServiceConfig(
        api_key=server.api_key,
        base_url=f"http://localhost:{PORT}",
        polling=PollingConfig(max_attempts=20, interval_ms=1000),
    )
    client = ImageJobClient(config, on_status_change=status_changed)

    generated = await client.generate(
        GenerateInput(prompt="Login screen for a banking app", style_type="high_fidelity")
    )
    print(f"Generated: {generated.to_contract()}")

    if generated.metadata.model == "placeholder":
        print("Generation failed, got a placeholder image")
        return

    try:
        upscaled = await client.upscale(UpscaleInput(task_id=generated.metadata.job_id, index=2))
        print(f"Upscaled: {upscaled.primary_output_uri}")

        edited = await client.vary_region(
            VaryRegionInput(
                task_id=generated.metadata.job_id,
                image_url=generated.primary_output_uri,
                mask_data_url="data:image/png;base64,iVBORw0KGgo=",
                prompt="replace the logo with a shield",
            )
        )
        print(f"Region edit succeeded with strategy {edited.metadata.strategy}")
        print(f"Total time: {edited.metadata.elapsed_ms}ms")
    except Exception as e:
        print(f"Error occurred: {e}")

    await asyncio.sleep(1)


if __name__ == "__main__":
    asyncio.run(main())
