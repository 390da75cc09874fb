import aiohttp
import pytest
from conftest import FakeTransport, accepted, rejected, respond
from image_job_client.backoff import BackoffExecutor
from image_job_client.exceptions import DomainRejection
from image_job_client.models import SUBMIT_BACKOFF, SubmitRequest
from image_job_client.submission import SubmissionClient

REQUEST = SubmitRequest(endpoint="/mj/submit/imagine", payload={"prompt": "a login page"})


def make_client(transport, fake_sleep):
    return SubmissionClient(transport, executor=BackoffExecutor(SUBMIT_BACKOFF, sleep=fake_sleep))


@pytest.mark.asyncio
async def test_submit_returns_handle(fake_sleep):
    transport = FakeTransport(post_script=[accepted("1730000000001")])

    handle = await make_client(transport, fake_sleep).submit(REQUEST)

    assert handle.id == "1730000000001"
    assert handle.submitted_at is not None
    assert transport.posts == [("/mj/submit/imagine", {"prompt": "a login page"})]


@pytest.mark.asyncio
async def test_rejection_sentinel_raises_with_server_description(fake_sleep):
    transport = FakeTransport(post_script=[rejected("Banned prompt", code=24)])

    with pytest.raises(DomainRejection) as excinfo:
        await make_client(transport, fake_sleep).submit(REQUEST)

    assert excinfo.value.description == "Banned prompt"
    assert len(transport.posts) == 1
    assert fake_sleep.calls == []


@pytest.mark.asyncio
async def test_missing_result_is_rejected(fake_sleep):
    transport = FakeTransport(post_script=[respond({"code": 1, "description": "Submit success"})])

    with pytest.raises(DomainRejection):
        await make_client(transport, fake_sleep).submit(REQUEST)


@pytest.mark.asyncio
async def test_http_error_is_not_retried(fake_sleep):
    transport = FakeTransport(post_script=[respond({"message": "quota exceeded"}, status_code=500)])

    with pytest.raises(DomainRejection) as excinfo:
        await make_client(transport, fake_sleep).submit(REQUEST)

    assert excinfo.value.status_code == 500
    assert "quota exceeded" in excinfo.value.description
    assert len(transport.posts) == 1


@pytest.mark.asyncio
async def test_connection_errors_are_retried(fake_sleep):
    transport = FakeTransport(
        post_script=[
            aiohttp.ClientConnectionError("connection refused"),
            aiohttp.ServerTimeoutError("timeout"),
            accepted("task-9"),
        ]
    )

    handle = await make_client(transport, fake_sleep).submit(REQUEST)

    assert handle.id == "task-9"
    assert len(transport.posts) == 3
    assert fake_sleep.calls == [3.0, 4.5]


@pytest.mark.asyncio
async def test_connection_errors_exhaust_network_bound(fake_sleep):
    transport = FakeTransport(post_script=[aiohttp.ClientConnectionError()] * 5)

    with pytest.raises(aiohttp.ClientConnectionError):
        await make_client(transport, fake_sleep).submit(REQUEST)

    assert len(transport.posts) == 3
