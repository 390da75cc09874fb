import json
from typing import List

import pytest
from image_job_client.transport import TransportResponse


class FakeSleep:
    """Records requested delays instead of suspending"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class FakeTransport:
    """Replays scripted responses; an Exception in the script is raised instead"""

    def __init__(self, post_script=None, get_script=None):
        self.post_script = list(post_script or [])
        self.get_script = list(get_script or [])
        self.posts = []
        self.gets = []

    @staticmethod
    def _next(script, default):
        item = script.pop(0) if script else default
        if isinstance(item, Exception):
            raise item
        return item

    async def post_json(self, path, body, timeout):
        self.posts.append((path, body))
        return self._next(self.post_script, accepted("task-1"))

    async def get_json(self, path, timeout):
        self.gets.append(path)
        return self._next(self.get_script, status("PROCESSING"))


def respond(body, status_code: int = 200) -> TransportResponse:
    return TransportResponse(status=status_code, text=json.dumps(body))


def accepted(task_id: str) -> TransportResponse:
    return respond({"code": 1, "description": "Submit success", "result": task_id})


def rejected(description: str, code: int = 4) -> TransportResponse:
    return respond({"code": code, "description": description, "result": None})


def status(value: str, task_id: str = "task-1", **fields) -> TransportResponse:
    return respond({"id": task_id, "status": value, **fields})


def success(task_id: str = "task-1", url: str = "https://cdn.example.com/out.png", **fields) -> TransportResponse:
    return status("SUCCESS", task_id, progress="100%", imageUrls=[{"url": url}], **fields)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()
