import random
import uuid
from datetime import datetime

from aiohttp import web
from loguru import logger

SECRET_HEADER = "mj-api-secret"
INPAINT_BOT_TYPE = "mj_fast_inpaint"


class ImageJobServer:
    """In-process stand-in for the image service's submit and fetch endpoints"""

    def __init__(
        self,
        completion_time: float = 10.0,
        error_rate: float = 0.1,
        api_key: str = "test-secret",
        rejected_inpaint_shapes=(),
        banned_word: str = "forbidden",
    ):
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.api_key = api_key
        self.rejected_inpaint_shapes = set(rejected_inpaint_shapes)
        self.banned_word = banned_word
        self.tasks = {}
        self.submissions = []
        self.fetch_count = 0
        self.port = None
        self.runner = None
        self.app = web.Application()
        self.app.router.add_post("/mj/submit/imagine", self.handle_imagine)
        self.app.router.add_post("/mj/submit/action", self.handle_action)
        self.app.router.add_post("/mj/submit/describe", self.handle_describe)
        self.app.router.add_post("/mj/submit/blend", self.handle_blend)
        self.app.router.add_get("/mj/task/{task_id}/fetch", self.handle_fetch)
        self.logger = logger

    def _authorized(self, request) -> bool:
        return request.headers.get(SECRET_HEADER) == self.api_key

    def _unauthorized(self):
        return web.json_response({"error": "invalid mj-api-secret"}, status=401)

    def _reject(self, code: int, description: str):
        self.logger.info(f"Rejecting submission: {description}")
        return web.json_response({"code": code, "description": description, "result": None})

    def _create_task(self, action: str, body: dict):
        task_id = uuid.uuid4().hex[:16]
        will_fail = random.random() < self.error_rate
        self.tasks[task_id] = {
            "action": action,
            "prompt": body.get("prompt", ""),
            "created": datetime.now(),
            "fail": will_fail,
        }
        self.submissions.append({"action": action, "body": body, "task_id": task_id})
        self.logger.info(f"Accepted {action} task {task_id}")
        return web.json_response({"code": 1, "description": "Submit success", "result": task_id})

    @staticmethod
    def inpaint_shape(body: dict) -> str:
        if body.get("imageUrl"):
            return "imageUrl"
        if body.get("customId"):
            return "customId"
        return "mask-only"

    async def handle_imagine(self, request):
        if not self._authorized(request):
            return self._unauthorized()
        body = await request.json()

        if self.banned_word and self.banned_word in body.get("prompt", ""):
            return self._reject(24, "Banned prompt")

        if body.get("botType") == INPAINT_BOT_TYPE:
            shape = self.inpaint_shape(body)
            if shape in self.rejected_inpaint_shapes:
                self.submissions.append({"action": "INPAINT", "body": body, "task_id": None})
                return self._reject(4, f"Invalid parameter for {shape} inpaint")
            return self._create_task("INPAINT", body)

        return self._create_task("IMAGINE", body)

    async def handle_action(self, request):
        if not self._authorized(request):
            return self._unauthorized()
        body = await request.json()
        if body.get("taskId") not in self.tasks:
            return self._reject(3, "Related task not found")
        return self._create_task(body.get("action", "ACTION"), body)

    async def handle_describe(self, request):
        if not self._authorized(request):
            return self._unauthorized()
        body = await request.json()
        if not body.get("base64") and not body.get("imageUrl"):
            return self._reject(4, "base64 or imageUrl is required")
        return self._create_task("DESCRIBE", body)

    async def handle_blend(self, request):
        if not self._authorized(request):
            return self._unauthorized()
        body = await request.json()
        if not 2 <= len(body.get("base64Array", [])) <= 5:
            return self._reject(4, "base64Array size must be between 2 and 5")
        return self._create_task("BLEND", body)

    async def handle_fetch(self, request):
        if not self._authorized(request):
            return self._unauthorized()
        self.fetch_count += 1

        task_id = request.match_info["task_id"]
        task = self.tasks.get(task_id)
        if task is None:
            return web.json_response({"error": "task not found"}, status=404)

        elapsed = (datetime.now() - task["created"]).total_seconds()
        data = {"id": task_id, "action": task["action"], "prompt": task["prompt"]}

        if task["fail"]:
            self.logger.info(f"Returning failure status for {task_id}")
            data.update({"status": "FAILURE", "failReason": "Job queue is full", "progress": "0%"})
            return web.json_response(data)

        if elapsed >= self.completion_time:
            self.logger.info(f"Returning success status for {task_id}")
            image_url = f"https://cdn.example.com/{task_id}.png"
            data.update(
                {
                    "status": "SUCCESS",
                    "progress": "100%",
                    "imageUrl": image_url,
                    "imageUrls": [{"url": image_url}],
                }
            )
            if task["action"] == "DESCRIBE":
                data["prompt"] = "a clean dashboard layout --ar 16:9\na minimal login screen --ar 16:9"
            return web.json_response(data)

        status = "SUBMITTED" if elapsed < self.completion_time / 4 else "PROCESSING"
        progress = f"{int(100 * elapsed / self.completion_time)}%" if self.completion_time else "0%"
        self.logger.info(f"Returning {status} status for {task_id} (elapsed: {elapsed:.1f}s)")
        data.update({"status": status, "progress": progress})
        return web.json_response(data)

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.port = port
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
