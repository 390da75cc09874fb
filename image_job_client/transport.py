import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
from loguru import logger
from pydantic import BaseModel

from image_job_client.exceptions import DomainRejection

SECRET_HEADER = "mj-api-secret"


class TransportResponse(BaseModel):
    status: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json_body(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.text)
        except ValueError:
            raise DomainRejection(f"Invalid JSON response: {self.text[:200]}", self.status)
        if not isinstance(data, dict):
            raise DomainRejection(f"Unexpected response body: {self.text[:200]}", self.status)
        return data


class HttpTransport:
    """Sends authenticated JSON requests to the image service.

    Connection failures and timeouts surface as the aiohttp/asyncio errors
    themselves so the backoff executor can classify them.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.logger = logger
        self._session = session

    @asynccontextmanager
    async def _client_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None and not self._session.closed:
            yield self._session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    def _headers(self, with_body: bool) -> Dict[str, str]:
        headers = {SECRET_HEADER: self.api_key}
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def post_json(self, path: str, body: Dict[str, Any], timeout: float) -> TransportResponse:
        url = f"{self.base_url}{path}"
        self.logger.debug(f"POST {url}")

        async with self._client_session() as session:
            async with session.post(
                url,
                data=json.dumps(body),
                headers=self._headers(with_body=True),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                text = await response.text()
                self.logger.debug(f"Response {response.status} from {url}: {text[:500]}")
                return TransportResponse(status=response.status, text=text)

    async def get_json(self, path: str, timeout: float) -> TransportResponse:
        url = f"{self.base_url}{path}"

        async with self._client_session() as session:
            async with session.get(
                url,
                headers=self._headers(with_body=False),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                text = await response.text()
                return TransportResponse(status=response.status, text=text)
