import time
from typing import Any

import httpx
from loguru import logger

from berabundle.core.constants.base import DEFAULT_HTTP_TIMEOUT


class ServiceClient:
    """Shared httpx plumbing: base URL, default headers, timed + logged requests."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.base_url = str(base_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(DEFAULT_HTTP_TIMEOUT)
        )
        self.headers = {"Content-Type": "application/json", **(headers or {})}

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue a request and log its timing; does not raise on HTTP errors."""
        url = self._url(path)
        logger.debug(f"Making {method} request to {url}")
        start_time = time.time()

        merged_headers = dict(self.headers)
        if headers:
            merged_headers.update(headers)
        resp = await self.client.request(method, url, headers=merged_headers, **kwargs)

        elapsed = time.time() - start_time
        if resp.status_code >= 400:
            logger.warning(
                f"HTTP {resp.status_code} response for {method} {url} after {elapsed:.2f}s"
            )
        else:
            logger.debug(
                f"HTTP {resp.status_code} response for {method} {url} after {elapsed:.2f}s"
            )
        return resp

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        resp = await self._send(method, path, **kwargs)
        resp.raise_for_status()
        return resp

    async def _get_json(self, path: str, **kwargs: Any) -> Any:
        resp = await self._request("GET", path, **kwargs)
        return resp.json()

    async def close(self) -> None:
        await self.client.aclose()
