"""Shared async HTTP client with retry."""

from __future__ import annotations

import httpx

from whale_consensus.common.retry import RetryPolicy
from whale_consensus.config import get_settings

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


def is_retryable(exc: BaseException) -> bool:
    """Retry on transient HTTP errors and timeouts."""
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return False


class HttpClient:
    """Async HTTP client with retry logic."""

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        settings = get_settings()
        self._retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers or {},
            timeout=httpx.Timeout(timeout if timeout is not None else settings.http_timeout),
        )

    async def _get_once(self, url: str, params: dict | None) -> httpx.Response:
        resp = await self._client.get(url, params=params)
        resp.raise_for_status()
        return resp

    async def get(self, url: str, params: dict | None = None) -> httpx.Response:
        return await self._retry_policy.on_exception(is_retryable)(self._get_once, url, params)

    async def post_once(self, url: str, json: dict | None = None) -> httpx.Response:
        """Single POST attempt; the caller owns any retry schedule."""
        resp = await self._client.post(url, json=json)
        resp.raise_for_status()
        return resp

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
