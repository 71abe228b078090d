"""HTTP transport used by the http_request action."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from .config import HTTPClientConfig
from .logger import get_logger

logger = get_logger("http")


@dataclass
class HttpResponse:
    """Status code plus the leading part of the response body."""

    status_code: int
    body_snippet: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@runtime_checkable
class HttpTransport(Protocol):
    """Performs a request. Raises on transport failure, never on status codes."""

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> HttpResponse: ...


class HttpxTransport:
    """httpx based transport with the configured retry policy."""

    def __init__(
        self,
        config: HTTPClientConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or HTTPClientConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> HttpResponse:
        retry = self.config.retry
        client = self._get_client()

        attempt = 0
        delay = retry.backoff_seconds
        while True:
            attempt += 1
            try:
                logger.debug("HTTP request %s %s (attempt %s)", method, url, attempt)
                response = await client.request(
                    method,
                    url,
                    headers=headers or {},
                    content=body.encode("utf-8") if body is not None else None,
                )
                snippet = response.text[: self.config.response_snippet_length]
                return HttpResponse(status_code=response.status_code, body_snippet=snippet)
            except httpx.HTTPError as exc:
                if attempt >= retry.max_attempts:
                    raise
                sleep_for = min(delay, retry.max_backoff_seconds)
                logger.warning(
                    "HTTP request retry (%s/%s) after error: %s",
                    attempt,
                    retry.max_attempts,
                    exc,
                )
                await asyncio.sleep(sleep_for)
                delay = max(delay * retry.backoff_multiplier, retry.backoff_seconds)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = ["HttpResponse", "HttpTransport", "HttpxTransport"]
