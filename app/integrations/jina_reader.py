"""Jina Reader integration, used as a scrape fallback."""

import logging
from typing import Any

import httpx

from app.config import settings
from app.core.exceptions import ExternalAPIError, RateLimitExceededError

logger = logging.getLogger(__name__)


class JinaReaderClient:
    """Client for https://r.jina.ai, which renders any URL as markdown.

    Works without an API key at a lower rate limit.
    """

    BASE_URL = "https://r.jina.ai"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 45.0,
    ) -> None:
        self.api_key = api_key or settings.jina_api_key
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "JinaReaderClient":
        headers = {"Accept": "text/plain", "X-Return-Format": "markdown"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=headers,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    @staticmethod
    def reader_url(url: str) -> str:
        """Build the reader URL for a target page."""
        if not url.startswith(("http://", "https://")):
            url = f"https://{url}"
        return f"{JinaReaderClient.BASE_URL}/{url}"

    async def read(self, url: str) -> str:
        """Return the page content as markdown."""
        logger.info("Jina Reader request", extra={"url": url})
        try:
            response = await self.client.get(self.reader_url(url))
        except httpx.HTTPError as e:
            logger.warning("Jina Reader HTTP error", extra={"url": url, "error": str(e)})
            raise ExternalAPIError("Jina Reader", str(e)) from e

        if response.status_code == 429:
            raise RateLimitExceededError("Jina Reader")
        if response.status_code >= 400:
            raise ExternalAPIError(
                "Jina Reader",
                f"API error: {response.status_code}",
            )
        return response.text
