"""Firecrawl API integration for main-content website scraping."""

import logging
from typing import Any

import httpx

from app.config import settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError, RateLimitExceededError

logger = logging.getLogger(__name__)


class FirecrawlClient:
    """Client for the Firecrawl scrape endpoint.

    Returns the page's main content as markdown, plus raw HTML so markup
    signals (JSON-LD, tables, FAQ blocks) can be detected locally.
    """

    BASE_URL = "https://api.firecrawl.dev/v1"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key or settings.firecrawl_api_key
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

        if not self.api_key:
            raise APIKeyMissingError("Firecrawl")

    async def __aenter__(self) -> "FirecrawlClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
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

    async def scrape(self, url: str, wait_for_ms: int = 2000) -> dict[str, Any]:
        """Scrape a single URL.

        Returns:
            Dict with url, markdown, html, title, status_code
        """
        logger.info("Firecrawl scrape request", extra={"url": url})
        payload = {
            "url": url,
            "formats": ["markdown", "rawHtml"],
            "onlyMainContent": True,
            "waitFor": wait_for_ms,
            "removeBase64Images": True,
        }

        try:
            response = await self.client.post(f"{self.BASE_URL}/scrape", json=payload)
        except httpx.HTTPError as e:
            logger.warning("Firecrawl HTTP error", extra={"url": url, "error": str(e)})
            raise ExternalAPIError("Firecrawl", str(e)) from e

        if response.status_code == 429:
            logger.warning("Firecrawl rate limit hit", extra={"url": url})
            raise RateLimitExceededError("Firecrawl")
        if response.status_code >= 400:
            logger.warning(
                "Firecrawl API error",
                extra={"url": url, "status": response.status_code},
            )
            raise ExternalAPIError(
                "Firecrawl",
                f"API error: {response.status_code} - {response.text[:200]}",
            )

        body = response.json()
        if not body.get("success", False):
            raise ExternalAPIError("Firecrawl", str(body.get("error") or "Scrape failed"))

        data = body.get("data") or {}
        metadata = data.get("metadata") or {}
        return {
            "url": url,
            "markdown": data.get("markdown") or data.get("content") or "",
            "html": data.get("rawHtml") or data.get("html") or "",
            "title": metadata.get("title"),
            "status_code": metadata.get("statusCode"),
        }
