"""Perplexity Sonar integration for live AI-perception queries."""

import logging
import re
from typing import Any

import httpx

from app.config import settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError, RateLimitExceededError

logger = logging.getLogger(__name__)

_BRACKET_SOURCE = re.compile(r"\[([^\]]+)\]")


class PerplexityClient:
    """Client for the Perplexity chat completions endpoint (Sonar models)."""

    BASE_URL = "https://api.perplexity.ai/chat/completions"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = 45.0,
    ) -> None:
        self.api_key = api_key or settings.perplexity_api_key
        self.model = model or settings.perplexity_model
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

        if not self.api_key:
            raise APIKeyMissingError("Perplexity")

    async def __aenter__(self) -> "PerplexityClient":
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

    async def ask(self, prompt: str, max_tokens: int = 300) -> dict[str, Any]:
        """Ask a web-grounded question.

        Returns:
            Dict with text and sources (cited URLs)
        """
        logger.info("Perplexity request", extra={"model": self.model, "prompt_length": len(prompt)})
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": 0.2,
        }

        try:
            response = await self.client.post(self.BASE_URL, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Perplexity HTTP error", extra={"error": str(e)})
            raise ExternalAPIError("Perplexity", str(e)) from e

        if response.status_code == 429:
            logger.warning("Perplexity rate limit hit")
            raise RateLimitExceededError("Perplexity")
        if response.status_code >= 400:
            raise ExternalAPIError(
                "Perplexity",
                f"API error: {response.status_code} - {response.text[:200]}",
            )

        body = response.json()
        choices = body.get("choices") or []
        text = ""
        if choices:
            text = str((choices[0].get("message") or {}).get("content") or "")

        return {"text": text, "sources": extract_sources(body, text)}


def extract_sources(body: dict[str, Any], text: str) -> list[str]:
    """Collect cited sources, preferring structured citations over text markers."""
    sources: list[str] = []

    def _add(value: Any) -> None:
        cleaned = str(value or "").strip()
        if cleaned and cleaned not in sources:
            sources.append(cleaned)

    for citation in body.get("citations") or []:
        _add(citation)
    for result in body.get("search_results") or []:
        if isinstance(result, dict):
            _add(result.get("url"))

    if not sources:
        # Numeric markers like [1] only make sense next to a citations list.
        for marker in _BRACKET_SOURCE.findall(text):
            if not marker.strip().isdigit():
                _add(marker)

    return sources
