"""DataForSEO API integration for AI visibility and domain signals.

Covers the AI Optimization endpoints (LLM mentions, ChatGPT scraper and
responses, AI keyword volume) plus the SERP, Labs and Backlinks endpoints
the perception phase needs.
"""

import base64
import logging
from typing import Any

import httpx

from app.config import settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError, RateLimitExceededError

logger = logging.getLogger(__name__)

LLM_MENTION_PLATFORMS = ("google", "chat_gpt", "perplexity")


class DataForSEOClient:
    """Client for DataForSEO API.

    Provides methods for:
    - LLM mentions (search details + aggregated counts per platform)
    - ChatGPT scraper and live ChatGPT responses
    - AI keyword search volume
    - Knowledge graph presence (via SERP)
    - Domain rank overview, backlinks summary, organic competitors
    """

    BASE_URL = "https://api.dataforseo.com/v3"
    DEFAULT_LOCATION_CODE = 2840  # US
    DEFAULT_LOCATION_NAME = "United States"
    DEFAULT_LANGUAGE_CODE = "en"

    def __init__(
        self,
        login: str | None = None,
        password: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.login = login or settings.dataforseo_login
        self.password = password or settings.dataforseo_password
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

        if not self.login or not self.password:
            raise APIKeyMissingError("DataForSEO")

    @property
    def _auth_header(self) -> str:
        """Generate Basic Auth header."""
        credentials = f"{self.login}:{self.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"

    async def __aenter__(self) -> "DataForSEOClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "Authorization": self._auth_header,
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

    async def _make_request(
        self,
        endpoint: str,
        data: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Make a POST request to DataForSEO API and return all task results."""
        logger.info("DataForSEO API request", extra={"endpoint": endpoint})
        url = f"{self.BASE_URL}/{endpoint}"

        try:
            response = await self.client.post(url, json=data)

            if response.status_code == 429:
                logger.warning("DataForSEO rate limit hit", extra={"endpoint": endpoint})
                raise RateLimitExceededError("DataForSEO")

            response.raise_for_status()
            result = response.json()

            if result.get("status_code") != 20000:
                logger.warning(
                    "DataForSEO API error",
                    extra={"endpoint": endpoint, "status": result.get("status_message")},
                )
                raise ExternalAPIError(
                    "DataForSEO",
                    result.get("status_message", "Unknown error"),
                )

            results: list[dict[str, Any]] = []
            for task in result.get("tasks") or []:
                if task.get("status_code") == 20000 and task.get("result"):
                    results.extend(item for item in task["result"] if isinstance(item, dict))
                elif task.get("status_code") != 20000:
                    logger.warning(
                        "DataForSEO task error",
                        extra={
                            "endpoint": endpoint,
                            "task_status": task.get("status_code"),
                            "task_message": task.get("status_message"),
                        },
                    )

            return results

        except httpx.HTTPError as e:
            logger.warning("DataForSEO HTTP error", extra={"endpoint": endpoint, "error": str(e)})
            raise ExternalAPIError("DataForSEO", str(e)) from e

    # ========== AI Optimization ==========

    async def llm_mentions_search(
        self,
        brand_name: str,
        platform: str = "google",
        limit: int = 20,
    ) -> dict[str, Any]:
        """Search AI answers that mention the brand.

        Returns:
            Dict with total_count, items_count and mentions[] (source, context, question)
        """
        data = [
            {
                "target": [{"keyword": brand_name}],
                "platform": platform,
                "location_code": self.DEFAULT_LOCATION_CODE,
                "language_code": self.DEFAULT_LANGUAGE_CODE,
                "limit": limit,
            }
        ]
        results = await self._make_request("ai_optimization/llm_mentions/search/live", data)
        if not results:
            return {"total_count": None, "items_count": 0, "mentions": []}

        result = results[0]
        mentions = []
        for item in result.get("items") or []:
            sources = item.get("sources") or []
            first_source = sources[0] if sources and isinstance(sources[0], dict) else {}
            mentions.append({
                "source": first_source.get("domain") or "AI Response",
                "context": str(item.get("answer") or "")[:500],
                "question": item.get("question"),
            })

        return {
            "total_count": result.get("total_count"),
            "items_count": result.get("items_count") or len(mentions),
            "mentions": mentions,
        }

    async def llm_mentions_aggregated(
        self,
        brand_name: str,
        domain: str | None = None,
        platform: str = "google",
    ) -> dict[str, Any]:
        """Aggregated mention metrics for a brand on one platform.

        Returns:
            Dict with total_count and total_ai_search_volume
        """
        targets: list[dict[str, str]] = [{"keyword": brand_name}]
        if domain:
            targets.append({"domain": domain})
        data = [
            {
                "target": targets,
                "platform": platform,
                "location_code": self.DEFAULT_LOCATION_CODE,
                "language_code": self.DEFAULT_LANGUAGE_CODE,
            }
        ]
        results = await self._make_request(
            "ai_optimization/llm_mentions/aggregated_metrics/live",
            data,
        )
        if not results:
            return {"total_count": None, "total_ai_search_volume": None}

        result = results[0]
        total = result.get("total") if isinstance(result.get("total"), dict) else {}
        return {
            "total_count": result.get("total_count", total.get("mentions")),
            "total_ai_search_volume": result.get(
                "total_ai_search_volume",
                total.get("ai_search_volume"),
            ),
        }

    async def chatgpt_llm_scraper(self, keyword: str) -> dict[str, Any] | None:
        """Return the raw ChatGPT scraper result for a keyword."""
        data = [
            {
                "keyword": keyword,
                "location_name": self.DEFAULT_LOCATION_NAME,
                "language_code": self.DEFAULT_LANGUAGE_CODE,
            }
        ]
        results = await self._make_request(
            "ai_optimization/chat_gpt/llm_scraper/live/advanced",
            data,
        )
        return results[0] if results else None

    async def chatgpt_llm_responses(self, prompt: str, model: str = "gpt-4o") -> str:
        """Ask ChatGPT a fresh question and return its answer text."""
        data = [{"user_prompt": prompt, "model_name": model}]
        results = await self._make_request("ai_optimization/chat_gpt/llm_responses/live", data)
        if not results:
            return ""

        result = results[0]
        for key in ("response", "message"):
            value = result.get(key)
            if isinstance(value, str) and value:
                return value

        texts: list[str] = []
        for item in result.get("items") or []:
            for section in item.get("sections") or []:
                text = section.get("text") if isinstance(section, dict) else None
                if text:
                    texts.append(str(text))
        return "\n".join(texts)

    async def ai_keyword_search_volume(self, keywords: list[str]) -> dict[str, int]:
        """AI search volume per keyword."""
        if not keywords:
            return {}

        data = [
            {
                "keywords": keywords,
                "location_name": self.DEFAULT_LOCATION_NAME,
                "language_code": self.DEFAULT_LANGUAGE_CODE,
            }
        ]
        results = await self._make_request(
            "ai_optimization/ai_keyword_data/keywords_search_volume/live",
            data,
        )

        volumes: dict[str, int] = {}
        for result in results:
            for item in result.get("items") or []:
                keyword = item.get("keyword")
                if keyword:
                    volumes[str(keyword)] = int(item.get("ai_search_volume") or 0)
        return volumes

    # ========== SERP ==========

    async def knowledge_graph_check(self, brand_name: str) -> dict[str, Any]:
        """Check whether a Google knowledge panel exists for the brand.

        Returns:
            Dict with exists and knowledge_graph (panel fields or None)
        """
        data = [
            {
                "keyword": brand_name,
                "location_code": self.DEFAULT_LOCATION_CODE,
                "language_code": self.DEFAULT_LANGUAGE_CODE,
                "device": "desktop",
                "depth": 10,
            }
        ]
        results = await self._make_request("serp/google/organic/live/advanced", data)

        for result in results:
            for item in result.get("items") or []:
                if item.get("type") != "knowledge_graph":
                    continue
                panel = {
                    key: item.get(key)
                    for key in ("title", "sub_title", "description", "url", "card_id")
                    if item.get(key) is not None
                }
                return {"exists": True, "knowledge_graph": panel}

        return {"exists": False, "knowledge_graph": None}

    # ========== Labs / Backlinks ==========

    async def domain_rank_overview(self, domain: str) -> dict[str, Any]:
        """Organic traffic estimate and ranking keyword count for a domain."""
        data = [
            {
                "target": domain,
                "location_code": self.DEFAULT_LOCATION_CODE,
                "language_code": self.DEFAULT_LANGUAGE_CODE,
            }
        ]
        results = await self._make_request(
            "dataforseo_labs/google/domain_rank_overview/live",
            data,
        )
        if not results:
            return {"organic_traffic": None, "organic_keywords": None}

        result = results[0]
        items = result.get("items") or [result]
        organic = ((items[0] or {}).get("metrics") or {}).get("organic") or {}
        return {
            "organic_traffic": organic.get("etv"),
            "organic_keywords": organic.get("count"),
        }

    async def backlinks_summary(self, domain: str) -> dict[str, Any]:
        """Backlink totals and rank for a domain."""
        data = [{"target": domain, "include_subdomains": True}]
        results = await self._make_request("backlinks/summary/live", data)
        if not results:
            return {"backlinks": None, "referring_domains": None, "rank": None}

        result = results[0]
        return {
            "backlinks": result.get("backlinks", result.get("total_backlinks")),
            "referring_domains": result.get("referring_domains"),
            "rank": result.get("rank"),
        }

    async def competitors_domain(self, domain: str, limit: int = 3) -> list[dict[str, Any]]:
        """Top organic competitors of a domain."""
        data = [
            {
                "target": domain,
                "location_code": self.DEFAULT_LOCATION_CODE,
                "language_code": self.DEFAULT_LANGUAGE_CODE,
                "limit": limit + 1,  # the target itself is usually listed first
                "exclude_top_domains": True,
            }
        ]
        results = await self._make_request(
            "dataforseo_labs/google/competitors_domain/live",
            data,
        )

        rows: list[dict[str, Any]] = []
        for result in results:
            if "items" in result:
                rows.extend(item for item in result.get("items") or [] if isinstance(item, dict))
            elif result.get("domain"):
                rows.append(result)

        competitors = []
        for row in rows:
            competitor_domain = str(row.get("domain") or "").strip()
            if not competitor_domain or competitor_domain == domain:
                continue
            organic = (row.get("metrics") or {}).get("organic") or {}
            full_organic = (row.get("full_domain_metrics") or {}).get("organic") or {}
            competitors.append({
                "domain": competitor_domain,
                "organic_traffic": organic.get("etv") or full_organic.get("etv"),
                "organic_keywords": organic.get("count") or full_organic.get("count"),
                "rank_position": row.get("avg_position"),
            })
            if len(competitors) >= limit:
                break
        return competitors
