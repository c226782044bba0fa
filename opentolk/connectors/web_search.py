from __future__ import annotations

from typing import Any

import httpx
import structlog

from opentolk.config import settings

log = structlog.get_logger()


class WebSearchClient:
    """Thin wrapper around the DuckDuckGo instant answer API."""

    def __init__(self, url: str | None = None, client: httpx.AsyncClient | None = None):
        self._url = url or settings.web_search_url
        self._client = client

    async def search(self, query: str, count: int = 3) -> list[str]:
        """Search the web and return short text results.

        Args:
            query: Search query string.
            count: Number of related topics to include after the abstract.

        Returns:
            List of result snippets, abstract first.
        """
        params = {"q": query, "format": "json", "no_html": 1}

        if self._client is None:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(self._url, params=params)
        else:
            resp = await self._client.get(self._url, params=params, timeout=10)
        resp.raise_for_status()
        data: dict[str, Any] = resp.json()

        results: list[str] = []
        abstract = data.get("Abstract")
        if abstract:
            results.append(abstract)
        for topic in (data.get("RelatedTopics") or [])[:count]:
            if isinstance(topic, dict) and topic.get("Text"):
                results.append(topic["Text"])

        log.info("web_search.search", query=query, count=len(results))
        return results
