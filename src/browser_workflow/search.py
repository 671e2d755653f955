"""External web search used to enrich summaries."""

import logging
from typing import List, Optional, Protocol

import httpx

from browser_workflow.models import SearchResult


logger = logging.getLogger(__name__)

YOU_SEARCH_URL = "https://api.you.com/search"


class SearchProvider(Protocol):
    async def search(self, query: str, num_results: int = 3) -> List[SearchResult]: ...


class YouSearchClient:
    """You.com search API client."""

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        url: str = YOU_SEARCH_URL,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self._client = client

    async def search(self, query: str, num_results: int = 3) -> List[SearchResult]:
        """
        Run a web search.

        Raises:
            httpx.HTTPStatusError: If the API answers with an error status
        """
        num_results = max(1, min(int(num_results), 10))
        logger.info("Web search: %r (%d results)", query, num_results)
        payload = {"query": query, "num_web_results": num_results}
        headers = {"Content-Type": "application/json", "X-API-Key": self.api_key}

        if self._client is not None:
            response = await self._client.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        response.raise_for_status()

        data = response.json()
        results = []
        for item in (data.get("results") or data.get("hits") or [])[:num_results]:
            snippets = item.get("snippets")
            snippet = item.get("snippet") or item.get("description") or (snippets[0] if snippets else "")
            results.append(
                SearchResult(
                    title=item.get("title") or "",
                    url=item.get("url") or "",
                    snippet=snippet or "",
                )
            )
        return results
