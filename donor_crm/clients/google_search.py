"""
Google Custom Search Client - web search for person research

Docs: https://developers.google.com/custom-search/v1/reference/rest/v1/cse/list
"""

import logging
import httpx
from typing import Optional, Dict, Any, List

from ..config import get_crm_settings, GOOGLE_SEARCH_URL

logger = logging.getLogger(__name__)


class GoogleSearchError(Exception):
    """Google Custom Search request failed."""


class GoogleSearchClient:
    """
    Thin client for the Custom Search JSON API.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        engine_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: API key (defaults to GOOGLE_SEARCH_API_KEY)
            engine_id: Search engine ID (defaults to GOOGLE_SEARCH_ENGINE_ID)
            transport: Optional httpx transport (tests use MockTransport)
        """
        settings = get_crm_settings()
        self.api_key = api_key or settings.google_search_api_key
        self.engine_id = engine_id or settings.google_search_engine_id
        self.num_results = settings.google_search_results
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=15.0, transport=self._transport)
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def search(self, query: str, num: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Run one search.

        Returns:
            List of {title, link, snippet}; empty when there are no items

        Raises:
            GoogleSearchError: on a non-200 response or missing credentials
        """
        if not self.api_key or not self.engine_id:
            raise GoogleSearchError("Google Search API credentials are not configured")

        client = await self._get_client()
        response = await client.get(
            GOOGLE_SEARCH_URL,
            params={
                "key": self.api_key,
                "cx": self.engine_id,
                "q": query,
                "num": num or self.num_results,
            },
        )

        if response.status_code != 200:
            logger.error(f"Google search failed ({response.status_code}): {response.text[:200]}")
            raise GoogleSearchError(f"Google Search API error: {response.status_code} {response.reason_phrase}")

        items = response.json().get("items") or []
        return [
            {
                "title": item.get("title", ""),
                "link": item.get("link", ""),
                "snippet": item.get("snippet", ""),
            }
            for item in items
        ]
