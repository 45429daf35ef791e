"""
Web search - Google results, crawled pages and a per-query summary
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from langchain_core.language_models import BaseChatModel

from ...clients.google_search import GoogleSearchClient
from ...config import get_crm_settings
from ...llm import TokenUsage, invoke_text
from ...prompts import SEARCH_SUMMARY_PROMPT
from .person_identification import filter_relevant_results
from .types import LLMFactory, default_llm_factory
from .web_crawler import WebCrawler

logger = logging.getLogger(__name__)

NO_RESULTS_SUMMARY = "No search results were found for this query."


def basic_summary(query: str, results: List[Dict[str, Any]]) -> str:
    """Summary used when the model is unavailable: the top three results."""
    lines = [f'Search results for "{query}":', ""]
    for i, result in enumerate(results[:3], start=1):
        line = f"{i}. {result.get('title', '')}: {result.get('snippet', '')}"
        if result.get("crawled_content"):
            line += f"\n   Content excerpt: {result['crawled_content'][:200]}..."
        lines.append(line)
    return "\n".join(lines)


def _format_results(results: List[Dict[str, Any]]) -> str:
    blocks = []
    for i, result in enumerate(results, start=1):
        block = f"[{i}] {result.get('title', '')}\nURL: {result.get('link', '')}\nSnippet: {result.get('snippet', '')}"
        if result.get("crawled_content"):
            block += f"\nContent: {result['crawled_content'][:3000]}"
        blocks.append(block)
    return "\n\n".join(blocks)


class WebSearchService:
    """
    Runs searches for the research loop.

    Each search returns {query, summary, sources, timestamp, token_usage}.
    """

    def __init__(
        self,
        search_client: Optional[GoogleSearchClient] = None,
        crawler: Optional[WebCrawler] = None,
        llm_factory: LLMFactory = default_llm_factory,
        summary_llm: Optional[BaseChatModel] = None,
    ):
        self.search_client = search_client or GoogleSearchClient()
        self.crawler = crawler or WebCrawler()
        self.llm_factory = llm_factory
        self._summary_llm = summary_llm
        self.max_crawl = get_crm_settings().crawler_max_urls

    def _get_summary_llm(self) -> BaseChatModel:
        if self._summary_llm is None:
            self._summary_llm = self.llm_factory(temperature=0.3)
        return self._summary_llm

    async def _crawl(self, results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        to_crawl = results[:self.max_crawl]
        pages = await self.crawler.crawl_urls([r["link"] for r in to_crawl])
        enriched = []
        for result, page in zip(to_crawl, pages):
            enriched.append({
                **result,
                "crawled_content": page["text"] if page["crawl_success"] else None,
                "crawled_title": page["title"] or None,
                "word_count": page["word_count"],
                "crawl_success": page["crawl_success"],
            })
        enriched.extend({**r, "crawl_success": False} for r in results[self.max_crawl:])
        return enriched

    async def _summarize(self, query: str, research_topic: str, results: List[Dict[str, Any]]):
        if not results:
            return NO_RESULTS_SUMMARY, TokenUsage()
        prompt = SEARCH_SUMMARY_PROMPT.format(
            research_topic=research_topic,
            current_date=datetime.utcnow().strftime("%B %d, %Y"),
            query=query,
            results=_format_results(results),
        )
        try:
            return await invoke_text(self._get_summary_llm(), prompt)
        except Exception as e:
            logger.warning(f"[Person Research] Summarizing '{query}' failed, using basic summary: {e}")
            return basic_summary(query, results), TokenUsage()

    async def search(
        self,
        query: str,
        research_topic: str,
        person_identity: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Search, crawl, verify and summarize one query. Never raises."""
        try:
            results = await self.search_client.search(query)
            results = await self._crawl(results) if results else []
            results, verify_usage = await filter_relevant_results(
                person_identity, results, llm_factory=self.llm_factory
            )
            summary, summary_usage = await self._summarize(query, research_topic, results)

            return {
                "query": query,
                "summary": summary,
                "sources": results,
                "timestamp": datetime.utcnow().isoformat(),
                "token_usage": verify_usage + summary_usage,
            }
        except Exception as e:
            logger.error(f"[Person Research] Search failed for '{query}': {e}")
            return {
                "query": query,
                "summary": f"Search failed: {e}",
                "sources": [],
                "timestamp": datetime.utcnow().isoformat(),
                "token_usage": TokenUsage(),
            }

    async def search_many(
        self,
        queries: List[str],
        research_topic: str,
        person_identity: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Run queries in parallel."""
        return list(await asyncio.gather(
            *(self.search(q, research_topic, person_identity) for q in queries)
        ))
