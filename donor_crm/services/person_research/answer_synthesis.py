"""
Answer synthesis - the final research write-up and its citations
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from langchain_core.language_models import BaseChatModel

from ...llm import invoke_text
from ...prompts import SYNTHESIS_PROMPT
from .types import StageResult, PersonResearchError, LLMFactory, default_llm_factory, format_summaries

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 300


def build_citations(summaries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """One citation per source URL, first occurrence wins."""
    citations = []
    seen = set()
    for summary in summaries:
        for source in summary.get("sources", []):
            url = source.get("link")
            if not url or url in seen:
                continue
            seen.add(url)

            snippet = source.get("snippet", "")
            crawled = source.get("crawled_content") or ""
            if len(crawled) > len(snippet):
                snippet = crawled[:SNIPPET_LENGTH] + ("..." if len(crawled) > SNIPPET_LENGTH else "")

            citations.append({
                "url": url,
                "title": source.get("crawled_title") or source.get("title", ""),
                "snippet": snippet,
                "relevance": f"Related to query: {summary['query']}",
                "word_count": source.get("word_count", 0),
            })
    return citations


async def synthesize_answer(
    research_topic: str,
    summaries: List[Dict[str, Any]],
    llm: Optional[BaseChatModel] = None,
    llm_factory: LLMFactory = default_llm_factory,
) -> StageResult:
    """
    Returns:
        StageResult with data={"answer": str, "citations": [...]}
    """
    try:
        llm = llm or llm_factory(temperature=0.2)
        prompt = SYNTHESIS_PROMPT.format(
            current_date=datetime.utcnow().strftime("%B %d, %Y"),
            research_topic=research_topic,
            summaries=format_summaries(summaries),
        )
        answer, usage = await invoke_text(llm, prompt)
        citations = build_citations(summaries)
        logger.info(f"[Person Research] Synthesized answer with {len(citations)} citations")
        return StageResult(data={"answer": answer, "citations": citations}, token_usage=usage)
    except Exception as e:
        raise PersonResearchError(f"Answer synthesis failed: {e}") from e
