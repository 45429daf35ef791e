"""
Reflection - is the research so far enough, and what to search next
"""

import logging
from typing import Optional, List, Dict, Any

from langchain_core.language_models import BaseChatModel

from ...llm import invoke_json
from ...prompts import REFLECTION_PROMPT
from .types import StageResult, PersonResearchError, LLMFactory, default_llm_factory

logger = logging.getLogger(__name__)


async def reflect(
    research_topic: str,
    summaries: List[Dict[str, Any]],
    llm: Optional[BaseChatModel] = None,
    llm_factory: LLMFactory = default_llm_factory,
) -> StageResult:
    """
    Returns:
        StageResult with data={is_sufficient, knowledge_gap, follow_up_queries}
    """
    try:
        llm = llm or llm_factory(temperature=0.3)
        prompt = REFLECTION_PROMPT.format(
            research_topic=research_topic,
            summaries="\n\n".join(f"Query: {s['query']}\n{s['summary']}" for s in summaries),
        )
        parsed, usage = await invoke_json(llm, prompt, context="reflection")
        data = {
            "is_sufficient": bool(parsed.get("is_sufficient", False)),
            "knowledge_gap": parsed.get("knowledge_gap") or "",
            "follow_up_queries": [q for q in parsed.get("follow_up_queries") or [] if isinstance(q, str)],
        }
        logger.info(
            f"[Person Research] Reflection: sufficient={data['is_sufficient']}, "
            f"{len(data['follow_up_queries'])} follow-ups"
        )
        return StageResult(data=data, token_usage=usage)
    except Exception as e:
        raise PersonResearchError(f"Reflection analysis failed: {e}") from e
