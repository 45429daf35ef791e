"""
Search query generation
"""

import logging
from datetime import datetime
from typing import Optional, List

from langchain_core.language_models import BaseChatModel

from ...llm import invoke_json
from ...prompts import QUERY_GENERATION_PROMPT, QUERY_INITIAL_CONTEXT, QUERY_FOLLOW_UP_CONTEXT
from .types import DonorInfo, StageResult, PersonResearchError, LLMFactory, default_llm_factory

logger = logging.getLogger(__name__)


def build_specific_queries(donor_info: Optional[DonorInfo]) -> List[str]:
    """Exact-match queries from known donor data: name + location, then name + email."""
    if not donor_info or not donor_info.full_name:
        return []
    queries = []
    place = donor_info.state or donor_info.address
    if place:
        queries.append(f"{donor_info.full_name} {place}")
    if donor_info.email:
        queries.append(f"{donor_info.full_name} {donor_info.email}")
    return queries


async def generate_queries(
    research_topic: str,
    max_queries: int = 3,
    previous_queries: Optional[List[str]] = None,
    donor_info: Optional[DonorInfo] = None,
    llm: Optional[BaseChatModel] = None,
    llm_factory: LLMFactory = default_llm_factory,
) -> StageResult:
    """
    Generate up to max_queries search queries.

    Initial rounds put the donor specific queries first; follow-up rounds
    tell the model what was already searched.

    Returns:
        StageResult with data={"queries": [...], "rationale": str}
    """
    try:
        llm = llm or llm_factory(temperature=0.7)
        context = (
            QUERY_FOLLOW_UP_CONTEXT.format(previous_queries=", ".join(previous_queries))
            if previous_queries
            else QUERY_INITIAL_CONTEXT
        )
        prompt = QUERY_GENERATION_PROMPT.format(
            max_queries=max_queries,
            current_date=datetime.utcnow().strftime("%B %d, %Y"),
            context=context,
            research_topic=research_topic,
        )
        parsed, usage = await invoke_json(llm, prompt, context="query_generation")

        generated = [q.strip() for q in parsed.get("query", []) if isinstance(q, str) and q.strip()]
        specific = [] if previous_queries else build_specific_queries(donor_info)
        already_run = set(previous_queries or [])
        queries = []
        for query in specific + generated:
            if query not in queries and query not in already_run:
                queries.append(query)

        logger.info(f"[Person Research] Generated {len(queries[:max_queries])} queries")
        return StageResult(
            data={"queries": queries[:max_queries], "rationale": parsed.get("rationale", "")},
            token_usage=usage,
        )
    except Exception as e:
        raise PersonResearchError(f"Query generation failed: {e}") from e
