"""
Person research orchestrator

    queries -> search (crawl + verify + summarize) -> identity (first loop)
    -> reflect -> follow-up queries ... -> synthesis -> structured extraction

Token usage is tracked per stage.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any

from ...config import get_crm_settings
from ...errors import CRMError, ErrorCode
from ...llm import TokenUsage
from .answer_synthesis import synthesize_answer
from .person_identification import extract_person_identity
from .query_generation import generate_queries
from .reflection import reflect
from .structured_extraction import extract_structured_data
from .types import DonorInfo, PersonResearchError, LLMFactory, default_llm_factory
from .web_search import WebSearchService

logger = logging.getLogger(__name__)

TOKEN_STAGES = [
    "query_generation",
    "web_search_summaries",
    "reflection",
    "answer_synthesis",
    "person_identification",
    "structured_data_extraction",
]

# Sources handed to identity extraction after the first search round
IDENTITY_SOURCES = 3
MAX_FOLLOW_UP_QUERIES = 3


class PersonResearchOrchestrator:
    """Runs the multi-loop research pipeline for one topic."""

    def __init__(
        self,
        search_service: Optional[WebSearchService] = None,
        llm_factory: LLMFactory = default_llm_factory,
        max_loops: Optional[int] = None,
        initial_queries: Optional[int] = None,
    ):
        settings = get_crm_settings()
        self.llm_factory = llm_factory
        self.search_service = search_service or WebSearchService(llm_factory=llm_factory)
        self.max_loops = max_loops or settings.research_max_loops
        self.initial_queries = initial_queries or settings.research_initial_queries

    async def conduct_person_research(
        self,
        research_topic: str,
        organization_id: str,
        user_id: str,
        donor_info: Optional[DonorInfo] = None,
    ) -> Dict[str, Any]:
        """
        Research a topic (usually "what motivates this donor").

        Raises:
            CRMError: BAD_REQUEST on missing topic, organization or user
            PersonResearchError: when a required stage fails
        """
        if not research_topic or not research_topic.strip():
            raise CRMError(ErrorCode.BAD_REQUEST, "Research topic is required")
        if not organization_id:
            raise CRMError(ErrorCode.BAD_REQUEST, "Organization ID is required")
        if not user_id:
            raise CRMError(ErrorCode.BAD_REQUEST, "User ID is required")

        usage: Dict[str, TokenUsage] = {stage: TokenUsage() for stage in TOKEN_STAGES}
        logger.info(f"[Person Research] Starting research for org {organization_id}: {research_topic[:100]}")

        try:
            generated = await generate_queries(
                research_topic,
                max_queries=self.initial_queries,
                donor_info=donor_info,
                llm_factory=self.llm_factory,
            )
            usage["query_generation"] += generated.token_usage
            queries = generated.data["queries"]
            all_queries = list(queries)

            summaries = []
            identity = None
            loops = 0

            for loop in range(1, self.max_loops + 1):
                loops = loop
                results = await self.search_service.search_many(queries, research_topic, identity)
                for result in results:
                    usage["web_search_summaries"] += result.pop("token_usage", TokenUsage())

                if loop == 1 and donor_info:
                    first_sources = [s for r in results for s in r["sources"]][:IDENTITY_SOURCES]
                    extracted = await extract_person_identity(
                        donor_info, first_sources, llm_factory=self.llm_factory
                    )
                    usage["person_identification"] += extracted.token_usage
                    identity = extracted.data

                summaries.extend(results)

                if loop == self.max_loops:
                    break

                reflection = await reflect(research_topic, summaries, llm_factory=self.llm_factory)
                usage["reflection"] += reflection.token_usage
                if reflection.data["is_sufficient"] or not reflection.data["follow_up_queries"]:
                    break

                follow_ups = reflection.data["follow_up_queries"]
                follow_up_topic = (
                    f"{research_topic}\n\nKnowledge gap: {reflection.data['knowledge_gap']}\n"
                    f"Follow-up questions: {'; '.join(follow_ups)}"
                )
                generated = await generate_queries(
                    follow_up_topic,
                    max_queries=min(len(follow_ups), MAX_FOLLOW_UP_QUERIES),
                    previous_queries=all_queries,
                    llm_factory=self.llm_factory,
                )
                usage["query_generation"] += generated.token_usage
                queries = generated.data["queries"]
                if not queries:
                    break
                all_queries.extend(queries)

            synthesis = await synthesize_answer(research_topic, summaries, llm_factory=self.llm_factory)
            usage["answer_synthesis"] += synthesis.token_usage

            extraction = await extract_structured_data(
                research_topic, synthesis.data["answer"], summaries, llm_factory=self.llm_factory
            )
            usage["structured_data_extraction"] += extraction.token_usage

            total = TokenUsage()
            for stage_usage in usage.values():
                total = total + stage_usage
            token_usage = {stage: u.to_dict() for stage, u in usage.items()}
            token_usage["total"] = total.to_dict()

            result = {
                "answer": synthesis.data["answer"],
                "citations": synthesis.data["citations"],
                "summaries": summaries,
                "total_loops": loops,
                "total_sources": sum(len(s["sources"]) for s in summaries),
                "research_topic": research_topic,
                "timestamp": datetime.utcnow().isoformat(),
                "token_usage": token_usage,
                "person_identity": identity,
                "structured_data": extraction.data,
            }
            logger.info(
                f"[Person Research] Completed in {loops} loops with {result['total_sources']} sources "
                f"({total.total_tokens} tokens)"
            )
            return result

        except PersonResearchError as e:
            raise PersonResearchError(f"Failed to conduct person research: {e}") from e
