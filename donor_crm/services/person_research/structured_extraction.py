"""
Structured extraction - age, employer, income and donor potential from the answer
"""

import logging
from typing import Optional, List, Dict, Any

from langchain_core.language_models import BaseChatModel

from ...llm import invoke_json
from ...prompts import EXTRACTION_PROMPT
from .types import StageResult, LLMFactory, default_llm_factory, format_summaries

logger = logging.getLogger(__name__)

DEFAULT_STRUCTURED_DATA = {
    "inferred_age": None,
    "employer": None,
    "estimated_income": None,
    "high_potential_donor": False,
    "high_potential_donor_rationale": "Unable to assess due to data extraction error.",
}


def _age(value: Any) -> Optional[int]:
    try:
        age = int(float(value))
    except (TypeError, ValueError):
        return None
    return age if 0 < age < 130 else None


async def extract_structured_data(
    research_topic: str,
    answer: str,
    summaries: List[Dict[str, Any]],
    llm: Optional[BaseChatModel] = None,
    llm_factory: LLMFactory = default_llm_factory,
) -> StageResult:
    """Never raises; a failed extraction yields DEFAULT_STRUCTURED_DATA."""
    try:
        llm = llm or llm_factory(temperature=0.1)
        prompt = EXTRACTION_PROMPT.format(
            research_topic=research_topic,
            answer=answer,
            summaries=format_summaries(summaries, content_chars=1000),
        )
        parsed, usage = await invoke_json(llm, prompt, context="structured_extraction")
        data = {
            "inferred_age": _age(parsed.get("inferred_age")),
            "employer": parsed.get("employer") or None,
            "estimated_income": parsed.get("estimated_income") or None,
            "high_potential_donor": parsed.get("high_potential_donor") is True,
            "high_potential_donor_rationale": parsed.get("high_potential_donor_rationale") or "",
        }
        return StageResult(data=data, token_usage=usage)
    except Exception as e:
        logger.warning(f"[Person Research] Structured extraction failed: {e}")
        return StageResult(data=dict(DEFAULT_STRUCTURED_DATA))
