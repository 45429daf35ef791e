"""
Person identification - who the donor is, and whether a page is about them
"""

import logging
from typing import Optional, List, Dict, Any, Tuple

from langchain_core.language_models import BaseChatModel

from ...llm import TokenUsage, invoke_json
from ...prompts import IDENTITY_EXTRACTION_PROMPT, VERIFICATION_PROMPT
from .types import DonorInfo, StageResult, LLMFactory, default_llm_factory

logger = logging.getLogger(__name__)

# Below this identity confidence pages are not verified
MIN_IDENTITY_CONFIDENCE = 0.3
# Verified pages need at least this confidence to be kept
MIN_RELEVANCE_CONFIDENCE = 0.5


def _float(value: Any, default: float) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def _fallback_identity(donor_info: DonorInfo) -> Dict[str, Any]:
    return {
        "full_name": donor_info.full_name,
        "probable_age": None,
        "location": donor_info.location,
        "profession": None,
        "education": None,
        "organizations": [],
        "key_identifiers": [donor_info.full_name] + ([donor_info.location] if donor_info.location else []),
        "confidence": 0.1,
        "reasoning": "Failed to extract detailed identity information",
        "extracted_from": "donor data only (extraction failed)",
    }


async def extract_person_identity(
    donor_info: DonorInfo,
    search_results: Optional[List[Dict[str, Any]]] = None,
    llm: Optional[BaseChatModel] = None,
    llm_factory: LLMFactory = default_llm_factory,
) -> StageResult:
    """
    Build an identity profile from donor data and the first search results.

    Never raises; a failed extraction yields a low-confidence profile.
    """
    results_text = ""
    if search_results:
        lines = ["\nINITIAL SEARCH RESULTS:"]
        for i, result in enumerate(search_results, start=1):
            lines.append(f"[{i}] {result.get('title', '')}\nURL: {result.get('link', '')}\n{result.get('snippet', '')}")
            if result.get("crawled_content"):
                lines.append(f"Content: {result['crawled_content'][:1500]}")
        results_text = "\n".join(lines)

    prompt = IDENTITY_EXTRACTION_PROMPT.format(
        full_name=donor_info.full_name,
        location=f"- Location: {donor_info.location}\n" if donor_info.location else "",
        notes=f"- Notes: {donor_info.notes}\n" if donor_info.notes else "",
        search_results=results_text,
    )

    try:
        llm = llm or llm_factory(temperature=0.2)
        parsed, usage = await invoke_json(llm, prompt, context="person_identification")
        identity = {
            "full_name": parsed.get("full_name") or donor_info.full_name,
            "probable_age": parsed.get("probable_age"),
            "location": parsed.get("location") or donor_info.location,
            "profession": parsed.get("profession"),
            "education": parsed.get("education"),
            "organizations": parsed.get("organizations") or [],
            "key_identifiers": parsed.get("key_identifiers") or [donor_info.full_name],
            "confidence": _float(parsed.get("confidence"), 0.1),
            "reasoning": parsed.get("reasoning", ""),
            "extracted_from": "donor data and initial search" if search_results else "donor data only",
        }
        logger.info(
            f"[Person Research] Identity for {identity['full_name']} "
            f"(confidence {identity['confidence']:.2f})"
        )
        return StageResult(data=identity, token_usage=usage)
    except Exception as e:
        logger.warning(f"[Person Research] Identity extraction failed for {donor_info.full_name}: {e}")
        return StageResult(data=_fallback_identity(donor_info))


async def verify_search_result(
    identity: Dict[str, Any],
    result: Dict[str, Any],
    llm: Optional[BaseChatModel] = None,
    llm_factory: LLMFactory = default_llm_factory,
) -> StageResult:
    """
    Is this page about the identified person?

    Returns:
        StageResult with data={is_relevant, confidence, matching_identifiers,
        contradictions, reasoning}; on failure is_relevant is True so the page is kept
    """
    identity_lines = "\n".join(
        f"- {key.replace('_', ' ').title()}: {value}"
        for key, value in identity.items()
        if key not in ("key_identifiers", "reasoning", "extracted_from", "confidence") and value
    )
    content = result.get("crawled_content") or ""
    prompt = VERIFICATION_PROMPT.format(
        identity=identity_lines,
        key_identifiers="\n".join(f"- {k}" for k in identity.get("key_identifiers", [])),
        title=result.get("title", ""),
        url=result.get("link", ""),
        snippet=result.get("snippet", ""),
        content=f"- Content: {content[:3000]}\n" if content else "",
    )

    try:
        llm = llm or llm_factory(temperature=0.1)
        parsed, usage = await invoke_json(llm, prompt, context="verification")
        return StageResult(
            data={
                "is_relevant": bool(parsed.get("is_relevant", parsed.get("isRelevant", False))),
                "confidence": _float(parsed.get("confidence"), 0.0),
                "matching_identifiers": parsed.get("matching_identifiers") or [],
                "contradictions": parsed.get("contradictions") or [],
                "reasoning": parsed.get("reasoning", ""),
            },
            token_usage=usage,
        )
    except Exception as e:
        logger.warning(f"[Person Research] Verification failed for {result.get('link')}: {e}")
        return StageResult(
            data={
                "is_relevant": True,
                "confidence": 0.5,
                "matching_identifiers": [],
                "contradictions": [],
                "reasoning": "Verification failed; result kept",
            }
        )


async def filter_relevant_results(
    identity: Optional[Dict[str, Any]],
    results: List[Dict[str, Any]],
    llm: Optional[BaseChatModel] = None,
    llm_factory: LLMFactory = default_llm_factory,
) -> Tuple[List[Dict[str, Any]], TokenUsage]:
    """
    Drop crawled pages that are about someone else.

    Skipped entirely when the identity is missing or low confidence.
    Results that were not crawled are always kept.
    """
    if not identity or identity.get("confidence", 0) < MIN_IDENTITY_CONFIDENCE:
        return results, TokenUsage()

    usage = TokenUsage()
    kept = []
    for result in results:
        if not result.get("crawl_success"):
            kept.append(result)
            continue
        verification = await verify_search_result(identity, result, llm, llm_factory)
        usage = usage + verification.token_usage
        check = verification.data
        if check["is_relevant"] and check["confidence"] >= MIN_RELEVANCE_CONFIDENCE:
            kept.append({**result, "verification": check})
        else:
            logger.info(f"[Person Research] Dropped unrelated page {result.get('link')}: {check['reasoning']}")
    return kept, usage
