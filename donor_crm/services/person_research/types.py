"""
Shared types for the person research pipeline.

Results are plain dicts so they can be stored as JSON on PersonResearch rows.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Callable

from langchain_core.language_models import BaseChatModel

from ...llm import TokenUsage, get_chat_model

# Builds a chat model for a temperature
LLMFactory = Callable[..., BaseChatModel]


class PersonResearchError(Exception):
    """A research stage failed."""


@dataclass
class DonorInfo:
    """What is known about the donor before searching."""
    full_name: str
    location: Optional[str] = None
    state: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class StageResult:
    """Output of one LLM stage plus the tokens it cost."""
    data: Any
    token_usage: TokenUsage = field(default_factory=TokenUsage)


def default_llm_factory(temperature: float = 0.7, max_tokens: int = 4000) -> BaseChatModel:
    return get_chat_model(temperature=temperature, max_tokens=max_tokens)


def format_summaries(summaries: List[Dict[str, Any]], content_chars: int = 2000) -> str:
    """Render search summaries and their sources for synthesis style prompts."""
    blocks = []
    for i, summary in enumerate(summaries, start=1):
        lines = [f"[{i}] Query: {summary['query']}", f"Summary: {summary['summary']}"]
        for source in summary.get("sources", []):
            lines.append(f"- Source: {source.get('title', '')} ({source.get('link', '')})")
            if source.get("crawled_content"):
                lines.append(f"  Content: {source['crawled_content'][:content_chars]}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)
