"""
Language model helpers shared by email generation, person research and
the WhatsApp assistant.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple

from langchain.chat_models import init_chat_model
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from .config import get_crm_settings
from .utils.json_parser import parse_json_from_ai_response

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    """Token counts for one or more model calls."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def get_chat_model(temperature: float = 0.7, max_tokens: int = 2000) -> BaseChatModel:
    """Create the configured chat model."""
    settings = get_crm_settings()
    kwargs: Dict[str, Any] = {"temperature": temperature, "max_tokens": max_tokens}
    if settings.anthropic_api_key:
        kwargs["api_key"] = settings.anthropic_api_key
    return init_chat_model(settings.llm_model, **kwargs)


def message_text(message: BaseMessage) -> str:
    """Plain text of a model message (content may be a list of blocks)."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def token_usage_from_message(message: BaseMessage) -> TokenUsage:
    """Read usage_metadata from an AI message; zeros when the provider omits it."""
    usage = getattr(message, "usage_metadata", None) or {}
    prompt_tokens = usage.get("input_tokens", 0) or 0
    completion_tokens = usage.get("output_tokens", 0) or 0
    total_tokens = usage.get("total_tokens") or prompt_tokens + completion_tokens
    return TokenUsage(prompt_tokens, completion_tokens, total_tokens)


async def invoke_text(
    llm: BaseChatModel, prompt: str, system: Optional[str] = None
) -> Tuple[str, TokenUsage]:
    """Run a single prompt and return (text, usage)."""
    messages = []
    if system:
        messages.append(SystemMessage(content=system))
    messages.append(HumanMessage(content=prompt))

    response = await llm.ainvoke(messages)
    return message_text(response).strip(), token_usage_from_message(response)


async def invoke_json(
    llm: BaseChatModel,
    prompt: str,
    system: Optional[str] = None,
    context: str = "llm",
) -> Tuple[Any, TokenUsage]:
    """Run a prompt that must answer with JSON and return (parsed, usage)."""
    text, usage = await invoke_text(llm, prompt, system)
    return parse_json_from_ai_response(text, context=context), usage
