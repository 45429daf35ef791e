"""
Parse JSON out of language model responses that may carry extra text.
"""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json / ``` markdown block."""
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]
    return content.strip()


def parse_json_from_ai_response(response: str, context: str = "unknown") -> Any:
    """
    Parse JSON from an AI response.

    Tries, in order: the (fence-stripped) response as-is, the outermost
    {...} span, the outermost [...] span.

    Raises:
        ValueError: if no strategy yields valid JSON
    """
    if not isinstance(response, str) or not response.strip():
        raise ValueError(f"Invalid response: expected non-empty string, got {type(response).__name__}")

    text = strip_code_fences(response.strip())

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.debug(f"[{context}] Direct JSON parsing failed")

    for open_char, close_char in (("{", "}"), ("[", "]")):
        start = text.find(open_char)
        end = text.rfind(close_char)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except json.JSONDecodeError:
                logger.debug(f"[{context}] Extracted {open_char}{close_char} parsing failed")

    raise ValueError(f"Failed to parse JSON from AI response ({context}): {response[:100]}")
