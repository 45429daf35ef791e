"""
Unit tests for the shared helpers.

Tests:
- Donor display names and salutations
- JSON extraction from model responses
- Token usage accounting
"""

import pytest
from langchain_core.messages import AIMessage

from donor_crm.llm import TokenUsage, message_text, token_usage_from_message
from donor_crm.utils.donor_name_formatter import (
    construct_individual_name,
    format_donor_name,
    get_donor_salutation,
)
from donor_crm.utils.json_parser import parse_json_from_ai_response, strip_code_fences


def test_format_donor_name():
    assert format_donor_name({"display_name": " The Smith Family ", "first_name": "John"}) == "The Smith Family"
    assert format_donor_name({
        "his_title": "Mr.", "his_first_name": "John", "his_last_name": "Doe",
        "her_title": "Mrs.", "her_first_name": "Jane", "her_last_name": "Doe",
    }) == "Mr. John Doe and Mrs. Jane Doe"
    assert format_donor_name({"her_first_name": "Jane", "her_initial": "Q", "her_last_name": "Doe"}) == \
        "Jane Q. Doe"
    assert format_donor_name({"first_name": "Maria", "last_name": ""}) == "Maria"
    assert format_donor_name({}) == "Unknown Donor"

    assert construct_individual_name("Dr.", "Paul", "R.", "Green") == "Dr. Paul R. Green"
    assert construct_individual_name(" ", None, "", None) is None

    print("✅ Donor names passed")


def test_donor_salutation():
    assert get_donor_salutation({"display_name": "The Smiths"}) == "Dear The Smiths"
    assert get_donor_salutation({
        "is_couple": True,
        "his_first_name": "John", "his_last_name": "Doe",
        "her_first_name": "Jane", "her_last_name": "Doe",
    }) == "Dear John Doe and Jane Doe"
    assert get_donor_salutation({"his_title": "Mr.", "his_first_name": "John", "his_last_name": "Doe"}) == \
        "Dear Mr. Doe"
    assert get_donor_salutation({"her_first_name": "Jane"}) == "Dear Jane"
    assert get_donor_salutation({"first_name": "Alex", "last_name": "Kim"}) == "Dear Alex"
    assert get_donor_salutation({}) == "Dear Friend"

    print("✅ Salutations passed")


def test_parse_json_from_ai_response():
    assert parse_json_from_ai_response('{"a": 1}') == {"a": 1}
    assert parse_json_from_ai_response('```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}
    assert parse_json_from_ai_response('Here you go: {"ok": true} Hope it helps!') == {"ok": True}
    assert parse_json_from_ai_response("The queries are [\"a\", \"b\"].") == ["a", "b"]
    assert strip_code_fences("```\nplain\n```") == "plain"

    for bad in ("", "   ", "no json at all", "{broken"):
        with pytest.raises(ValueError):
            parse_json_from_ai_response(bad, context="test")

    print("✅ JSON parsing passed")


def test_token_usage():
    message = AIMessage(
        content=[{"type": "text", "text": "Hello "}, {"type": "tool_use", "id": "t1"}, "world"],
        usage_metadata={"input_tokens": 11, "output_tokens": 4, "total_tokens": 15},
    )

    usage = token_usage_from_message(message) + TokenUsage(1, 1, 2)

    assert message_text(message) == "Hello world"
    assert usage.to_dict() == {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17}
    assert token_usage_from_message(AIMessage(content="x")).total_tokens == 0

    print("✅ Token usage passed")
