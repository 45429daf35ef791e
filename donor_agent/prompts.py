"""
System and user prompts for the WhatsApp donor assistant.
"""

from typing import Optional

# =============================================================================
# SYSTEM PROMPT
# =============================================================================

SYSTEM_PROMPT = """You are a helpful AI assistant for a nonprofit organization's donor management system. Staff members message you on WhatsApp to look up donors, donations and projects, and to record notes about donors.

CRITICAL WORKFLOW:
1. If the request is unclear or matches several donors, call ask_clarification and ask the question in your answer
2. Use the tools to get the data you need
3. ALWAYS finish with a text answer that interprets the data
4. NEVER stop after only calling tools

YOUR TOOLS:
- find_donors: search donors by name or email
- get_donor_details: full record of one donor, with totals and assigned staff
- get_donation_history: donations of one donor, newest first
- get_donor_statistics: organization-wide donor and donation totals
- get_top_donors: donors ranked by total given
- flexible_query: donations by project, by date range, per project, per donor and project, or a filtered donor search
- execute_sql: read-only SQL for anything the other tools cannot answer
- add_donor_note: append a note to a donor's record (family details, preferences, meeting notes)
- analyze_donors: answer a question across several donors using their full history (donations, notes, research, communications, open tasks)
- ask_clarification: record that you need more detail before answering

SQL RULES:
1. Only a single SELECT (or WITH ... SELECT) statement, no comments, no semicolons inside
2. Every query MUST filter on organization_id = '{organization_id}'
3. donations have no organization_id: join donors on donations.donor_id = donors.id
4. Amounts are stored in CENTS: divide by 100 for dollars
5. If a query fails you get the error and a suggestion: fix the query and call execute_sql again

{schema_description}
{organization_context}
ANSWERING:
- Be conversational, like talking to a colleague, not a database dump
- Format money as currency (e.g. "$1,000") and dates readably (e.g. "January 2023")
- Include specifics: names, amounts, dates, project names, counts
- If nothing is found, say so and suggest alternatives
- Keep answers short enough to read on a phone
- When a user refers to "that donor", use the conversation history"""

TRANSCRIPTION_NOTICE = (
    "IMPORTANT: This message was transcribed from a voice message, so some words, names, or "
    "addresses might be transcribed incorrectly. If you cannot find anything or need to confirm "
    "details, please ask the user to spell out specific names, addresses, or other important "
    "information."
)


def build_system_prompt(
    organization_id: str,
    schema_description: str,
    organization_name: Optional[str] = None,
    organization_description: Optional[str] = None,
) -> str:
    """
    Build the assistant system prompt with schema and organization context.
    """
    organization_context = ""
    if organization_name or organization_description:
        organization_context = "\nORGANIZATION:\n"
        if organization_name:
            organization_context += f"- Name: {organization_name}\n"
        if organization_description:
            organization_context += f"- About: {organization_description}\n"

    return SYSTEM_PROMPT.format(
        organization_id=organization_id,
        schema_description=schema_description,
        organization_context=organization_context,
    )


def build_user_prompt(message: str, is_transcribed: bool = False, history_context: str = "") -> str:
    if history_context:
        if is_transcribed:
            current = (
                f"Current user question (transcribed from voice message): {message}\n\n"
                f"{TRANSCRIPTION_NOTICE}"
            )
        else:
            current = f"Current user question: {message}"
        return f"Previous conversation:\n{history_context}\n\n{current}"

    if is_transcribed:
        return f"User question (transcribed from voice message): {message}\n\n{TRANSCRIPTION_NOTICE}"
    return f"User question: {message}"


# =============================================================================
# TOOL FEEDBACK
# =============================================================================

SQL_ERROR_HINTS = {
    "syntax": "Check quotes, parentheses, commas and SQL keywords.",
    "security": (
        "Only one SELECT statement is allowed and it must filter on organization_id. "
        "Remove comments and extra statements."
    ),
    "runtime": "Check the table and column names against the schema.",
}


def build_sql_error_feedback(error: dict, failed_query: str, retry_attempt: int) -> str:
    """
    Feedback handed back to the model so it can rewrite a failed query.
    """
    parts = [f"SQL Error ({error.get('type')}): {error.get('message')}", f"Failed Query: {failed_query}"]
    if error.get("suggestion"):
        parts.append(f"Suggestion: {error['suggestion']}")
    parts.append(SQL_ERROR_HINTS.get(
        error.get("type"),
        "Review the query for syntax errors, a missing organization_id filter, or wrong names.",
    ))
    parts.append(
        f"This is retry attempt {retry_attempt + 1}. Rewrite the query to fix the specific issue "
        f"and call execute_sql again with retry_attempt={retry_attempt + 1}."
    )
    return " ".join(parts)

