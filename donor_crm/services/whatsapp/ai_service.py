"""
WhatsApp AI Service - answers staff questions with the donor assistant

Flow per message: dedup check, save the user message, load history,
build prompts, run the LangGraph ReAct agent, save the answer.
"""

import logging
import time
from typing import Optional, List, Dict, Any
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
from langgraph.prebuilt import create_react_agent
from sqlalchemy.orm import Session

from database.models import Organization
from donor_agent.prompts import build_system_prompt, build_user_prompt
from donor_agent.tools import create_donor_tools, to_jsonable
from ..base import BaseService
from ...config import get_crm_settings
from ...llm import TokenUsage, get_chat_model, message_text, token_usage_from_message
from .history_service import WhatsAppHistoryService
from .message_deduplication import MessageDeduplicator, get_message_deduplicator
from .sql_engine_service import get_schema_description
from .staff_logging_service import WhatsAppStaffLoggingService

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_ERROR = "AI failed to generate a response - please try your question again"

# organization_id -> system prompt
_system_prompt_cache: Dict[str, str] = {}


def clear_system_prompt_cache():
    _system_prompt_cache.clear()


def summarize_agent_messages(messages: List[Any]) -> Dict[str, Any]:
    """
    Pull the final answer, tool calls, tool results and token usage out of
    an agent run.
    """
    tool_calls = []
    tool_results = []
    usage = TokenUsage()
    answer = ""

    for message in messages:
        if isinstance(message, AIMessage):
            usage = usage + token_usage_from_message(message)
            for call in message.tool_calls or []:
                tool_calls.append({"id": call.get("id"), "tool_name": call["name"], "args": call["args"]})
        elif isinstance(message, ToolMessage):
            tool_results.append({
                "tool_call_id": message.tool_call_id,
                "tool_name": message.name,
                "result": message_text(message)[:2000],
            })

    if messages and isinstance(messages[-1], AIMessage):
        answer = message_text(messages[-1]).strip()

    return {"response": answer, "tool_calls": tool_calls, "tool_results": tool_results, "usage": usage}


class WhatsAppAIService(BaseService):
    """Runs the donor assistant for one incoming WhatsApp message."""

    def __init__(
        self,
        db: Optional[Session] = None,
        llm: Optional[BaseChatModel] = None,
        deduplicator: Optional[MessageDeduplicator] = None,
    ):
        super().__init__(db)
        self._llm = llm
        self.deduplicator = deduplicator or get_message_deduplicator()
        self.history_service = WhatsAppHistoryService(db)
        self.logging_service = WhatsAppStaffLoggingService(db)

    def _get_llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_chat_model(temperature=0.7, max_tokens=2000)
        return self._llm

    def get_system_prompt(self, organization_id: str) -> str:
        """System prompt for an organization, built once per process."""
        if organization_id in _system_prompt_cache:
            return _system_prompt_cache[organization_id]

        db = self._get_db()
        try:
            organization = db.query(Organization).filter(Organization.id == organization_id).first()
        finally:
            self._close_db(db)

        prompt = build_system_prompt(
            organization_id,
            get_schema_description(),
            organization_name=organization.name if organization else None,
            organization_description=(
                (organization.short_description or organization.description) if organization else None
            ),
        )
        _system_prompt_cache[organization_id] = prompt
        return prompt

    async def process_message(
        self,
        message: str,
        organization_id: str,
        staff_id: Optional[int],
        from_phone_number: str,
        is_transcribed: bool = False,
        message_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Answer one message.

        Returns:
            {response, tokens_used}

        Raises:
            ValueError: The model produced no answer
        """
        started = time.monotonic()

        is_retry = self.deduplicator.check_and_mark_message(message, from_phone_number, organization_id)
        if is_retry:
            logger.debug(f"[WhatsApp AI] Processing retry message from {from_phone_number} (already processed recently)")
        else:
            logger.info(
                f"[WhatsApp AI] Processing new message from {from_phone_number} in {organization_id} "
                f"(staff {staff_id}, {len(message)} chars, transcribed={is_transcribed})"
            )

        try:
            self.history_service.save_message(
                organization_id, staff_id, from_phone_number, "user", message, message_id=message_id
            )

            history = self.history_service.get_chat_history(
                organization_id,
                from_phone_number,
                limit=get_crm_settings().whatsapp_history_limit,
                staff_id=staff_id,
            )
            # The message just saved is the current question, not history
            if history and history[-1].role == "user" and history[-1].content == message:
                history = history[:-1]
            history_context = self.history_service.format_history_for_ai(history)

            system_prompt = self.get_system_prompt(organization_id)
            user_prompt = build_user_prompt(message, is_transcribed, history_context)

            tools = create_donor_tools(
                organization_id,
                staff_id,
                from_phone_number,
                db=self._db,
                logging_service=self.logging_service,
            )
            agent = create_react_agent(self._get_llm(), tools, prompt=system_prompt)

            logger.info(
                f"[WhatsApp AI] Running agent: {len(history)} history messages, "
                f"system prompt {len(system_prompt)} chars, user prompt {len(user_prompt)} chars"
            )
            agent_started = time.monotonic()
            result = await agent.ainvoke({"messages": [HumanMessage(content=user_prompt)]})
            agent_ms = int((time.monotonic() - agent_started) * 1000)

            summary = summarize_agent_messages(result["messages"])
            response_text = summary["response"]
            tokens_used = summary["usage"].to_dict()

            if not response_text:
                logger.error(
                    f"[WhatsApp AI] Empty response after {len(summary['tool_calls'])} tool calls"
                )
                raise ValueError(EMPTY_RESPONSE_ERROR)

            self.history_service.save_message(
                organization_id,
                staff_id,
                from_phone_number,
                "assistant",
                response_text,
                tool_calls=to_jsonable(summary["tool_calls"]),
                tool_results=summary["tool_results"],
                tokens_used=tokens_used,
            )
            self.logging_service.log_ai_response_generated(
                staff_id,
                organization_id,
                from_phone_number,
                user_prompt,
                response_text,
                tokens_used,
                tool_calls=to_jsonable(summary["tool_calls"]),
                processing_time_ms=agent_ms,
            )

            logger.info(
                f"[WhatsApp AI] Request completed in {int((time.monotonic() - started) * 1000)}ms, "
                f"{tokens_used['total_tokens']} tokens, {len(summary['tool_calls'])} tool calls"
            )
            return {"response": response_text, "tokens_used": tokens_used}

        except Exception as e:
            logger.error(
                f"[WhatsApp AI] Error processing message from {from_phone_number} "
                f"in {organization_id}: {e}"
            )
            raise


def get_whatsapp_ai_service(db: Optional[Session] = None) -> WhatsAppAIService:
    """Get WhatsApp AI service instance."""
    return WhatsAppAIService(db)
