"""
Email Generation Service - personalized donor emails from a campaign instruction

The model writes the email as a list of pieces, each tagged with the
context IDs that informed it (donation-N, comm-T-M, summary-paragraph-N),
so reviewers can see where every sentence came from.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

from langchain_core.language_models import BaseChatModel
from pydantic import ValidationError

from ..config import get_crm_settings
from ..llm import TokenUsage, get_chat_model, invoke_json
from ..models import GeneratedEmailContent, EmailPiece
from ..prompts import EMAIL_SYSTEM_PROMPT, EMAIL_DONOR_CONTEXT
from ..utils.donor_name_formatter import format_donor_name

logger = logging.getLogger(__name__)


@dataclass
class GeneratedEmailResult:
    """A generated email ready to be stored on a campaign session."""
    donor_id: int
    subject: str
    structured_content: List[Dict[str, Any]]
    reference_contexts: Dict[str, str]
    tokens_used: TokenUsage = field(default_factory=TokenUsage)


# =============================================================================
# Context Formatting
# =============================================================================


def format_amount(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def format_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def split_summary_paragraphs(summary: Optional[str]) -> List[str]:
    """Website summary paragraphs, split on blank lines."""
    if not summary:
        return []
    return [p.strip() for p in re.split(r"\n\s*\n", summary) if p.strip()]


def build_donation_contexts(donations: List[Any]) -> Dict[str, str]:
    """
    donation-N contexts, newest donation first.

    Each donation needs date and amount (cents); a project (with a name)
    is optional.
    """
    contexts = {}
    ordered = sorted(donations, key=lambda d: d.date, reverse=True)
    for i, donation in enumerate(ordered, start=1):
        project = getattr(donation, "project", None)
        to_project = f" to {project.name}" if project is not None else ""
        contexts[f"donation-{i}"] = (
            f"Donation on {format_date(donation.date)}: {format_amount(donation.amount)}{to_project}"
        )
    return contexts


def build_communication_contexts(communications: List[List[str]]) -> Dict[str, str]:
    """comm-T-M ids for message M of thread T (both 1-based)."""
    contexts = {}
    for t, thread in enumerate(communications, start=1):
        for m, content in enumerate(thread, start=1):
            contexts[f"comm-{t}-{m}"] = content
    return contexts


def _bullets(title: str, items: Optional[List[str]]) -> str:
    if not items:
        return ""
    return f"{title}:\n" + "\n".join(f"- {item}" for item in items)


def build_system_prompt(
    organization: Any,
    instruction: str,
    summary_paragraphs: List[str],
    user_memory: Optional[List[str]] = None,
    organization_memory: Optional[List[str]] = None,
    current_date: Optional[datetime] = None,
) -> str:
    description = getattr(organization, "description", None)
    guidelines = getattr(organization, "writing_instructions", None)
    current_date = current_date or datetime.utcnow()

    if summary_paragraphs:
        summary = "Organization Summary:\n" + "\n".join(
            f"- [summary-paragraph-{i}] {p}" for i, p in enumerate(summary_paragraphs, start=1)
        )
    else:
        summary = "Organization Summary:\nNo website summary provided."

    return EMAIL_SYSTEM_PROMPT.format(
        organization_name=organization.name,
        organization_description=f"Organization Description: {description}\n" if description else "",
        current_date=f"Current Date: {format_date(current_date)}\n",
        writing_guidelines=f"Writing Guidelines: {guidelines}\n" if guidelines else "",
        personal_memories=_bullets("Personal Memories", user_memory),
        organization_memories=_bullets("Organization Memories", organization_memory),
        organization_summary=summary,
        instruction=instruction,
    )


def build_donor_context(
    donor: Any, donation_contexts: Dict[str, str], communication_contexts: Dict[str, str]
) -> str:
    notes = [n.get("content", "") for n in (donor.notes or []) if isinstance(n, dict)]
    donor_notes = _bullets("User Notes about this Donor", [n for n in notes if n])

    if donation_contexts:
        donation_history = "\n".join(f"- [{ref}] {text}" for ref, text in donation_contexts.items())
    else:
        donation_history = "No previous donations."

    if communication_contexts:
        communication_history = "\n".join(
            f"- [{ref}] {text}" for ref, text in communication_contexts.items()
        )
    else:
        communication_history = "No past communications."

    return EMAIL_DONOR_CONTEXT.format(
        donor_name=format_donor_name(donor),
        donor_email=donor.email,
        donor_notes=f"{donor_notes}\n" if donor_notes else "",
        donation_history=donation_history,
        communication_history=communication_history,
    )


# =============================================================================
# Service
# =============================================================================


class EmailGenerationService:
    """
    Generates one donor email per call.

    Stateless apart from the chat model, which can be injected.
    """

    def __init__(self, llm: Optional[BaseChatModel] = None):
        self._llm = llm

    def _get_llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_chat_model(temperature=0.7, max_tokens=2000)
        return self._llm

    async def generate_email(
        self,
        donor: Any,
        instruction: str,
        organization: Any,
        donations: Optional[List[Any]] = None,
        communications: Optional[List[List[str]]] = None,
        website_summary: Optional[str] = None,
        signature: Optional[str] = None,
        user_memory: Optional[List[str]] = None,
        organization_memory: Optional[List[str]] = None,
        current_date: Optional[datetime] = None,
    ) -> GeneratedEmailResult:
        """
        Generate a personalized email for one donor.

        Args:
            donor: Donor row (names, email, notes)
            instruction: Campaign instruction (refined if available)
            organization: Organization row (name, description, writing instructions)
            donations: Donor's donations (date, amount in cents, optional project)
            communications: Past threads, each a list of message texts
            website_summary: Organization website summary
            signature: Appended as the final piece when given

        Raises:
            ValueError: if no valid email was produced
        """
        donation_contexts = build_donation_contexts(donations or [])
        communication_contexts = build_communication_contexts(communications or [])
        summary_paragraphs = split_summary_paragraphs(website_summary)

        system_prompt = build_system_prompt(
            organization,
            instruction,
            summary_paragraphs,
            user_memory,
            organization_memory,
            current_date,
        )
        donor_context = build_donor_context(donor, donation_contexts, communication_contexts)

        attempts = get_crm_settings().email_generation_attempts
        usage = TokenUsage()
        last_error: Optional[Exception] = None
        email: Optional[GeneratedEmailContent] = None

        for attempt in range(1, attempts + 1):
            try:
                parsed, call_usage = await invoke_json(
                    self._get_llm(), donor_context, system=system_prompt, context="email_generation"
                )
                usage = usage + call_usage
                email = GeneratedEmailContent.model_validate(parsed)
                break
            except (ValueError, ValidationError) as e:
                last_error = e
                logger.warning(
                    f"Email generation attempt {attempt}/{attempts} failed for donor {donor.id}: {e}"
                )

        if email is None:
            raise ValueError(f"Failed to generate email after {attempts} attempts: {last_error}")

        reference_contexts: Dict[str, str] = dict(donation_contexts)
        for piece in email.content:
            for ref in piece.references:
                if ref in communication_contexts:
                    reference_contexts[ref] = f"Previous message: {communication_contexts[ref]}"
                elif ref.startswith("summary-paragraph-"):
                    index = ref.rsplit("-", 1)[-1]
                    if index.isdigit() and 1 <= int(index) <= len(summary_paragraphs):
                        reference_contexts[ref] = (
                            f"Organization summary: {summary_paragraphs[int(index) - 1]}"
                        )

        pieces = list(email.content)
        if signature and signature.strip():
            pieces[-1] = pieces[-1].model_copy(update={"add_newline_after": True})
            pieces.append(EmailPiece(piece=signature.strip(), references=[], add_newline_after=False))

        logger.info(
            f"Generated email for donor {donor.id}: '{email.subject}' "
            f"({len(pieces)} pieces, {usage.total_tokens} tokens)"
        )

        return GeneratedEmailResult(
            donor_id=donor.id,
            subject=email.subject,
            structured_content=[p.model_dump() for p in pieces],
            reference_contexts=reference_contexts,
            tokens_used=usage,
        )


def get_email_generation_service(llm: Optional[BaseChatModel] = None) -> EmailGenerationService:
    """Get email generation service instance."""
    return EmailGenerationService(llm)
