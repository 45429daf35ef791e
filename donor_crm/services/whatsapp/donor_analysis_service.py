"""
WhatsApp Donor Analysis Service - answers questions across several donors

Loads each donor's full history (donations, notes, live research,
communications, open tasks), renders it as text and asks the model the
staff member's question about it.
"""

import logging
import time
from datetime import datetime
from typing import Optional, List, Dict, Any

from langchain_core.language_models import BaseChatModel
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database.models import (
    CommunicationContent,
    CommunicationThread,
    Donation,
    Donor,
    PersonResearch,
    Project,
    Todo,
)
from ..base import BaseService
from ...llm import get_chat_model, invoke_text
from ...models import TodoStatus
from ...prompts import DONOR_ANALYSIS_PROMPT, DONOR_ANALYSIS_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

RECENT_DONATIONS = 10
RECENT_COMMUNICATIONS = 5
COMMUNICATION_PREVIEW = 100


def _money(cents: int) -> str:
    return f"${(cents or 0) / 100:,.2f}"


def _date(value: Optional[datetime]) -> str:
    return value.strftime("%m/%d/%Y") if value else "unknown date"


def format_donor_history(history: Dict[str, Any]) -> str:
    """Render one donor history as a text profile for the model."""
    donor = history["donor"]
    full_name = f"{donor.first_name} {donor.last_name}".strip()
    lines = [f"=== Donor Profile: {full_name} (ID {donor.id}) ===", "", "Basic Information:"]
    lines.append(f"- Name: {donor.display_name or full_name}")
    if donor.is_couple:
        his = f"{donor.his_first_name or ''} {donor.his_last_name or ''}".strip()
        her = f"{donor.her_first_name or ''} {donor.her_last_name or ''}".strip()
        lines.append(f"- Couple: {his} & {her}")
    lines.append(f"- Email: {donor.email}")
    if donor.phone:
        lines.append(f"- Phone: {donor.phone}")
    if donor.address:
        lines.append(f"- Address: {donor.address}")
    if donor.state:
        lines.append(f"- State: {donor.state}")
    if donor.current_stage_name:
        lines.append(f"- Current Stage: {donor.current_stage_name}")
    if donor.high_potential_donor is not None:
        lines.append(f"- High Potential: {'Yes' if donor.high_potential_donor else 'No'}")

    lines += ["", "Donation Summary:"]
    lines.append(f"- Total Donated: {_money(history['total_donated'])}")
    lines.append(f"- Number of Donations: {history['donation_count']}")
    if history["first_donation_date"]:
        lines.append(f"- First Donation: {_date(history['first_donation_date'])}")
    if history["last_donation_date"]:
        lines.append(f"- Last Donation: {_date(history['last_donation_date'])}")

    if history["donations"]:
        lines += ["", f"Recent Donations (last {RECENT_DONATIONS}):"]
        for donation in history["donations"][:RECENT_DONATIONS]:
            lines.append(f"- {_date(donation['date'])}: {_money(donation['amount'])} to {donation['project_name']}")

    notes = [n for n in (donor.notes or []) if isinstance(n, dict) and n.get("content")]
    if notes:
        lines += ["", "Notes:"]
        for note in notes:
            lines.append(f"- {note['content']} ({str(note.get('created_at', ''))[:10]})")

    research = history["research"]
    if research:
        lines += ["", "Research Insights:", f"Topic: {research.research_topic}"]
        data = research.research_data or {}
        if data.get("answer"):
            lines.append(f"Answer: {data['answer']}")
        if data.get("summaries"):
            first = data["summaries"][0]
            lines.append(f"Summary: {first.get('summary', first) if isinstance(first, dict) else first}")
        lines.append(f"Version: {research.version} ({'Live' if research.is_live else 'Historical'})")

    if history["communications"]:
        lines += ["", f"Recent Communications (last {RECENT_COMMUNICATIONS}):"]
        for comm in history["communications"][:RECENT_COMMUNICATIONS]:
            lines.append(
                f"- {_date(comm['occurred_at'])} [{comm['channel']}] {comm['direction']}: "
                f"{comm['content'][:COMMUNICATION_PREVIEW]}"
            )

    closed = (TodoStatus.COMPLETED.value, TodoStatus.CANCELLED.value)
    open_todos = [t for t in history["todos"] if t.status not in closed]
    if open_todos:
        lines += ["", "Active Tasks:"]
        for todo in open_todos:
            lines.append(f"- [{todo.priority}] {todo.title}: {todo.description}")
            if todo.due_date:
                lines.append(f"  Due: {_date(todo.due_date)}")

    return "\n".join(lines)


class WhatsAppDonorAnalysisService(BaseService):
    """Donor histories plus a model pass that answers a question about them."""

    def __init__(self, db: Optional[Session] = None, llm: Optional[BaseChatModel] = None):
        super().__init__(db)
        self._llm = llm

    def _get_llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_chat_model(temperature=0.7, max_tokens=2000)
        return self._llm

    def fetch_donor_history(self, donor_id: int, organization_id: str) -> Optional[Dict[str, Any]]:
        """Everything known about one donor of the organization, or None."""
        db = self._get_db()
        try:
            donor = (
                db.query(Donor)
                .filter(Donor.id == donor_id, Donor.organization_id == organization_id)
                .first()
            )
            if not donor:
                return None

            totals = (
                db.query(
                    func.coalesce(func.sum(Donation.amount), 0),
                    func.count(Donation.id),
                    func.min(Donation.date),
                    func.max(Donation.date),
                )
                .filter(Donation.donor_id == donor_id)
                .one()
            )

            donations = [
                {"amount": row.amount, "currency": row.currency, "date": row.date, "project_name": row.name}
                for row in (
                    db.query(Donation.amount, Donation.currency, Donation.date, Project.name)
                    .join(Project, Project.id == Donation.project_id)
                    .filter(Donation.donor_id == donor_id)
                    .order_by(Donation.date.desc())
                    .all()
                )
            ]

            communications = [
                {
                    "content": row.content,
                    "occurred_at": row.occurred_at,
                    "channel": row.channel,
                    "direction": "from donor" if row.from_donor_id == donor_id else "to donor",
                }
                for row in (
                    db.query(
                        CommunicationContent.content,
                        CommunicationContent.occurred_at,
                        CommunicationContent.from_donor_id,
                        CommunicationThread.channel,
                    )
                    .join(CommunicationThread, CommunicationThread.id == CommunicationContent.thread_id)
                    .filter(
                        CommunicationThread.organization_id == organization_id,
                        or_(
                            CommunicationContent.from_donor_id == donor_id,
                            CommunicationContent.to_donor_id == donor_id,
                        ),
                    )
                    .order_by(CommunicationContent.occurred_at.desc())
                    .all()
                )
            ]

            research = (
                db.query(PersonResearch)
                .filter(PersonResearch.donor_id == donor_id, PersonResearch.organization_id == organization_id)
                .order_by(PersonResearch.is_live.desc(), PersonResearch.updated_at.desc())
                .first()
            )

            todos = (
                db.query(Todo)
                .filter(Todo.donor_id == donor_id, Todo.organization_id == organization_id)
                .order_by(Todo.created_at.desc())
                .all()
            )

            return {
                "donor": donor,
                "total_donated": totals[0],
                "donation_count": totals[1],
                "first_donation_date": totals[2],
                "last_donation_date": totals[3],
                "donations": donations,
                "communications": communications,
                "research": research,
                "todos": todos,
            }
        finally:
            self._close_db(db)

    async def analyze_donors(
        self, donor_ids: List[int], question: str, organization_id: str
    ) -> Dict[str, Any]:
        """
        Answer a question about several donors.

        Returns:
            {success, analysis, donors_analyzed, tokens_used} or {success: False, error}
        """
        logger.info(f"[Donor Analysis] Analyzing {len(donor_ids)} donors for question: {question[:100]}")
        started = time.monotonic()

        profiles = []
        for donor_id in dict.fromkeys(donor_ids):
            history = self.fetch_donor_history(donor_id, organization_id)
            if history:
                profiles.append(format_donor_history(history))
        logger.info(
            f"[Donor Analysis] Loaded {len(profiles)} donor histories in "
            f"{int((time.monotonic() - started) * 1000)}ms"
        )

        if not profiles:
            return {"success": False, "error": "No valid donor data found for the provided IDs"}

        text, usage = await invoke_text(
            self._get_llm(),
            DONOR_ANALYSIS_PROMPT.format(donor_profiles="\n\n".join(profiles), question=question),
            system=DONOR_ANALYSIS_SYSTEM_PROMPT,
        )
        logger.info(f"[Donor Analysis] Analysis completed, {usage.total_tokens} tokens")
        return {
            "success": True,
            "analysis": text,
            "donors_analyzed": len(profiles),
            "tokens_used": usage.total_tokens,
        }
