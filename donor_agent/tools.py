"""
Tools for the WhatsApp donor assistant.

Tools are built per conversation so the organization, staff member and
phone number are fixed by the caller, never chosen by the model. Every
call is recorded in the staff activity log.
"""

import json
import logging
import time
from typing import Optional, List, Dict, Any
from langchain_core.language_models import BaseChatModel
from langchain_core.tools import BaseTool, tool
from sqlalchemy.orm import Session

from donor_crm.errors import CRMError
from donor_crm.models import FlexibleQueryType
from donor_crm.services.donor_service import DonorService
from donor_crm.services.whatsapp.donor_analysis_service import WhatsAppDonorAnalysisService
from donor_crm.services.whatsapp.query_tools_service import WhatsAppQueryToolsService
from donor_crm.services.whatsapp.sql_engine_service import WhatsAppSQLEngineService
from donor_crm.services.whatsapp.staff_logging_service import WhatsAppStaffLoggingService
from .prompts import build_sql_error_feedback

logger = logging.getLogger(__name__)

MAX_SQL_RETRIES = 2


def to_jsonable(value: Any) -> Any:
    """Dates and decimals as strings so results can go back to the model."""
    return json.loads(json.dumps(value, default=str))


def create_donor_tools(
    organization_id: str,
    staff_id: Optional[int],
    from_phone_number: str,
    db: Optional[Session] = None,
    query_tools: Optional[WhatsAppQueryToolsService] = None,
    sql_engine: Optional[WhatsAppSQLEngineService] = None,
    logging_service: Optional[WhatsAppStaffLoggingService] = None,
    analysis_service: Optional[WhatsAppDonorAnalysisService] = None,
    llm: Optional[BaseChatModel] = None,
) -> List[BaseTool]:
    """
    Build the assistant tools bound to one organization and staff member.
    """
    query_tools = query_tools or WhatsAppQueryToolsService(db)
    sql_engine = sql_engine or WhatsAppSQLEngineService(db)
    logging_service = logging_service or WhatsAppStaffLoggingService(db)
    analysis_service = analysis_service or WhatsAppDonorAnalysisService(db, llm=llm)

    def record(description: str, result: Any, started: float):
        logging_service.log_database_query(
            staff_id,
            organization_id,
            from_phone_number,
            description,
            result,
            int((time.monotonic() - started) * 1000),
        )

    # =========================================================================
    # DONOR LOOKUPS
    # =========================================================================

    @tool
    def find_donors(name: str, limit: int = 10) -> list:
        """
        Find donors whose name, display name or email contains the search text.

        Args:
            name: Full or partial name (or email) to search for
            limit: Maximum number of donors to return

        Returns:
            Donors with total donated (cents), donation count and last donation date
        """
        started = time.monotonic()
        result = to_jsonable(query_tools.find_donors_by_name(name, organization_id, limit))
        record(f"find_donors(name={name!r}, limit={limit})", result, started)
        return result

    @tool
    def get_donor_details(donor_id: int) -> dict:
        """
        Get the full record of one donor: contact details, notes, stage,
        assigned staff and donation totals.

        Args:
            donor_id: The donor ID
        """
        started = time.monotonic()
        details = query_tools.get_donor_details(donor_id, organization_id)
        result = to_jsonable(details) if details else {"error": f"Donor {donor_id} not found"}
        record(f"get_donor_details(donor_id={donor_id})", result, started)
        return result

    @tool
    def get_donation_history(donor_id: int, limit: int = 50) -> list:
        """
        Get the donations of one donor, newest first, with project names.
        Amounts are in cents.

        Args:
            donor_id: The donor ID
            limit: Maximum number of donations to return
        """
        started = time.monotonic()
        result = to_jsonable(query_tools.get_donation_history(donor_id, organization_id, limit))
        record(f"get_donation_history(donor_id={donor_id}, limit={limit})", result, started)
        return result

    @tool
    def get_donor_statistics() -> dict:
        """
        Get organization-wide totals: donors, donations, amount given
        (cents), average gift, high potential donors, couples and individuals.
        """
        started = time.monotonic()
        result = to_jsonable(query_tools.get_donor_statistics(organization_id))
        record("get_donor_statistics()", result, started)
        return result

    @tool
    def get_top_donors(limit: int = 10) -> list:
        """
        Get the donors who gave the most in total (cents).

        Args:
            limit: Number of donors to return
        """
        started = time.monotonic()
        result = to_jsonable(query_tools.get_top_donors(organization_id, limit))
        record(f"get_top_donors(limit={limit})", result, started)
        return result

    @tool
    def flexible_query(query_type: str, filters: Optional[Dict[str, Any]] = None, limit: int = 50) -> list:
        """
        Run one of the prepared donation queries.

        Args:
            query_type: One of donor-donations-by-project (filters: donor_name,
                project_name), donor-donations-by-date (donor_name, start_date,
                end_date as YYYY-MM-DD), project-donations (project_name,
                start_date, end_date), donor-project-history (donor_name),
                custom-donor-search (name, email, phone, state, is_couple,
                high_potential, assigned_staff)
            filters: Filter values for the chosen query type
            limit: Maximum number of rows
        """
        started = time.monotonic()
        try:
            result = to_jsonable(query_tools.execute_flexible_query(
                query_type, organization_id, filters or {}, limit
            ))
        except ValueError as e:
            allowed = ", ".join(t.value for t in FlexibleQueryType)
            return [{"error": str(e), "allowed_query_types": allowed}]
        record(f"flexible_query(type={query_type!r}, filters={filters!r})", result, started)
        return result

    # =========================================================================
    # SQL
    # =========================================================================

    @tool
    def execute_sql(query: str, retry_attempt: int = 0) -> Any:
        """
        Execute a read-only SQL SELECT against the donor database. Use it for
        questions the other tools cannot answer. The query must filter on
        organization_id. If it fails you get the error and a suggestion:
        fix the query and call again with retry_attempt increased by one.

        Args:
            query: A single SELECT statement
            retry_attempt: How many times this query has already been retried
        """
        logger.info(f"[Donor Agent] Executing SQL query (attempt {retry_attempt + 1}): {query}")
        started = time.monotonic()
        result = sql_engine.execute_raw_sql(query, organization_id)

        if result["success"]:
            rows = to_jsonable(result["data"])
            record(query, rows, started)
            logger.info(f"[Donor Agent] SQL query returned {len(rows)} rows")
            return rows

        error = result["error"]
        logger.warning(f"[Donor Agent] SQL error ({error['type']}): {error['message']}")
        logging_service.log_error(
            staff_id,
            organization_id,
            from_phone_number,
            f"SQL Error (attempt {retry_attempt + 1}): {error['message']}",
            error,
            "sql_execution_error",
        )

        if retry_attempt >= MAX_SQL_RETRIES:
            suggestion = f" Suggestion: {error['suggestion']}" if error.get("suggestion") else ""
            raise ValueError(
                f"SQL query failed after {MAX_SQL_RETRIES + 1} attempts. "
                f"Last error: {error['message']}{suggestion}"
            )

        return {
            "error": True,
            "error_type": error["type"],
            "error_message": error["message"],
            "suggestion": error.get("suggestion"),
            "feedback": build_sql_error_feedback(error, query, retry_attempt),
            "failed_query": query,
            "retry_attempt": retry_attempt + 1,
        }

    # =========================================================================
    # NOTES
    # =========================================================================

    @tool
    def add_donor_note(donor_id: int, note_content: str) -> dict:
        """
        Add a note to a donor's record, e.g. "Daughter attends Harvard" or
        "Prefers to be contacted by email". The note is timestamped and
        attributed to the staff member.

        Args:
            donor_id: The donor ID (look it up with find_donors first)
            note_content: The note text
        """
        started = time.monotonic()
        try:
            donor = DonorService(db).add_note(
                organization_id, donor_id, note_content, user_id=f"staff_{staff_id}"
            )
        except CRMError:
            return {"success": False, "error": f"Donor with ID {donor_id} not found in your organization."}

        donor_name = donor.display_name or f"{donor.first_name} {donor.last_name}".strip()
        result = {
            "success": True,
            "donor_id": donor_id,
            "donor_name": donor_name,
            "note_added": note_content,
            "total_notes": len(donor.notes or []),
        }
        record(f"add_donor_note(donor_id={donor_id})", result, started)
        logger.info(f"[Donor Agent] Added note to donor {donor_id} ({donor_name})")
        return result

    # =========================================================================
    # ANALYSIS AND CLARIFICATION
    # =========================================================================

    @tool
    async def analyze_donors(donor_ids: List[int], question: str) -> dict:
        """
        Answer an open-ended question about one or more donors using their
        full history: donations, notes, research, communications and open
        tasks. Use it for "what should I talk to John about?" or "how do
        these donors compare?". Look the donors up with find_donors first.

        Args:
            donor_ids: IDs of the donors to analyze
            question: The question to answer about them
        """
        started = time.monotonic()
        try:
            result = await analysis_service.analyze_donors(donor_ids, question, organization_id)
        except Exception as e:
            logger.error(f"[Donor Agent] Donor analysis failed: {e}")
            return {"success": False, "error": f"Failed to analyze donors: {e}"}
        record(f"analyze_donors(donor_ids={donor_ids}, question={question[:100]!r})", result, started)
        return result

    @tool
    def ask_clarification(question: str, context: str = "") -> dict:
        """
        Ask the staff member a clarifying question instead of guessing, e.g.
        when several donors match a name or the request is ambiguous. Put
        the question in your reply and wait for their answer.

        Args:
            question: The question to ask
            context: What is unclear, e.g. the matching donors
        """
        started = time.monotonic()
        result = {"clarification_asked": True, "question": question, "context": context}
        record(f"ask_clarification(question={question!r})", result, started)
        logger.info(f"[Donor Agent] Asking for clarification: {question}")
        return result

    return [
        find_donors,
        get_donor_details,
        get_donation_history,
        get_donor_statistics,
        get_top_donors,
        flexible_query,
        execute_sql,
        add_donor_note,
        analyze_donors,
        ask_clarification,
    ]
