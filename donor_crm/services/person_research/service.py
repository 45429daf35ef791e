"""
Person Research Service - donor research on top of the research pipeline

Builds the research topic from a donor and their organization, runs the
orchestrator, and stores the result as a new live version.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy import exists
from sqlalchemy.orm import Session

from database.models import Donor, Organization, PersonResearch
from ..base import BaseService
from ...errors import CRMError, ErrorCode, not_found
from ...prompts import DONOR_RESEARCH_TOPIC
from ...utils.donor_name_formatter import format_donor_name
from .database_service import PersonResearchDatabaseService
from .orchestrator import PersonResearchOrchestrator
from .types import DonorInfo

logger = logging.getLogger(__name__)


def donor_location(donor: Donor) -> Optional[str]:
    parts = [p.strip() for p in (donor.address, donor.state) if p and p.strip()]
    return ", ".join(parts) or None


def donor_notes_text(donor: Donor) -> Optional[str]:
    notes = [n.get("content", "").strip() for n in (donor.notes or []) if isinstance(n, dict)]
    notes = [n for n in notes if n]
    return "; ".join(notes) or None


def build_donor_research_topic(donor: Donor, organization: Organization) -> str:
    location = donor_location(donor)
    notes = donor_notes_text(donor)
    org_description = organization.short_description or organization.description or organization.name
    return DONOR_RESEARCH_TOPIC.format(
        donor_name=format_donor_name(donor),
        address_info=f" living in {location}" if location else "",
        email_info=f" with email {donor.email}" if donor.email else "",
        org_description=org_description,
        notes_info=f" Additional information: {notes}" if notes else "",
    )


def build_donor_info(donor: Donor) -> DonorInfo:
    return DonorInfo(
        full_name=f"{donor.first_name} {donor.last_name}".strip(),
        location=donor_location(donor),
        state=donor.state,
        address=donor.address,
        email=donor.email,
        notes=donor_notes_text(donor),
    )


def select_donors_for_research(
    db: Session,
    organization_id: str,
    donor_ids: Optional[List[int]] = None,
    limit: Optional[int] = None,
) -> List[int]:
    """The given donors of the organization, or every donor without research."""
    query = db.query(Donor.id).filter(Donor.organization_id == organization_id)
    if donor_ids:
        query = query.filter(Donor.id.in_(donor_ids))
    else:
        query = query.filter(~exists().where(PersonResearch.donor_id == Donor.id))
    query = query.order_by(Donor.id)
    if limit:
        query = query.limit(limit)
    return [row.id for row in query.all()]


class PersonResearchService(BaseService):
    """
    Donor research: run, read versions, bulk start, statistics.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        orchestrator: Optional[PersonResearchOrchestrator] = None,
        executor=None,
    ):
        super().__init__(db)
        self._orchestrator = orchestrator
        self._executor = executor

    def _get_orchestrator(self) -> PersonResearchOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = PersonResearchOrchestrator()
        return self._orchestrator

    def _get_donor(self, db: Session, organization_id: str, donor_id: int) -> Donor:
        donor = db.query(Donor).filter(Donor.id == donor_id, Donor.organization_id == organization_id).first()
        if not donor:
            raise not_found("Donor")
        return donor

    # =========================================================================
    # Research
    # =========================================================================

    async def conduct_donor_research(
        self, organization_id: str, user_id: str, donor_id: int
    ) -> Dict[str, Any]:
        """
        Research one donor and save the result as the live version.

        Returns:
            The saved research row as a dict
        """
        db = self._get_db()
        try:
            donor = self._get_donor(db, organization_id, donor_id)
            organization = db.query(Organization).filter(Organization.id == organization_id).first()
            if not organization:
                raise not_found("Organization")

            topic = build_donor_research_topic(donor, organization)
            donor_info = build_donor_info(donor)
            logger.info(f"[Person Research] Researching donor {donor_id} ({donor_info.full_name})")

            result = await self._get_orchestrator().conduct_person_research(
                research_topic=topic,
                organization_id=organization_id,
                user_id=user_id,
                donor_info=donor_info,
            )
            return PersonResearchDatabaseService(db).save_person_research(
                donor_id, organization_id, user_id, result, set_as_live=True
            )
        finally:
            self._close_db(db)

    def get_donor_research(self, organization_id: str, donor_id: int) -> Optional[Dict[str, Any]]:
        """Live research for a donor, or None if never researched."""
        db = self._get_db()
        try:
            self._get_donor(db, organization_id, donor_id)
            return PersonResearchDatabaseService(db).get_live_research(donor_id, organization_id)
        finally:
            self._close_db(db)

    def get_all_donor_research_versions(self, organization_id: str, donor_id: int) -> List[Dict[str, Any]]:
        db = self._get_db()
        try:
            self._get_donor(db, organization_id, donor_id)
            return PersonResearchDatabaseService(db).get_all_versions(donor_id, organization_id)
        finally:
            self._close_db(db)

    def get_donor_research_version(self, organization_id: str, donor_id: int, version: int) -> Dict[str, Any]:
        db = self._get_db()
        try:
            self._get_donor(db, organization_id, donor_id)
            row = PersonResearchDatabaseService(db).get_by_version(donor_id, organization_id, version)
            if not row:
                raise not_found("Research version")
            return row
        finally:
            self._close_db(db)

    def set_live_version(self, organization_id: str, donor_id: int, version: int) -> Dict[str, Any]:
        db = self._get_db()
        try:
            self._get_donor(db, organization_id, donor_id)
            return PersonResearchDatabaseService(db).set_live_version(donor_id, organization_id, version)
        finally:
            self._close_db(db)

    # =========================================================================
    # Bulk
    # =========================================================================

    async def start_bulk_donor_research(
        self,
        organization_id: str,
        user_id: str,
        donor_ids: Optional[List[int]] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Submit the bulk research job.

        Raises:
            CRMError: BAD_REQUEST when no donor needs research
        """
        from ...jobs.bulk_research_job import run_bulk_donor_research

        db = self._get_db()
        try:
            selected = select_donors_for_research(db, organization_id, donor_ids, limit)
        finally:
            self._close_db(db)

        if not selected:
            raise CRMError(ErrorCode.BAD_REQUEST, "No donors found that need research")

        executor = self._executor
        if executor is None:
            from background_job_executor import get_executor
            executor = await get_executor()

        job_id = f"bulk_research_{organization_id}_{int(datetime.utcnow().timestamp())}"
        executor.submit(job_id, run_bulk_donor_research, {
            "organization_id": organization_id,
            "user_id": user_id,
            "donor_ids": selected,
        })
        logger.info(f"[Person Research] Bulk research job {job_id} started for {len(selected)} donors")
        return {"job_id": job_id, "donors_to_research": len(selected)}

    def get_research_statistics(self, organization_id: str) -> Dict[str, Any]:
        db = self._get_db()
        try:
            total = db.query(Donor).filter(Donor.organization_id == organization_id).count()
            researched = (
                db.query(Donor)
                .filter(
                    Donor.organization_id == organization_id,
                    exists().where(PersonResearch.donor_id == Donor.id),
                )
                .count()
            )
            return {
                "total_donors": total,
                "researched_donors": researched,
                "unresearched_donors": total - researched,
                "research_percentage": round(researched / total * 100) if total else 0,
            }
        finally:
            self._close_db(db)


def get_person_research_service(db: Optional[Session] = None) -> PersonResearchService:
    """Get person research service instance."""
    return PersonResearchService(db)
