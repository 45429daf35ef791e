"""
Bulk email generation job

Generates one email per selected donor for a campaign session. Donors that
already have an email in the session are skipped, so a retried job only
fills the gaps.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Any, Optional, List

from sqlalchemy.orm import Session, selectinload

from database.database import SessionLocal
from database.models import (
    EmailGenerationSession,
    GeneratedEmail,
    Organization,
    User,
    Donor,
    Donation,
    Staff,
)
from ..config import get_crm_settings
from ..models import SessionStatus, EmailStatus
from ..services.communication_service import CommunicationService
from ..services.email_generation_service import EmailGenerationService, GeneratedEmailResult

logger = logging.getLogger(__name__)

# Past threads and messages per thread given to the model
COMMUNICATION_THREADS_LIMIT = 5
MESSAGES_PER_THREAD = 10


def _load_signature(db: Session, organization_id: str, user: Optional[User]) -> Optional[str]:
    primary = (
        db.query(Staff)
        .filter(Staff.organization_id == organization_id, Staff.is_primary.is_(True))
        .first()
    )
    if primary and primary.signature:
        return primary.signature
    return user.email_signature if user else None


def _load_communications(db: Session, organization_id: str, donor_id: int) -> List[List[str]]:
    threads = CommunicationService(db).get_donor_communication_history(
        organization_id, donor_id, limit=COMMUNICATION_THREADS_LIMIT, messages_per_thread=MESSAGES_PER_THREAD
    )
    # messages come newest first
    return [[m.content for m in reversed(t.messages or [])] for t in threads]


async def run_bulk_email_generation(
    payload: Dict[str, Any],
    db: Optional[Session] = None,
    generator: Optional[EmailGenerationService] = None,
) -> Dict[str, Any]:
    """
    Generate emails for a campaign session.

    Payload keys: session_id, organization_id, user_id, instruction,
    refined_instruction (optional), selected_donor_ids, preview_donor_ids.

    Returns:
        {status, session_id, emails_generated, donors_failed, failed_donors}
    """
    owns_db = db is None
    db = db or SessionLocal()
    generator = generator or EmailGenerationService()
    session_id = payload["session_id"]
    organization_id = payload["organization_id"]

    try:
        session = db.query(EmailGenerationSession).filter(EmailGenerationSession.id == session_id).first()
        if not session:
            raise ValueError(f"Email generation session {session_id} not found")

        session.status = SessionStatus.IN_PROGRESS.value
        session.error_message = None
        db.commit()

        try:
            organization = db.query(Organization).filter(Organization.id == organization_id).first()
            if not organization:
                raise ValueError(f"Organization {organization_id} not found")

            user = db.query(User).filter(User.id == payload.get("user_id")).first()
            signature = _load_signature(db, organization_id, user)
            instruction = payload.get("refined_instruction") or payload["instruction"]
            preview_ids = set(payload.get("preview_donor_ids") or [])

            existing = {
                row.donor_id
                for row in db.query(GeneratedEmail.donor_id).filter(GeneratedEmail.session_id == session_id)
            }
            donor_ids = [d for d in payload["selected_donor_ids"] if d not in existing]
            donors = (
                db.query(Donor)
                .options(selectinload(Donor.donations).selectinload(Donation.project))
                .filter(Donor.organization_id == organization_id, Donor.id.in_(donor_ids))
                .all()
            )
            logger.info(
                f"[Bulk Email] Session {session_id}: generating {len(donors)} emails "
                f"({len(existing)} already generated)"
            )

            async def generate(donor: Donor) -> GeneratedEmailResult:
                return await generator.generate_email(
                    donor=donor,
                    instruction=instruction,
                    organization=organization,
                    donations=list(donor.donations),
                    communications=_load_communications(db, organization_id, donor.id),
                    website_summary=organization.website_summary,
                    signature=signature,
                    user_memory=user.memory if user else None,
                    organization_memory=organization.memory,
                )

            batch_size = max(1, get_crm_settings().bulk_email_concurrency)
            failed_donors = []
            generated = 0
            for start in range(0, len(donors), batch_size):
                batch = donors[start:start + batch_size]
                results = await asyncio.gather(*(generate(d) for d in batch), return_exceptions=True)

                for donor, result in zip(batch, results):
                    if isinstance(result, Exception):
                        logger.error(f"[Bulk Email] Donor {donor.id} failed: {result}")
                        failed_donors.append({"donor_id": donor.id, "error": str(result)})
                        continue
                    db.add(GeneratedEmail(
                        session_id=session_id,
                        donor_id=donor.id,
                        subject=result.subject,
                        structured_content=result.structured_content,
                        reference_contexts=result.reference_contexts,
                        is_preview=donor.id in preview_ids,
                        status=EmailStatus.PENDING_APPROVAL.value,
                    ))
                    generated += 1
                db.commit()

            session.status = SessionStatus.COMPLETED.value
            session.completed_donors = (
                db.query(GeneratedEmail).filter(GeneratedEmail.session_id == session_id).count()
            )
            session.refined_instruction = instruction
            session.completed_at = datetime.utcnow()
            db.commit()

            logger.info(
                f"[Bulk Email] Session {session_id} completed: {generated} generated, "
                f"{len(failed_donors)} failed"
            )
            return {
                "status": "success",
                "session_id": session_id,
                "emails_generated": generated,
                "donors_failed": len(failed_donors),
                "failed_donors": failed_donors,
            }

        except Exception as e:
            db.rollback()
            session.status = SessionStatus.FAILED.value
            session.error_message = str(e)
            db.commit()
            logger.error(f"[Bulk Email] Session {session_id} failed: {e}")
            raise
    finally:
        if owns_db:
            db.close()
