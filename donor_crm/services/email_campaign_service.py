"""
Email Campaign Service - generation sessions and their generated emails

A campaign is an EmailGenerationSession: an instruction plus the selected
donors. Launching it submits the bulk email job to the background executor.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy import func, case
from sqlalchemy.orm import Session

from database.models import EmailGenerationSession, GeneratedEmail, Donor, Template
from .base import BaseService
from ..errors import CRMError, ErrorCode, not_found
from ..jobs.bulk_email_job import run_bulk_email_generation
from ..models import (
    CreateSessionRequest,
    UpdateCampaignRequest,
    RegenerateRequest,
    UpdateEmailRequest,
    SessionStatus,
    EmailStatus,
    SessionResponse,
    SessionDetailResponse,
    CampaignSummary,
    GeneratedEmailResponse,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {SessionStatus.FAILED.value, SessionStatus.COMPLETED.value}


class EmailCampaignService(BaseService):
    """
    Campaign sessions, launch/retry, and email review.
    """

    def __init__(self, db: Optional[Session] = None, executor=None):
        super().__init__(db)
        self._executor = executor

    async def _get_executor(self):
        if self._executor is None:
            from background_job_executor import get_executor
            self._executor = await get_executor()
        return self._executor

    def _get_session(self, db: Session, organization_id: str, session_id: int) -> EmailGenerationSession:
        session = (
            db.query(EmailGenerationSession)
            .filter(
                EmailGenerationSession.id == session_id,
                EmailGenerationSession.organization_id == organization_id,
            )
            .first()
        )
        if not session:
            raise not_found("Email generation session")
        return session

    def _get_email(self, db: Session, organization_id: str, email_id: int) -> GeneratedEmail:
        email = (
            db.query(GeneratedEmail)
            .join(EmailGenerationSession, GeneratedEmail.session_id == EmailGenerationSession.id)
            .filter(
                GeneratedEmail.id == email_id,
                EmailGenerationSession.organization_id == organization_id,
            )
            .first()
        )
        if not email:
            raise not_found("Email")
        return email

    def _check_donors(self, db: Session, organization_id: str, donor_ids: List[int]):
        found = (
            db.query(Donor.id)
            .filter(Donor.organization_id == organization_id, Donor.id.in_(donor_ids))
            .count()
        )
        if found != len(set(donor_ids)):
            raise CRMError(ErrorCode.BAD_REQUEST, "One or more donors not found in this organization")

    def _check_template(self, db: Session, organization_id: str, template_id: Optional[int]):
        if template_id is None:
            return
        exists = (
            db.query(Template.id)
            .filter(Template.id == template_id, Template.organization_id == organization_id)
            .first()
        )
        if not exists:
            raise CRMError(ErrorCode.BAD_REQUEST, "Template not found in this organization")

    async def _launch(self, db: Session, session: EmailGenerationSession, user_id: str) -> SessionResponse:
        executor = await self._get_executor()
        payload = {
            "session_id": session.id,
            "organization_id": session.organization_id,
            "user_id": user_id,
            "instruction": session.instruction,
            "refined_instruction": session.refined_instruction,
            "selected_donor_ids": list(session.selected_donor_ids or []),
            "preview_donor_ids": list(session.preview_donor_ids or []),
        }
        job_id = f"bulk_email_{session.id}_{int(datetime.utcnow().timestamp())}"
        executor.submit(job_id, run_bulk_email_generation, payload)

        session.job_id = job_id
        session.status = SessionStatus.PENDING.value
        session.error_message = None
        db.commit()
        db.refresh(session)
        logger.info(f"Launched campaign {session.id} as job {job_id}")
        return SessionResponse.model_validate(session)

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(self, organization_id: str, user_id: str, data: CreateSessionRequest) -> SessionResponse:
        db = self._get_db()
        try:
            self._check_donors(db, organization_id, data.selected_donor_ids)
            self._check_template(db, organization_id, data.template_id)

            session = EmailGenerationSession(
                organization_id=organization_id,
                user_id=user_id,
                template_id=data.template_id,
                job_name=data.job_name,
                instruction=data.instruction,
                refined_instruction=data.refined_instruction,
                chat_history=data.chat_history,
                selected_donor_ids=data.selected_donor_ids,
                preview_donor_ids=data.preview_donor_ids,
                status=SessionStatus.PENDING.value,
                total_donors=len(data.selected_donor_ids),
                completed_donors=0,
            )
            db.add(session)
            db.commit()
            db.refresh(session)
            logger.info(f"Created campaign {session.id} '{data.job_name}' for {session.total_donors} donors")
            return SessionResponse.model_validate(session)
        finally:
            self._close_db(db)

    async def launch_campaign(self, organization_id: str, user_id: str, session_id: int) -> SessionResponse:
        """Submit the bulk email job for a session."""
        db = self._get_db()
        try:
            session = self._get_session(db, organization_id, session_id)
            if session.status in (SessionStatus.IN_PROGRESS.value, SessionStatus.GENERATING.value):
                raise CRMError(ErrorCode.BAD_REQUEST, "Campaign is already generating")
            return await self._launch(db, session, user_id)
        finally:
            self._close_db(db)

    def get_session(self, organization_id: str, session_id: int) -> SessionDetailResponse:
        """Session with all of its generated emails."""
        db = self._get_db()
        try:
            session = self._get_session(db, organization_id, session_id)
            emails = (
                db.query(GeneratedEmail)
                .filter(GeneratedEmail.session_id == session_id)
                .order_by(GeneratedEmail.id)
                .all()
            )
            return SessionDetailResponse(
                session=SessionResponse.model_validate(session),
                emails=[GeneratedEmailResponse.model_validate(e) for e in emails],
            )
        finally:
            self._close_db(db)

    def get_session_status(self, organization_id: str, session_id: int) -> Dict[str, Any]:
        db = self._get_db()
        try:
            session = self._get_session(db, organization_id, session_id)
            return {
                "id": session.id,
                "status": session.status,
                "job_id": session.job_id,
                "total_donors": session.total_donors,
                "completed_donors": session.completed_donors,
                "error_message": session.error_message,
                "completed_at": session.completed_at,
            }
        finally:
            self._close_db(db)

    def list_campaigns(
        self,
        organization_id: str,
        status: Optional[SessionStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """Campaigns newest first, with sent and total email counts."""
        db = self._get_db()
        try:
            query = db.query(EmailGenerationSession).filter(
                EmailGenerationSession.organization_id == organization_id
            )
            if status:
                query = query.filter(EmailGenerationSession.status == status.value)

            total_count = query.count()
            sessions = (
                query.order_by(EmailGenerationSession.created_at.desc(), EmailGenerationSession.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )

            counts = {}
            if sessions:
                rows = (
                    db.query(
                        GeneratedEmail.session_id,
                        func.count(GeneratedEmail.id),
                        func.sum(case((GeneratedEmail.is_sent.is_(True), 1), else_=0)),
                    )
                    .filter(GeneratedEmail.session_id.in_([s.id for s in sessions]))
                    .group_by(GeneratedEmail.session_id)
                    .all()
                )
                counts = {row[0]: (row[1], row[2] or 0) for row in rows}

            campaigns = []
            for session in sessions:
                total, sent = counts.get(session.id, (0, 0))
                summary = CampaignSummary.model_validate(session)
                summary.total_emails = total
                summary.sent_emails = int(sent)
                campaigns.append(summary)

            return {"campaigns": campaigns, "total_count": total_count}
        finally:
            self._close_db(db)

    def update_campaign(
        self, organization_id: str, session_id: int, data: UpdateCampaignRequest
    ) -> SessionResponse:
        db = self._get_db()
        try:
            session = self._get_session(db, organization_id, session_id)
            values = data.model_dump(exclude_unset=True)

            if values.get("selected_donor_ids") is not None:
                self._check_donors(db, organization_id, values["selected_donor_ids"])
                session.total_donors = len(values["selected_donor_ids"])
            if "template_id" in values:
                self._check_template(db, organization_id, values["template_id"])

            for key, value in values.items():
                if value is not None or key == "template_id":
                    setattr(session, key, value)
            db.commit()
            db.refresh(session)
            return SessionResponse.model_validate(session)
        finally:
            self._close_db(db)

    def delete_campaign(self, organization_id: str, session_id: int) -> bool:
        """Delete a campaign and its generated emails."""
        db = self._get_db()
        try:
            db.delete(self._get_session(db, organization_id, session_id))
            db.commit()
            logger.info(f"Deleted campaign {session_id}")
            return True
        finally:
            self._close_db(db)

    async def regenerate_all_emails(
        self, organization_id: str, user_id: str, session_id: int, data: RegenerateRequest
    ) -> SessionResponse:
        """Delete the unsent emails and generate them again."""
        db = self._get_db()
        try:
            session = self._get_session(db, organization_id, session_id)
            if data.instruction:
                session.instruction = data.instruction
                session.refined_instruction = None
            if data.chat_history is not None:
                session.chat_history = data.chat_history

            deleted = (
                db.query(GeneratedEmail)
                .filter(GeneratedEmail.session_id == session_id, GeneratedEmail.is_sent.is_(False))
                .delete(synchronize_session=False)
            )
            session.completed_donors = (
                db.query(GeneratedEmail).filter(GeneratedEmail.session_id == session_id).count()
            )
            session.completed_at = None
            db.commit()
            logger.info(f"Regenerating campaign {session_id}: deleted {deleted} unsent emails")
            return await self._launch(db, session, user_id)
        finally:
            self._close_db(db)

    async def retry_campaign(self, organization_id: str, user_id: str, session_id: int) -> SessionResponse:
        """Generate emails only for the donors that do not have one yet."""
        db = self._get_db()
        try:
            session = self._get_session(db, organization_id, session_id)
            if session.status not in RETRYABLE_STATUSES:
                raise CRMError(ErrorCode.BAD_REQUEST, "Only failed or completed campaigns can be retried")

            generated = db.query(GeneratedEmail).filter(GeneratedEmail.session_id == session_id).count()
            if generated >= len(session.selected_donor_ids or []):
                raise CRMError(ErrorCode.BAD_REQUEST, "All emails have already been generated")

            logger.info(f"Retrying campaign {session_id}: {generated}/{session.total_donors} emails exist")
            return await self._launch(db, session, user_id)
        finally:
            self._close_db(db)

    # =========================================================================
    # Emails
    # =========================================================================

    def get_email_status(self, organization_id: str, email_id: int) -> Dict[str, Any]:
        db = self._get_db()
        try:
            email = self._get_email(db, organization_id, email_id)
            return {
                "id": email.id,
                "status": email.status,
                "is_sent": email.is_sent,
                "sent_at": email.sent_at,
            }
        finally:
            self._close_db(db)

    def update_email(
        self, organization_id: str, email_id: int, data: UpdateEmailRequest
    ) -> GeneratedEmailResponse:
        """Edit an unsent email."""
        db = self._get_db()
        try:
            email = self._get_email(db, organization_id, email_id)
            if email.is_sent:
                raise CRMError(ErrorCode.BAD_REQUEST, "Sent emails cannot be edited")

            email.subject = data.subject
            email.structured_content = [p.model_dump() for p in data.structured_content]
            if data.reference_contexts is not None:
                email.reference_contexts = data.reference_contexts
            db.commit()
            db.refresh(email)
            return GeneratedEmailResponse.model_validate(email)
        finally:
            self._close_db(db)

    def update_email_status(
        self, organization_id: str, email_id: int, status: EmailStatus
    ) -> GeneratedEmailResponse:
        db = self._get_db()
        try:
            email = self._get_email(db, organization_id, email_id)
            email.status = status.value
            db.commit()
            db.refresh(email)
            return GeneratedEmailResponse.model_validate(email)
        finally:
            self._close_db(db)


def get_email_campaign_service(db: Optional[Session] = None, executor=None) -> EmailCampaignService:
    """Get email campaign service instance."""
    return EmailCampaignService(db, executor)
