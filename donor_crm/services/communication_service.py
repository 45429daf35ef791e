"""
Communication Service - logged threads of email, phone and text exchanges

A thread has staff and donor participants and an ordered list of
messages. Every message has exactly one sender, a staff member or a donor.
"""

import logging
from datetime import datetime
from typing import Optional, List
from sqlalchemy import exists
from sqlalchemy.orm import Session, selectinload

from database.models import (
    CommunicationThread,
    CommunicationContent,
    CommunicationThreadStaff,
    CommunicationThreadDonor,
    Staff,
    Donor,
)
from .base import BaseService
from ..errors import CRMError, ErrorCode, not_found
from ..models import (
    ThreadCreate,
    MessageCreate,
    ThreadResponse,
    ThreadMessageResponse,
    CommunicationChannel,
)

logger = logging.getLogger(__name__)


class CommunicationService(BaseService):
    """
    Service for communication threads and messages.
    """

    def _get_thread(self, db: Session, organization_id: str, thread_id: int) -> CommunicationThread:
        thread = (
            db.query(CommunicationThread)
            .options(
                selectinload(CommunicationThread.staff_links),
                selectinload(CommunicationThread.donor_links),
            )
            .filter(
                CommunicationThread.id == thread_id,
                CommunicationThread.organization_id == organization_id,
            )
            .first()
        )
        if not thread:
            raise not_found("Communication thread")
        return thread

    def _latest_messages(self, db: Session, thread_id: int, limit: int) -> List[CommunicationContent]:
        return (
            db.query(CommunicationContent)
            .filter(CommunicationContent.thread_id == thread_id)
            .order_by(CommunicationContent.occurred_at.desc(), CommunicationContent.id.desc())
            .limit(limit)
            .all()
        )

    def _to_response(
        self,
        db: Session,
        thread: CommunicationThread,
        include_staff: bool = True,
        include_donors: bool = True,
        include_latest_message: bool = False,
        messages_limit: Optional[int] = None,
    ) -> ThreadResponse:
        response = ThreadResponse(
            id=thread.id,
            channel=thread.channel,
            staff_ids=sorted(link.staff_id for link in thread.staff_links) if include_staff else [],
            donor_ids=sorted(link.donor_id for link in thread.donor_links) if include_donors else [],
            created_at=thread.created_at,
            updated_at=thread.updated_at,
        )
        if include_latest_message:
            latest = self._latest_messages(db, thread.id, 1)
            if latest:
                response.latest_message = ThreadMessageResponse.model_validate(latest[0])
        if messages_limit:
            response.messages = [
                ThreadMessageResponse.model_validate(m)
                for m in self._latest_messages(db, thread.id, messages_limit)
            ]
        return response

    def _check_participants(
        self, db: Session, organization_id: str, staff_ids: List[int], donor_ids: List[int]
    ):
        if staff_ids:
            found = db.query(Staff.id).filter(
                Staff.organization_id == organization_id, Staff.id.in_(staff_ids)
            ).count()
            if found != len(set(staff_ids)):
                raise CRMError(ErrorCode.BAD_REQUEST, "Staff member not found in this organization")
        if donor_ids:
            found = db.query(Donor.id).filter(
                Donor.organization_id == organization_id, Donor.id.in_(donor_ids)
            ).count()
            if found != len(set(donor_ids)):
                raise CRMError(ErrorCode.BAD_REQUEST, "Donor not found in this organization")

    # =========================================================================
    # Threads
    # =========================================================================

    def create_thread(self, organization_id: str, data: ThreadCreate) -> ThreadResponse:
        db = self._get_db()
        try:
            self._check_participants(db, organization_id, data.staff_ids, data.donor_ids)

            thread = CommunicationThread(organization_id=organization_id, channel=data.channel.value)
            for staff_id in set(data.staff_ids):
                thread.staff_links.append(CommunicationThreadStaff(staff_id=staff_id))
            for donor_id in set(data.donor_ids):
                thread.donor_links.append(CommunicationThreadDonor(donor_id=donor_id))
            db.add(thread)
            db.commit()

            logger.info(f"Created {data.channel.value} thread {thread.id} in organization {organization_id}")
            return self._to_response(db, self._get_thread(db, organization_id, thread.id))
        finally:
            self._close_db(db)

    def get_thread(
        self,
        organization_id: str,
        thread_id: int,
        include_staff: bool = True,
        include_donors: bool = True,
        include_latest_message: bool = False,
    ) -> ThreadResponse:
        db = self._get_db()
        try:
            thread = self._get_thread(db, organization_id, thread_id)
            return self._to_response(db, thread, include_staff, include_donors, include_latest_message)
        finally:
            self._close_db(db)

    def list_threads(
        self,
        organization_id: str,
        channel: Optional[CommunicationChannel] = None,
        staff_id: Optional[int] = None,
        donor_id: Optional[int] = None,
        limit: int = 10,
        offset: int = 0,
        include_latest_message: bool = True,
    ) -> List[ThreadResponse]:
        """Threads of the organization, most recently active first."""
        db = self._get_db()
        try:
            query = (
                db.query(CommunicationThread)
                .options(
                    selectinload(CommunicationThread.staff_links),
                    selectinload(CommunicationThread.donor_links),
                )
                .filter(CommunicationThread.organization_id == organization_id)
            )
            if channel:
                query = query.filter(CommunicationThread.channel == channel.value)
            if staff_id is not None:
                query = query.filter(
                    exists().where(
                        CommunicationThreadStaff.thread_id == CommunicationThread.id,
                        CommunicationThreadStaff.staff_id == staff_id,
                    )
                )
            if donor_id is not None:
                query = query.filter(
                    exists().where(
                        CommunicationThreadDonor.thread_id == CommunicationThread.id,
                        CommunicationThreadDonor.donor_id == donor_id,
                    )
                )

            threads = (
                query.order_by(CommunicationThread.updated_at.desc(), CommunicationThread.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [
                self._to_response(db, t, include_latest_message=include_latest_message) for t in threads
            ]
        finally:
            self._close_db(db)

    def get_donor_communication_history(
        self,
        organization_id: str,
        donor_id: int,
        limit: int = 25,
        messages_per_thread: int = 10,
    ) -> List[ThreadResponse]:
        """A donor's threads with their latest messages, most recent first."""
        db = self._get_db()
        try:
            threads = (
                db.query(CommunicationThread)
                .options(
                    selectinload(CommunicationThread.staff_links),
                    selectinload(CommunicationThread.donor_links),
                )
                .filter(
                    CommunicationThread.organization_id == organization_id,
                    exists().where(
                        CommunicationThreadDonor.thread_id == CommunicationThread.id,
                        CommunicationThreadDonor.donor_id == donor_id,
                    ),
                )
                .order_by(CommunicationThread.updated_at.desc(), CommunicationThread.id.desc())
                .limit(limit)
                .all()
            )
            return [self._to_response(db, t, messages_limit=messages_per_thread) for t in threads]
        finally:
            self._close_db(db)

    # =========================================================================
    # Messages
    # =========================================================================

    def add_message(self, organization_id: str, thread_id: int, data: MessageCreate) -> ThreadMessageResponse:
        """Add a message and bump the thread's updated_at."""
        if (data.from_staff_id is None) == (data.from_donor_id is None):
            raise CRMError(
                ErrorCode.BAD_REQUEST,
                "Message must have exactly one sender (either staff or donor)",
            )

        db = self._get_db()
        try:
            thread = self._get_thread(db, organization_id, thread_id)
            staff_ids = [i for i in (data.from_staff_id, data.to_staff_id) if i is not None]
            donor_ids = [i for i in (data.from_donor_id, data.to_donor_id) if i is not None]
            self._check_participants(db, organization_id, staff_ids, donor_ids)

            values = data.model_dump(exclude_none=True)
            message = CommunicationContent(thread_id=thread_id, **values)
            db.add(message)
            thread.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(message)
            return ThreadMessageResponse.model_validate(message)
        finally:
            self._close_db(db)

    def get_messages(
        self,
        organization_id: str,
        thread_id: int,
        limit: int = 25,
        before_date: Optional[datetime] = None,
    ) -> List[ThreadMessageResponse]:
        """Messages newest first, optionally only those before a date."""
        db = self._get_db()
        try:
            self._get_thread(db, organization_id, thread_id)
            query = db.query(CommunicationContent).filter(CommunicationContent.thread_id == thread_id)
            if before_date:
                query = query.filter(CommunicationContent.occurred_at < before_date)
            messages = (
                query.order_by(CommunicationContent.occurred_at.desc(), CommunicationContent.id.desc())
                .limit(limit)
                .all()
            )
            return [ThreadMessageResponse.model_validate(m) for m in messages]
        finally:
            self._close_db(db)

    # =========================================================================
    # Participants
    # =========================================================================

    def add_staff(self, organization_id: str, thread_id: int, staff_id: int) -> ThreadResponse:
        db = self._get_db()
        try:
            thread = self._get_thread(db, organization_id, thread_id)
            self._check_participants(db, organization_id, [staff_id], [])
            if staff_id not in {link.staff_id for link in thread.staff_links}:
                thread.staff_links.append(CommunicationThreadStaff(staff_id=staff_id))
                db.commit()
            return self._to_response(db, self._get_thread(db, organization_id, thread_id))
        finally:
            self._close_db(db)

    def remove_staff(self, organization_id: str, thread_id: int, staff_id: int) -> ThreadResponse:
        db = self._get_db()
        try:
            thread = self._get_thread(db, organization_id, thread_id)
            thread.staff_links = [link for link in thread.staff_links if link.staff_id != staff_id]
            db.commit()
            return self._to_response(db, self._get_thread(db, organization_id, thread_id))
        finally:
            self._close_db(db)

    def add_donor(self, organization_id: str, thread_id: int, donor_id: int) -> ThreadResponse:
        db = self._get_db()
        try:
            thread = self._get_thread(db, organization_id, thread_id)
            self._check_participants(db, organization_id, [], [donor_id])
            if donor_id not in {link.donor_id for link in thread.donor_links}:
                thread.donor_links.append(CommunicationThreadDonor(donor_id=donor_id))
                db.commit()
            return self._to_response(db, self._get_thread(db, organization_id, thread_id))
        finally:
            self._close_db(db)

    def remove_donor(self, organization_id: str, thread_id: int, donor_id: int) -> ThreadResponse:
        db = self._get_db()
        try:
            thread = self._get_thread(db, organization_id, thread_id)
            thread.donor_links = [link for link in thread.donor_links if link.donor_id != donor_id]
            db.commit()
            return self._to_response(db, self._get_thread(db, organization_id, thread_id))
        finally:
            self._close_db(db)


def get_communication_service(db: Optional[Session] = None) -> CommunicationService:
    """Get communication service instance."""
    return CommunicationService(db)
