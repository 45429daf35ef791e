"""
Staff Service - staff members, primary staff, signatures and WhatsApp access
"""

import logging
from typing import Optional, List
from sqlalchemy import or_, func, asc, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import Staff, Donor
from .base import BaseService
from ..errors import CRMError, ErrorCode, ErrorContext, ErrorHandler, not_found
from ..models import (
    StaffCreate,
    StaffUpdate,
    StaffResponse,
    StaffSearchParams,
    StaffListResponse,
    DonorResponse,
    OrderDirection,
)

logger = logging.getLogger(__name__)


class StaffService(BaseService):
    """
    Service for staff management.
    """

    def _get_staff(self, db: Session, organization_id: str, staff_id: int) -> Staff:
        staff = (
            db.query(Staff)
            .filter(Staff.id == staff_id, Staff.organization_id == organization_id)
            .first()
        )
        if not staff:
            raise not_found("Staff member")
        return staff

    def _email_taken(self, db: Session, email: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(Staff.id).filter(func.lower(Staff.email) == email.lower())
        if exclude_id is not None:
            query = query.filter(Staff.id != exclude_id)
        return query.first() is not None

    # =========================================================================
    # Staff CRUD
    # =========================================================================

    def create(self, organization_id: str, data: StaffCreate) -> StaffResponse:
        db = self._get_db()
        try:
            if self._email_taken(db, data.email):
                raise CRMError(ErrorCode.CONFLICT, "A staff member with this email already exists")

            staff = Staff(organization_id=organization_id, **data.model_dump())
            db.add(staff)
            db.commit()
            db.refresh(staff)

            logger.info(f"Created staff {staff.id} in organization {organization_id}")
            return StaffResponse.model_validate(staff)

        except IntegrityError as e:
            db.rollback()
            raise ErrorHandler.handle_database_error(
                e, ErrorContext(organization_id=organization_id, operation="create_staff")
            )
        finally:
            self._close_db(db)

    def update(self, organization_id: str, staff_id: int, data: StaffUpdate) -> StaffResponse:
        db = self._get_db()
        try:
            staff = self._get_staff(db, organization_id, staff_id)
            values = data.model_dump(exclude_unset=True)
            if values.get("email") and self._email_taken(db, values["email"], staff_id):
                raise CRMError(ErrorCode.CONFLICT, "A staff member with this email already exists")

            for key, value in values.items():
                setattr(staff, key, value)
            db.commit()
            db.refresh(staff)
            return StaffResponse.model_validate(staff)
        finally:
            self._close_db(db)

    def delete(self, organization_id: str, staff_id: int) -> bool:
        """Delete a staff member. Their donors become unassigned."""
        db = self._get_db()
        try:
            staff = self._get_staff(db, organization_id, staff_id)
            db.query(Donor).filter(Donor.assigned_to_staff_id == staff_id).update(
                {Donor.assigned_to_staff_id: None}, synchronize_session=False
            )
            db.delete(staff)
            db.commit()
            logger.info(f"Deleted staff {staff_id}")
            return True
        finally:
            self._close_db(db)

    def get_by_id(self, organization_id: str, staff_id: int) -> StaffResponse:
        db = self._get_db()
        try:
            return StaffResponse.model_validate(self._get_staff(db, organization_id, staff_id))
        finally:
            self._close_db(db)

    def get_by_email(self, organization_id: str, email: str) -> Optional[StaffResponse]:
        db = self._get_db()
        try:
            staff = (
                db.query(Staff)
                .filter(Staff.organization_id == organization_id, func.lower(Staff.email) == email.lower())
                .first()
            )
            return StaffResponse.model_validate(staff) if staff else None
        finally:
            self._close_db(db)

    def list(self, organization_id: str, params: StaffSearchParams) -> StaffListResponse:
        db = self._get_db()
        try:
            query = db.query(Staff).filter(Staff.organization_id == organization_id)

            if params.search_term and params.search_term.strip():
                pattern = f"%{params.search_term.strip()}%"
                query = query.filter(
                    or_(
                        Staff.first_name.ilike(pattern),
                        Staff.last_name.ilike(pattern),
                        Staff.email.ilike(pattern),
                    )
                )
            if params.is_real_person is not None:
                query = query.filter(Staff.is_real_person.is_(params.is_real_person))

            total_count = query.count()

            if params.order_by:
                direction = desc if params.order_direction == OrderDirection.DESC else asc
                query = query.order_by(direction(getattr(Staff, params.order_by.value)), Staff.id)
            else:
                query = query.order_by(Staff.first_name, Staff.last_name, Staff.id)

            staff = query.offset(params.offset).limit(params.limit).all()
            return StaffListResponse(
                staff=[StaffResponse.model_validate(s) for s in staff],
                total_count=total_count,
            )
        finally:
            self._close_db(db)

    # =========================================================================
    # Primary Staff & Signatures
    # =========================================================================

    def set_primary(self, organization_id: str, staff_id: int) -> StaffResponse:
        """Make this staff member the organization's only primary staff."""
        db = self._get_db()
        try:
            staff = self._get_staff(db, organization_id, staff_id)
            db.query(Staff).filter(
                Staff.organization_id == organization_id, Staff.id != staff_id
            ).update({Staff.is_primary: False}, synchronize_session=False)
            staff.is_primary = True
            db.commit()
            db.refresh(staff)
            logger.info(f"Staff {staff_id} is now primary for organization {organization_id}")
            return StaffResponse.model_validate(staff)
        finally:
            self._close_db(db)

    def unset_primary(self, organization_id: str, staff_id: int) -> StaffResponse:
        db = self._get_db()
        try:
            staff = self._get_staff(db, organization_id, staff_id)
            staff.is_primary = False
            db.commit()
            db.refresh(staff)
            return StaffResponse.model_validate(staff)
        finally:
            self._close_db(db)

    def get_primary(self, organization_id: str) -> Optional[StaffResponse]:
        db = self._get_db()
        try:
            staff = (
                db.query(Staff)
                .filter(Staff.organization_id == organization_id, Staff.is_primary.is_(True))
                .first()
            )
            return StaffResponse.model_validate(staff) if staff else None
        finally:
            self._close_db(db)

    def update_signature(
        self, organization_id: str, staff_id: int, signature: Optional[str]
    ) -> StaffResponse:
        db = self._get_db()
        try:
            staff = self._get_staff(db, organization_id, staff_id)
            staff.signature = signature
            db.commit()
            db.refresh(staff)
            return StaffResponse.model_validate(staff)
        finally:
            self._close_db(db)

    def get_assigned_donors(self, organization_id: str, staff_id: int) -> List[DonorResponse]:
        db = self._get_db()
        try:
            self._get_staff(db, organization_id, staff_id)
            donors = (
                db.query(Donor)
                .filter(Donor.organization_id == organization_id, Donor.assigned_to_staff_id == staff_id)
                .order_by(Donor.first_name, Donor.last_name)
                .all()
            )
            return [DonorResponse.model_validate(d) for d in donors]
        finally:
            self._close_db(db)

    # =========================================================================
    # WhatsApp Access
    # =========================================================================

    def toggle_whatsapp(self, organization_id: str, staff_id: int, enabled: bool) -> StaffResponse:
        """Enable or disable the WhatsApp assistant for a staff member."""
        db = self._get_db()
        try:
            staff = self._get_staff(db, organization_id, staff_id)
            staff.whatsapp_enabled = enabled
            db.commit()
            db.refresh(staff)
            logger.info(f"WhatsApp {'enabled' if enabled else 'disabled'} for staff {staff_id}")
            return StaffResponse.model_validate(staff)
        finally:
            self._close_db(db)


def get_staff_service(db: Optional[Session] = None) -> StaffService:
    """Get staff service instance."""
    return StaffService(db)
