"""
WhatsApp Permission Service - which phone numbers may use the assistant

A phone number is registered to one staff member; the staff member's
organization is the one the assistant answers about.
"""

import logging
import re
from typing import Optional, List, Dict, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import StaffWhatsAppPhoneNumber, Staff
from ..base import BaseService

logger = logging.getLogger(__name__)

NOT_REGISTERED = "Phone number not registered with any staff member"
PHONE_DISABLED = "Phone number access is disabled for this staff member"
WHATSAPP_DISABLED = "WhatsApp access is disabled for this staff member"
INTERNAL_ERROR = "Internal error checking permissions"


def normalize_phone_number(phone_number: str) -> str:
    """
    Keep digits and "+"; bare 10 digit numbers are assumed US (+1), as are
    11 digit numbers starting with 1.
    """
    normalized = re.sub(r"[^\d+]", "", phone_number or "")
    if not normalized.startswith("+"):
        if len(normalized) == 10:
            normalized = "+1" + normalized
        elif len(normalized) == 11 and normalized.startswith("1"):
            normalized = "+" + normalized
    return normalized


class WhatsAppPermissionService(BaseService):
    """Phone number permission checks and management."""

    def check_phone_permission(self, phone_number: str) -> Dict[str, Any]:
        """
        Returns:
            {is_allowed, staff_id, organization_id, staff, reason}
        """
        normalized = normalize_phone_number(phone_number)
        denied = {"is_allowed": False, "staff_id": None, "organization_id": None, "staff": None}

        db = self._get_db()
        try:
            logger.info(f"[WhatsApp Permission] Checking permission for {normalized}")
            row = (
                db.query(StaffWhatsAppPhoneNumber, Staff)
                .join(Staff, StaffWhatsAppPhoneNumber.staff_id == Staff.id)
                .filter(StaffWhatsAppPhoneNumber.phone_number == normalized)
                .first()
            )
            if not row:
                logger.warning(f"[WhatsApp Permission] No staff found for {normalized}")
                return {**denied, "reason": NOT_REGISTERED}

            phone, staff = row
            if not phone.is_allowed:
                logger.warning(f"[WhatsApp Permission] {normalized} is disabled for staff {staff.id}")
                return {
                    **denied,
                    "staff_id": staff.id,
                    "organization_id": staff.organization_id,
                    "reason": PHONE_DISABLED,
                }
            if not staff.whatsapp_enabled:
                logger.warning(f"[WhatsApp Permission] WhatsApp is disabled for staff {staff.id}")
                return {
                    **denied,
                    "staff_id": staff.id,
                    "organization_id": staff.organization_id,
                    "reason": WHATSAPP_DISABLED,
                }

            logger.info(
                f"[WhatsApp Permission] Permission granted for {normalized} to staff {staff.id} "
                f"in organization {staff.organization_id}"
            )
            return {
                "is_allowed": True,
                "staff_id": staff.id,
                "organization_id": staff.organization_id,
                "staff": {
                    "id": staff.id,
                    "first_name": staff.first_name,
                    "last_name": staff.last_name,
                    "email": staff.email,
                    "organization_id": staff.organization_id,
                },
                "reason": None,
            }
        except SQLAlchemyError as e:
            logger.error(f"[WhatsApp Permission] Error checking phone permission: {e}")
            return {**denied, "reason": INTERNAL_ERROR}
        finally:
            self._close_db(db)

    def add_phone_number_to_staff(self, staff_id: int, phone_number: str) -> bool:
        normalized = normalize_phone_number(phone_number)
        db = self._get_db()
        try:
            db.add(StaffWhatsAppPhoneNumber(staff_id=staff_id, phone_number=normalized, is_allowed=True))
            db.commit()
            logger.info(f"[WhatsApp Permission] Added {normalized} to staff {staff_id}")
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[WhatsApp Permission] Error adding phone number {normalized}: {e}")
            return False
        finally:
            self._close_db(db)

    def remove_phone_number_from_staff(self, staff_id: int, phone_number: str) -> bool:
        normalized = normalize_phone_number(phone_number)
        db = self._get_db()
        try:
            db.query(StaffWhatsAppPhoneNumber).filter(
                StaffWhatsAppPhoneNumber.staff_id == staff_id,
                StaffWhatsAppPhoneNumber.phone_number == normalized,
            ).delete(synchronize_session=False)
            db.commit()
            logger.info(f"[WhatsApp Permission] Removed {normalized} from staff {staff_id}")
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[WhatsApp Permission] Error removing phone number {normalized}: {e}")
            return False
        finally:
            self._close_db(db)

    def toggle_phone_permission(self, staff_id: int, phone_number: str, is_allowed: bool) -> bool:
        normalized = normalize_phone_number(phone_number)
        db = self._get_db()
        try:
            db.query(StaffWhatsAppPhoneNumber).filter(
                StaffWhatsAppPhoneNumber.staff_id == staff_id,
                StaffWhatsAppPhoneNumber.phone_number == normalized,
            ).update({"is_allowed": is_allowed}, synchronize_session=False)
            db.commit()
            logger.info(
                f"[WhatsApp Permission] {'Enabled' if is_allowed else 'Disabled'} {normalized} for staff {staff_id}"
            )
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[WhatsApp Permission] Error toggling phone permission: {e}")
            return False
        finally:
            self._close_db(db)

    def get_staff_phone_numbers(self, staff_id: int) -> List[StaffWhatsAppPhoneNumber]:
        db = self._get_db()
        try:
            return (
                db.query(StaffWhatsAppPhoneNumber)
                .filter(StaffWhatsAppPhoneNumber.staff_id == staff_id)
                .order_by(StaffWhatsAppPhoneNumber.created_at)
                .all()
            )
        finally:
            self._close_db(db)


def get_whatsapp_permission_service(db: Optional[Session] = None) -> WhatsAppPermissionService:
    """Get WhatsApp permission service instance."""
    return WhatsAppPermissionService(db)
