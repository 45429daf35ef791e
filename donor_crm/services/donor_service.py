"""
Donor Service - CRUD, search and staff assignment for donors

Handles:
- Donor creation and updates (individuals and couples)
- Filtered, paginated donor lists
- Staff assignment (single and bulk)
- Donor notes
"""

import logging
from typing import Optional, List, Dict, Any
from datetime import datetime
from sqlalchemy import or_, func, exists, select, asc, desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, Query

from database.models import Donor, Donation, Staff, DonorListMember, PersonResearch
from .base import BaseService
from ..errors import CRMError, ErrorCode, ErrorContext, ErrorHandler, not_found
from ..models import (
    DonorCreate,
    DonorUpdate,
    DonorResponse,
    DonorSearchParams,
    DonorListResponse,
    DonorOrderBy,
    OrderDirection,
    BulkDeleteResponse,
)
from ..utils.donor_name_formatter import format_donor_name

logger = logging.getLogger(__name__)


def name_search_filter(term: str):
    """ILIKE match on first, last, display name, email and "first last"."""
    pattern = f"%{term.strip()}%"
    return or_(
        Donor.first_name.ilike(pattern),
        Donor.last_name.ilike(pattern),
        Donor.display_name.ilike(pattern),
        Donor.email.ilike(pattern),
        (Donor.first_name + " " + Donor.last_name).ilike(pattern),
    )


class DonorService(BaseService):
    """
    Service for donor management.
    """

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_donor(self, db: Session, organization_id: str, donor_id: int) -> Donor:
        donor = (
            db.query(Donor)
            .filter(Donor.id == donor_id, Donor.organization_id == organization_id)
            .first()
        )
        if not donor:
            raise not_found("Donor")
        return donor

    def _check_staff(self, db: Session, organization_id: str, staff_id: Optional[int]):
        if staff_id is None:
            return
        staff = (
            db.query(Staff)
            .filter(Staff.id == staff_id, Staff.organization_id == organization_id)
            .first()
        )
        if not staff:
            raise CRMError(ErrorCode.BAD_REQUEST, "Staff member not found in this organization")

    def _email_taken(
        self, db: Session, organization_id: str, email: str, exclude_id: Optional[int] = None
    ) -> bool:
        query = db.query(Donor.id).filter(
            Donor.organization_id == organization_id,
            func.lower(Donor.email) == email.lower(),
        )
        if exclude_id is not None:
            query = query.filter(Donor.id != exclude_id)
        return query.first() is not None

    def _filtered_query(self, db: Session, organization_id: str, params: DonorSearchParams) -> Query:
        query = db.query(Donor).filter(Donor.organization_id == organization_id)

        if params.search_term and params.search_term.strip():
            query = query.filter(name_search_filter(params.search_term))
        if params.state:
            query = query.filter(func.upper(Donor.state) == params.state.upper())
        if params.gender:
            query = query.filter(Donor.gender == params.gender.value)
        if params.only_unassigned:
            query = query.filter(Donor.assigned_to_staff_id.is_(None))
        elif params.assigned_to_staff_id is not None:
            query = query.filter(Donor.assigned_to_staff_id == params.assigned_to_staff_id)
        if params.list_id is not None:
            query = query.filter(
                exists().where(
                    DonorListMember.donor_id == Donor.id,
                    DonorListMember.list_id == params.list_id,
                )
            )
        if params.not_in_any_list:
            query = query.filter(~exists().where(DonorListMember.donor_id == Donor.id))
        if params.only_researched:
            query = query.filter(
                exists().where(PersonResearch.donor_id == Donor.id, PersonResearch.is_live.is_(True))
            )

        return query

    # =========================================================================
    # Donor CRUD
    # =========================================================================

    def get_by_id(self, organization_id: str, donor_id: int) -> DonorResponse:
        db = self._get_db()
        try:
            return DonorResponse.model_validate(self._get_donor(db, organization_id, donor_id))
        finally:
            self._close_db(db)

    def get_by_email(self, organization_id: str, email: str) -> Optional[DonorResponse]:
        db = self._get_db()
        try:
            donor = (
                db.query(Donor)
                .filter(
                    Donor.organization_id == organization_id,
                    func.lower(Donor.email) == email.lower(),
                )
                .first()
            )
            return DonorResponse.model_validate(donor) if donor else None
        finally:
            self._close_db(db)

    def get_by_ids(self, organization_id: str, donor_ids: List[int]) -> List[DonorResponse]:
        if not donor_ids:
            return []
        db = self._get_db()
        try:
            donors = (
                db.query(Donor)
                .filter(Donor.organization_id == organization_id, Donor.id.in_(donor_ids))
                .all()
            )
            return [DonorResponse.model_validate(d) for d in donors]
        finally:
            self._close_db(db)

    def create(
        self, organization_id: str, data: DonorCreate, user_id: Optional[str] = None
    ) -> DonorResponse:
        """
        Create a donor.

        Raises:
            CRMError(CONFLICT): a donor with this email exists in the organization
        """
        db = self._get_db()
        try:
            if self._email_taken(db, organization_id, data.email):
                raise CRMError(ErrorCode.CONFLICT, "A donor with this email already exists")
            self._check_staff(db, organization_id, data.assigned_to_staff_id)

            values = data.model_dump(exclude={"notes"})
            if values.get("gender") is not None:
                values["gender"] = data.gender.value
            if data.is_couple and not data.display_name:
                values["display_name"] = format_donor_name(data)
            if values.get("high_potential_donor") is None:
                values["high_potential_donor"] = False

            notes = []
            if data.notes and data.notes.strip():
                notes.append({
                    "created_at": datetime.utcnow().isoformat(),
                    "created_by": user_id,
                    "content": data.notes.strip(),
                })

            donor = Donor(organization_id=organization_id, notes=notes, **values)
            db.add(donor)
            db.commit()
            db.refresh(donor)

            logger.info(f"Created donor {donor.id} in organization {organization_id}")
            return DonorResponse.model_validate(donor)

        except IntegrityError as e:
            db.rollback()
            raise ErrorHandler.handle_database_error(
                e, ErrorContext(organization_id=organization_id, operation="create_donor")
            )
        finally:
            self._close_db(db)

    def update(self, organization_id: str, donor_id: int, data: DonorUpdate) -> DonorResponse:
        db = self._get_db()
        try:
            donor = self._get_donor(db, organization_id, donor_id)
            values = data.model_dump(exclude_unset=True)

            if values.get("email") and self._email_taken(db, organization_id, values["email"], donor_id):
                raise CRMError(ErrorCode.CONFLICT, "A donor with this email already exists")
            if "assigned_to_staff_id" in values:
                self._check_staff(db, organization_id, values["assigned_to_staff_id"])
            if values.get("gender") is not None:
                values["gender"] = data.gender.value

            for key, value in values.items():
                setattr(donor, key, value)

            db.commit()
            db.refresh(donor)
            logger.info(f"Updated donor {donor_id}")
            return DonorResponse.model_validate(donor)

        except IntegrityError as e:
            db.rollback()
            raise ErrorHandler.handle_database_error(
                e,
                ErrorContext(
                    organization_id=organization_id,
                    resource_type="donor",
                    resource_id=donor_id,
                    operation="update_donor",
                ),
            )
        finally:
            self._close_db(db)

    def delete(self, organization_id: str, donor_id: int) -> bool:
        db = self._get_db()
        try:
            donor = self._get_donor(db, organization_id, donor_id)
            db.delete(donor)
            db.commit()
            logger.info(f"Deleted donor {donor_id}")
            return True
        except SQLAlchemyError as e:
            db.rollback()
            raise ErrorHandler.handle_database_error(
                e,
                ErrorContext(
                    organization_id=organization_id,
                    resource_type="donor",
                    resource_id=donor_id,
                    operation="delete_donor",
                ),
            )
        finally:
            self._close_db(db)

    def bulk_delete(self, organization_id: str, donor_ids: List[int]) -> BulkDeleteResponse:
        """Delete many donors, collecting per-donor failures."""
        result = BulkDeleteResponse(success=0, failed=0, errors=[])
        for donor_id in donor_ids:
            try:
                self.delete(organization_id, donor_id)
                result.success += 1
            except CRMError as e:
                result.failed += 1
                result.errors.append(f"Donor {donor_id}: {e.message}")
        logger.info(f"Bulk deleted {result.success} donors ({result.failed} failed)")
        return result

    # =========================================================================
    # Search
    # =========================================================================

    def list(self, organization_id: str, params: DonorSearchParams) -> DonorListResponse:
        """List donors with filters, ordering and pagination."""
        db = self._get_db()
        try:
            query = self._filtered_query(db, organization_id, params)
            total_count = query.order_by(None).count()

            direction = desc if params.order_direction == OrderDirection.DESC else asc
            if params.order_by == DonorOrderBy.TOTAL_DONATED:
                totals = (
                    select(Donation.donor_id, func.sum(Donation.amount).label("total"))
                    .group_by(Donation.donor_id)
                    .subquery()
                )
                query = query.outerjoin(totals, totals.c.donor_id == Donor.id).order_by(
                    direction(func.coalesce(totals.c.total, 0)), Donor.id
                )
            elif params.order_by:
                query = query.order_by(direction(getattr(Donor, params.order_by.value)), Donor.id)
            else:
                query = query.order_by(Donor.created_at.desc(), Donor.id.desc())

            donors = query.offset(params.offset).limit(params.limit).all()
            return DonorListResponse(
                donors=[DonorResponse.model_validate(d) for d in donors],
                total_count=total_count,
            )
        finally:
            self._close_db(db)

    def list_for_communication(
        self, organization_id: str, params: DonorSearchParams
    ) -> List[Dict[str, Any]]:
        """Minimal donor fields for recipient pickers."""
        db = self._get_db()
        try:
            query = self._filtered_query(db, organization_id, params).order_by(
                Donor.first_name, Donor.last_name, Donor.id
            )
            donors = query.offset(params.offset).limit(params.limit).all()
            return [
                {
                    "id": d.id,
                    "name": format_donor_name(d),
                    "email": d.email,
                    "phone": d.phone,
                    "assigned_to_staff_id": d.assigned_to_staff_id,
                }
                for d in donors
            ]
        finally:
            self._close_db(db)

    def get_all_ids(self, organization_id: str, params: Optional[DonorSearchParams] = None) -> List[int]:
        """IDs of every donor matching the filters (no pagination)."""
        db = self._get_db()
        try:
            query = self._filtered_query(db, organization_id, params or DonorSearchParams())
            return [donor.id for donor in query.order_by(Donor.id).all()]
        finally:
            self._close_db(db)

    def count_lists_for_donors(self, organization_id: str, donor_ids: List[int]) -> Dict[int, int]:
        """Number of lists each donor belongs to."""
        db = self._get_db()
        try:
            rows = (
                db.query(DonorListMember.donor_id, func.count(DonorListMember.id))
                .join(Donor, Donor.id == DonorListMember.donor_id)
                .filter(Donor.organization_id == organization_id, DonorListMember.donor_id.in_(donor_ids))
                .group_by(DonorListMember.donor_id)
                .all()
            )
            counts = {donor_id: 0 for donor_id in donor_ids}
            counts.update({donor_id: count for donor_id, count in rows})
            return counts
        finally:
            self._close_db(db)

    # =========================================================================
    # Assignment & Notes
    # =========================================================================

    def update_assigned_staff(
        self, organization_id: str, donor_id: int, staff_id: Optional[int]
    ) -> DonorResponse:
        db = self._get_db()
        try:
            donor = self._get_donor(db, organization_id, donor_id)
            self._check_staff(db, organization_id, staff_id)
            donor.assigned_to_staff_id = staff_id
            db.commit()
            db.refresh(donor)
            logger.info(f"Assigned donor {donor_id} to staff {staff_id}")
            return DonorResponse.model_validate(donor)
        finally:
            self._close_db(db)

    def bulk_update_assigned_staff(
        self, organization_id: str, donor_ids: List[int], staff_id: Optional[int]
    ) -> int:
        """Assign many donors at once. Returns the number updated."""
        db = self._get_db()
        try:
            self._check_staff(db, organization_id, staff_id)
            updated = (
                db.query(Donor)
                .filter(Donor.organization_id == organization_id, Donor.id.in_(donor_ids))
                .update({Donor.assigned_to_staff_id: staff_id}, synchronize_session=False)
            )
            db.commit()
            logger.info(f"Assigned {updated} donors to staff {staff_id}")
            return updated
        finally:
            self._close_db(db)

    def add_note(
        self, organization_id: str, donor_id: int, content: str, user_id: Optional[str] = None
    ) -> DonorResponse:
        db = self._get_db()
        try:
            donor = self._get_donor(db, organization_id, donor_id)
            notes = list(donor.notes or [])
            notes.append({
                "created_at": datetime.utcnow().isoformat(),
                "created_by": user_id,
                "content": content.strip(),
            })
            donor.notes = notes
            db.commit()
            db.refresh(donor)
            return DonorResponse.model_validate(donor)
        finally:
            self._close_db(db)


def get_donor_service(db: Optional[Session] = None) -> DonorService:
    """Get donor service instance."""
    return DonorService(db)
