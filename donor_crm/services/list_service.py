"""
List Service - named donor lists, membership and CSV import
"""

import logging
from typing import Optional, List
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import DonorList, DonorListMember, Donor, Donation
from .base import BaseService
from .csv_import_service import CSVImportService
from ..errors import CRMError, ErrorCode, ErrorContext, ErrorHandler, not_found
from ..models import (
    ListCreate,
    ListUpdate,
    ListResponse,
    ListCriteria,
    ImportResult,
)

logger = logging.getLogger(__name__)


class ListService(BaseService):
    """
    Service for donor lists.
    """

    def _get_list(self, db: Session, organization_id: str, list_id: int) -> DonorList:
        donor_list = (
            db.query(DonorList)
            .filter(DonorList.id == list_id, DonorList.organization_id == organization_id)
            .first()
        )
        if not donor_list:
            raise not_found("List")
        return donor_list

    def _member_count(self, db: Session, list_id: int) -> int:
        return db.query(func.count(DonorListMember.id)).filter(DonorListMember.list_id == list_id).scalar() or 0

    def _to_response(self, db: Session, donor_list: DonorList, include_member_count: bool = True) -> ListResponse:
        response = ListResponse.model_validate(donor_list)
        if include_member_count:
            response.member_count = self._member_count(db, donor_list.id)
        return response

    def _name_taken(self, db: Session, organization_id: str, name: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(DonorList.id).filter(
            DonorList.organization_id == organization_id, DonorList.name == name
        )
        if exclude_id is not None:
            query = query.filter(DonorList.id != exclude_id)
        return query.first() is not None

    # =========================================================================
    # List CRUD
    # =========================================================================

    def create(self, organization_id: str, data: ListCreate, user_id: Optional[str] = None) -> ListResponse:
        db = self._get_db()
        try:
            if self._name_taken(db, organization_id, data.name):
                raise CRMError(ErrorCode.CONFLICT, "A list with this name already exists")

            donor_list = DonorList(organization_id=organization_id, created_by=user_id, **data.model_dump())
            db.add(donor_list)
            db.commit()
            db.refresh(donor_list)
            logger.info(f"Created list {donor_list.id} '{donor_list.name}' in organization {organization_id}")
            return self._to_response(db, donor_list)

        except IntegrityError as e:
            db.rollback()
            raise ErrorHandler.handle_database_error(
                e, ErrorContext(organization_id=organization_id, operation="create_list")
            )
        finally:
            self._close_db(db)

    def update(self, organization_id: str, list_id: int, data: ListUpdate) -> ListResponse:
        db = self._get_db()
        try:
            donor_list = self._get_list(db, organization_id, list_id)
            values = data.model_dump(exclude_unset=True)
            if values.get("name") and self._name_taken(db, organization_id, values["name"], list_id):
                raise CRMError(ErrorCode.CONFLICT, "A list with this name already exists")

            for key, value in values.items():
                setattr(donor_list, key, value)
            db.commit()
            db.refresh(donor_list)
            return self._to_response(db, donor_list)
        finally:
            self._close_db(db)

    def delete(self, organization_id: str, list_id: int) -> bool:
        """Delete a list. Donors stay, only memberships go."""
        db = self._get_db()
        try:
            donor_list = self._get_list(db, organization_id, list_id)
            db.delete(donor_list)
            db.commit()
            logger.info(f"Deleted list {list_id}")
            return True
        finally:
            self._close_db(db)

    def get_by_id(self, organization_id: str, list_id: int) -> ListResponse:
        db = self._get_db()
        try:
            return self._to_response(db, self._get_list(db, organization_id, list_id))
        finally:
            self._close_db(db)

    def list(
        self,
        organization_id: str,
        search_term: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
        include_member_count: bool = True,
    ) -> List[ListResponse]:
        db = self._get_db()
        try:
            query = db.query(DonorList).filter(DonorList.organization_id == organization_id)
            if search_term and search_term.strip():
                query = query.filter(DonorList.name.ilike(f"%{search_term.strip()}%"))
            if is_active is not None:
                query = query.filter(DonorList.is_active.is_(is_active))

            lists = query.order_by(DonorList.name, DonorList.id).offset(offset).limit(limit).all()
            return [self._to_response(db, dl, include_member_count) for dl in lists]
        finally:
            self._close_db(db)

    # =========================================================================
    # Membership
    # =========================================================================

    def add_donors(
        self, organization_id: str, list_id: int, donor_ids: List[int], user_id: Optional[str] = None
    ) -> int:
        """Add donors to a list, skipping existing members. Returns the number added."""
        db = self._get_db()
        try:
            self._get_list(db, organization_id, list_id)
            added = self._add_members(db, organization_id, list_id, donor_ids, user_id)
            db.commit()
            logger.info(f"Added {added} donors to list {list_id}")
            return added
        finally:
            self._close_db(db)

    def _add_members(
        self, db: Session, organization_id: str, list_id: int, donor_ids: List[int], user_id: Optional[str]
    ) -> int:
        valid_ids = {
            row[0]
            for row in db.query(Donor.id)
            .filter(Donor.organization_id == organization_id, Donor.id.in_(donor_ids))
            .all()
        }
        existing = {
            row[0]
            for row in db.query(DonorListMember.donor_id)
            .filter(DonorListMember.list_id == list_id, DonorListMember.donor_id.in_(valid_ids))
            .all()
        }
        new_ids = sorted(valid_ids - existing)
        for donor_id in new_ids:
            db.add(DonorListMember(list_id=list_id, donor_id=donor_id, added_by=user_id))
        return len(new_ids)

    def remove_donors(self, organization_id: str, list_id: int, donor_ids: List[int]) -> int:
        """Remove donors from a list. Returns the number removed."""
        db = self._get_db()
        try:
            self._get_list(db, organization_id, list_id)
            removed = (
                db.query(DonorListMember)
                .filter(DonorListMember.list_id == list_id, DonorListMember.donor_id.in_(donor_ids))
                .delete(synchronize_session=False)
            )
            db.commit()
            return removed
        finally:
            self._close_db(db)

    def get_donor_ids_from_lists(self, organization_id: str, list_ids: List[int]) -> List[int]:
        """Unique donor IDs across the given lists of this organization."""
        if not list_ids:
            return []
        db = self._get_db()
        try:
            rows = (
                db.query(DonorListMember.donor_id)
                .join(DonorList, DonorList.id == DonorListMember.list_id)
                .filter(DonorList.organization_id == organization_id, DonorList.id.in_(list_ids))
                .distinct()
                .order_by(DonorListMember.donor_id)
                .all()
            )
            return [row[0] for row in rows]
        finally:
            self._close_db(db)

    def create_by_criteria(
        self,
        organization_id: str,
        data: ListCreate,
        criteria: ListCriteria,
        user_id: Optional[str] = None,
    ) -> ListResponse:
        """Create a list and fill it with every donor matching the criteria."""
        created = self.create(organization_id, data, user_id)

        db = self._get_db()
        try:
            query = db.query(Donor.id).filter(Donor.organization_id == organization_id)
            if criteria.assigned_to_staff_id is not None:
                query = query.filter(Donor.assigned_to_staff_id == criteria.assigned_to_staff_id)
            if criteria.state:
                query = query.filter(func.upper(Donor.state) == criteria.state.upper())
            if criteria.high_potential_donor is not None:
                query = query.filter(Donor.high_potential_donor.is_(criteria.high_potential_donor))
            if criteria.min_total_donated is not None:
                totals = (
                    select(Donation.donor_id)
                    .group_by(Donation.donor_id)
                    .having(func.sum(Donation.amount) >= criteria.min_total_donated)
                )
                query = query.filter(Donor.id.in_(totals))
            if criteria.donated_after is not None:
                recent = select(Donation.donor_id).where(Donation.date >= criteria.donated_after)
                query = query.filter(Donor.id.in_(recent))

            donor_ids = [row[0] for row in query.all()]
            added = self._add_members(db, organization_id, created.id, donor_ids, user_id)
            db.commit()
            logger.info(f"List {created.id} created by criteria with {added} donors")

            return self._to_response(db, self._get_list(db, organization_id, created.id))
        finally:
            self._close_db(db)

    # =========================================================================
    # CSV Import
    # =========================================================================

    def import_csv(
        self,
        organization_id: str,
        list_id: int,
        accounts_csv: str,
        pledges_csv: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ImportResult:
        if not accounts_csv or not accounts_csv.strip():
            raise CRMError(ErrorCode.BAD_REQUEST, "Accounts CSV is required")
        importer = CSVImportService(self._db)
        return importer.process_csv_files(organization_id, list_id, accounts_csv, pledges_csv, user_id)


def get_list_service(db: Optional[Session] = None) -> ListService:
    """Get list service instance."""
    return ListService(db)
