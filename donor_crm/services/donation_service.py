"""
Donation Service - donations and per-donor giving statistics
"""

import logging
from typing import Optional, List, Dict
from sqlalchemy import func, asc, desc
from sqlalchemy.orm import Session, joinedload

from database.models import Donation, Donor, Project
from .base import BaseService
from ..errors import CRMError, ErrorCode, not_found
from ..models import (
    DonationCreate,
    DonationUpdate,
    DonationResponse,
    DonationSearchParams,
    DonationListResponse,
    DonorStatsResponse,
    OrderDirection,
)
from ..utils.donor_name_formatter import format_donor_name

logger = logging.getLogger(__name__)


class DonationService(BaseService):
    """Donation CRUD and statistics. Donations are scoped through their donor."""

    def _to_response(self, donation: Donation) -> DonationResponse:
        response = DonationResponse.model_validate(donation)
        response.project_name = donation.project.name if donation.project else None
        response.donor_name = format_donor_name(donation.donor) if donation.donor else None
        return response

    def _get_donation(self, db: Session, organization_id: str, donation_id: int) -> Donation:
        donation = (
            db.query(Donation)
            .join(Donor, Donor.id == Donation.donor_id)
            .options(joinedload(Donation.donor), joinedload(Donation.project))
            .filter(Donation.id == donation_id, Donor.organization_id == organization_id)
            .first()
        )
        if not donation:
            raise not_found("Donation")
        return donation

    def _check_refs(
        self, db: Session, organization_id: str, donor_id: Optional[int], project_id: Optional[int]
    ):
        if donor_id is not None:
            donor = db.query(Donor.id).filter(
                Donor.id == donor_id, Donor.organization_id == organization_id
            ).first()
            if not donor:
                raise CRMError(ErrorCode.BAD_REQUEST, "Donor not found in this organization")
        if project_id is not None:
            project = db.query(Project.id).filter(
                Project.id == project_id, Project.organization_id == organization_id
            ).first()
            if not project:
                raise CRMError(ErrorCode.BAD_REQUEST, "Project not found in this organization")

    # =========================================================================
    # Donation CRUD
    # =========================================================================

    def create(self, organization_id: str, data: DonationCreate) -> DonationResponse:
        db = self._get_db()
        try:
            self._check_refs(db, organization_id, data.donor_id, data.project_id)
            values = data.model_dump(exclude_none=True)
            donation = Donation(**values)
            db.add(donation)
            db.commit()
            logger.info(f"Recorded donation {donation.id} of {data.amount} cents for donor {data.donor_id}")
            return self._to_response(self._get_donation(db, organization_id, donation.id))
        finally:
            self._close_db(db)

    def update(self, organization_id: str, donation_id: int, data: DonationUpdate) -> DonationResponse:
        db = self._get_db()
        try:
            donation = self._get_donation(db, organization_id, donation_id)
            values = data.model_dump(exclude_unset=True)
            self._check_refs(db, organization_id, values.get("donor_id"), values.get("project_id"))
            for key, value in values.items():
                setattr(donation, key, value)
            db.commit()
            db.expire_all()
            return self._to_response(self._get_donation(db, organization_id, donation_id))
        finally:
            self._close_db(db)

    def delete(self, organization_id: str, donation_id: int) -> bool:
        db = self._get_db()
        try:
            donation = self._get_donation(db, organization_id, donation_id)
            db.delete(donation)
            db.commit()
            return True
        finally:
            self._close_db(db)

    def get_by_id(self, organization_id: str, donation_id: int) -> DonationResponse:
        db = self._get_db()
        try:
            return self._to_response(self._get_donation(db, organization_id, donation_id))
        finally:
            self._close_db(db)

    def list(self, organization_id: str, params: DonationSearchParams) -> DonationListResponse:
        db = self._get_db()
        try:
            query = (
                db.query(Donation)
                .join(Donor, Donor.id == Donation.donor_id)
                .options(joinedload(Donation.donor), joinedload(Donation.project))
                .filter(Donor.organization_id == organization_id)
            )
            if params.donor_id is not None:
                query = query.filter(Donation.donor_id == params.donor_id)
            if params.project_id is not None:
                query = query.filter(Donation.project_id == params.project_id)
            if params.start_date:
                query = query.filter(Donation.date >= params.start_date)
            if params.end_date:
                query = query.filter(Donation.date <= params.end_date)

            total_count = query.count()

            direction = desc if params.order_direction == OrderDirection.DESC else asc
            query = query.order_by(direction(getattr(Donation, params.order_by.value)), Donation.id)
            donations = query.offset(params.offset).limit(params.limit).all()

            return DonationListResponse(
                donations=[self._to_response(d) for d in donations],
                total_count=total_count,
            )
        finally:
            self._close_db(db)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_donor_stats(self, organization_id: str, donor_id: int) -> DonorStatsResponse:
        stats = self.get_multiple_donor_stats(organization_id, [donor_id])
        return stats[donor_id]

    def get_multiple_donor_stats(
        self, organization_id: str, donor_ids: List[int]
    ) -> Dict[int, DonorStatsResponse]:
        """
        Giving totals for many donors in one grouped query.

        Donors without donations (or outside the organization) report zeros.
        """
        db = self._get_db()
        try:
            rows = (
                db.query(
                    Donation.donor_id,
                    func.coalesce(func.sum(Donation.amount), 0),
                    func.count(Donation.id),
                    func.max(Donation.date),
                )
                .join(Donor, Donor.id == Donation.donor_id)
                .filter(Donor.organization_id == organization_id, Donation.donor_id.in_(donor_ids))
                .group_by(Donation.donor_id)
                .all()
            )

            stats = {donor_id: DonorStatsResponse(donor_id=donor_id) for donor_id in donor_ids}
            for donor_id, total, count, last_date in rows:
                stats[donor_id] = DonorStatsResponse(
                    donor_id=donor_id,
                    total_donated=int(total or 0),
                    donation_count=count,
                    last_donation_date=last_date,
                )
            return stats
        finally:
            self._close_db(db)


def get_donation_service(db: Optional[Session] = None) -> DonationService:
    """Get donation service instance."""
    return DonationService(db)
