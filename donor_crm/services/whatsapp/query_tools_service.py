"""
WhatsApp Query Tools Service - canned donor queries for the assistant

Every query is scoped to one organization. Rows come back as plain dicts
so they can be handed to the model as JSON.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional, List, Dict, Any, Union
from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session

from database.models import Donor, Donation, Project, Staff
from ..base import BaseService
from ...models import FlexibleQueryType

logger = logging.getLogger(__name__)


def _name_filter(name: str):
    pattern = f"%{name}%"
    return or_(
        Donor.first_name.ilike(pattern),
        Donor.last_name.ilike(pattern),
        Donor.display_name.ilike(pattern),
        (Donor.first_name + " " + Donor.last_name).ilike(pattern),
    )


def _date_filter(start_date: Optional[str], end_date: Optional[str]):
    start = datetime.fromisoformat(start_date) if start_date else None
    end = datetime.fromisoformat(end_date) if end_date else None
    if start and end:
        return Donation.date.between(start, end)
    if start:
        return Donation.date >= start
    if end:
        return Donation.date <= end
    return None


def _rows(results) -> List[Dict[str, Any]]:
    return [dict(row._mapping) for row in results]


class WhatsAppQueryToolsService(BaseService):
    """Read-only donor queries used by the WhatsApp assistant tools."""

    def find_donors_by_name(self, name: str, organization_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        logger.info(f'[Query Tools] Finding donors by name: "{name}" in organization {organization_id}')
        pattern = f"%{name}%"
        donation_count = func.count(Donation.id)
        db = self._get_db()
        try:
            results = (
                db.query(
                    Donor.id,
                    Donor.first_name,
                    Donor.last_name,
                    Donor.display_name,
                    Donor.email,
                    Donor.phone,
                    Donor.is_couple,
                    func.coalesce(func.sum(Donation.amount), 0).label("total_donations"),
                    donation_count.label("donation_count"),
                    func.max(Donation.date).label("last_donation_date"),
                )
                .outerjoin(Donation, Donation.donor_id == Donor.id)
                .filter(
                    Donor.organization_id == organization_id,
                    or_(_name_filter(name), Donor.email.ilike(pattern)),
                )
                .group_by(Donor.id)
                .order_by(donation_count.desc(), Donor.first_name)
                .limit(limit)
                .all()
            )
            logger.info(f"[Query Tools] Found {len(results)} donors")
            return _rows(results)
        finally:
            self._close_db(db)

    def get_donor_details(self, donor_id: int, organization_id: str) -> Optional[Dict[str, Any]]:
        logger.info(f"[Query Tools] Getting details for donor {donor_id} in organization {organization_id}")
        db = self._get_db()
        try:
            donor = (
                db.query(Donor)
                .filter(Donor.id == donor_id, Donor.organization_id == organization_id)
                .first()
            )
            if not donor:
                logger.warning(f"[Query Tools] Donor {donor_id} not found in organization {organization_id}")
                return None

            total, count, last_date = (
                db.query(
                    func.coalesce(func.sum(Donation.amount), 0),
                    func.count(Donation.id),
                    func.max(Donation.date),
                )
                .filter(Donation.donor_id == donor_id)
                .one()
            )
            staff = donor.assigned_staff
            return {
                "id": donor.id,
                "first_name": donor.first_name,
                "last_name": donor.last_name,
                "display_name": donor.display_name,
                "email": donor.email,
                "phone": donor.phone,
                "address": donor.address,
                "state": donor.state,
                "is_couple": donor.is_couple,
                "his_first_name": donor.his_first_name,
                "his_last_name": donor.his_last_name,
                "her_first_name": donor.her_first_name,
                "her_last_name": donor.her_last_name,
                "notes": donor.notes or [],
                "current_stage_name": donor.current_stage_name,
                "high_potential_donor": donor.high_potential_donor,
                "assigned_staff": {
                    "id": staff.id,
                    "first_name": staff.first_name,
                    "last_name": staff.last_name,
                    "email": staff.email,
                } if staff else None,
                "total_donations": total,
                "donation_count": count,
                "last_donation_date": last_date,
            }
        finally:
            self._close_db(db)

    def get_donation_history(self, donor_id: int, organization_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        logger.info(f"[Query Tools] Getting donation history for donor {donor_id} in organization {organization_id}")
        db = self._get_db()
        try:
            exists = (
                db.query(Donor.id)
                .filter(Donor.id == donor_id, Donor.organization_id == organization_id)
                .first()
            )
            if not exists:
                logger.warning(f"[Query Tools] Donor {donor_id} not found in organization {organization_id}")
                return []

            results = (
                db.query(
                    Donation.id,
                    Donation.date,
                    Donation.amount,
                    Donation.currency,
                    Project.name.label("project_name"),
                    Project.id.label("project_id"),
                )
                .join(Project, Donation.project_id == Project.id)
                .filter(Donation.donor_id == donor_id)
                .order_by(Donation.date.desc())
                .limit(limit)
                .all()
            )
            logger.info(f"[Query Tools] Found {len(results)} donations")
            return _rows(results)
        finally:
            self._close_db(db)

    def get_donor_statistics(self, organization_id: str) -> Dict[str, Any]:
        logger.info(f"[Query Tools] Getting donor statistics for organization {organization_id}")
        db = self._get_db()
        try:
            row = (
                db.query(
                    func.count(func.distinct(Donor.id)).label("total_donors"),
                    func.count(Donation.id).label("total_donations"),
                    func.coalesce(func.sum(Donation.amount), 0).label("total_donation_amount"),
                    func.coalesce(func.avg(Donation.amount), 0).label("average_donation_amount"),
                    func.count(func.distinct(case((Donor.high_potential_donor.is_(True), Donor.id)))).label(
                        "high_potential_donors"
                    ),
                    func.count(func.distinct(case((Donor.is_couple.is_(True), Donor.id)))).label("couples_count"),
                    func.count(func.distinct(case((Donor.is_couple.is_(False), Donor.id)))).label(
                        "individuals_count"
                    ),
                )
                .outerjoin(Donation, Donation.donor_id == Donor.id)
                .filter(Donor.organization_id == organization_id)
                .one()
            )
            stats = dict(row._mapping)
            stats["average_donation_amount"] = float(stats["average_donation_amount"])
            logger.info(
                f"[Query Tools] Statistics for {organization_id}: "
                f"{stats['total_donors']} donors, {stats['total_donations']} donations"
            )
            return stats
        finally:
            self._close_db(db)

    def get_top_donors(self, organization_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        logger.info(f"[Query Tools] Getting top {limit} donors for organization {organization_id}")
        total = func.sum(Donation.amount)
        db = self._get_db()
        try:
            results = (
                db.query(
                    Donor.id,
                    Donor.first_name,
                    Donor.last_name,
                    Donor.display_name,
                    Donor.email,
                    total.label("total_donations"),
                    func.count(Donation.id).label("donation_count"),
                    func.max(Donation.date).label("last_donation_date"),
                )
                .join(Donation, Donation.donor_id == Donor.id)
                .filter(Donor.organization_id == organization_id)
                .group_by(Donor.id)
                .order_by(total.desc())
                .limit(limit)
                .all()
            )
            return _rows(results)
        finally:
            self._close_db(db)

    # =========================================================================
    # Flexible queries
    # =========================================================================

    def execute_flexible_query(
        self,
        query_type: Union[FlexibleQueryType, str],
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """
        Raises:
            ValueError: Unknown query type
        """
        try:
            query_type = FlexibleQueryType(query_type)
        except ValueError:
            raise ValueError(f"Unknown query type: {query_type}")

        filters = filters or {}
        logger.info(
            f"[Query Tools] Flexible query {query_type.value} for organization {organization_id} "
            f"with filters: {filters}"
        )

        db = self._get_db()
        try:
            if query_type == FlexibleQueryType.CUSTOM_DONOR_SEARCH:
                return self._custom_donor_search(db, organization_id, filters, limit)

            query = (
                db.query(
                    Donor.id.label("donor_id"),
                    Donor.first_name.label("donor_first_name"),
                    Donor.last_name.label("donor_last_name"),
                    Donor.display_name.label("donor_display_name"),
                    Donor.email.label("donor_email"),
                    Donation.id.label("donation_id"),
                    Donation.date.label("donation_date"),
                    Donation.amount.label("donation_amount"),
                    Donation.currency.label("donation_currency"),
                    Project.id.label("project_id"),
                    Project.name.label("project_name"),
                    Project.description.label("project_description"),
                )
                .select_from(Donation)
                .join(Donor, Donation.donor_id == Donor.id)
                .join(Project, Donation.project_id == Project.id)
                .filter(Donor.organization_id == organization_id)
            )

            donor_name = filters.get("donor_name")
            project_name = filters.get("project_name")
            date_filter = _date_filter(filters.get("start_date"), filters.get("end_date"))

            if query_type in (FlexibleQueryType.DONOR_DONATIONS_BY_PROJECT,
                              FlexibleQueryType.DONOR_DONATIONS_BY_DATE,
                              FlexibleQueryType.DONOR_PROJECT_HISTORY) and donor_name:
                query = query.filter(_name_filter(donor_name))
            if query_type in (FlexibleQueryType.DONOR_DONATIONS_BY_PROJECT,
                              FlexibleQueryType.PROJECT_DONATIONS) and project_name:
                query = query.filter(Project.name.ilike(f"%{project_name}%"))
            if query_type in (FlexibleQueryType.DONOR_DONATIONS_BY_DATE,
                              FlexibleQueryType.PROJECT_DONATIONS) and date_filter is not None:
                query = query.filter(date_filter)

            if query_type == FlexibleQueryType.PROJECT_DONATIONS:
                query = query.order_by(Donation.date.desc(), Donation.amount.desc())
            else:
                query = query.order_by(Donation.date.desc())

            rows = _rows(query.limit(limit).all())

            if query_type == FlexibleQueryType.DONOR_PROJECT_HISTORY:
                totals: Dict[tuple, List[int]] = defaultdict(lambda: [0, 0])
                for row in rows:
                    entry = totals[(row["project_id"], row["donor_id"])]
                    entry[0] += row["donation_amount"]
                    entry[1] += 1
                for row in rows:
                    total, count = totals[(row["project_id"], row["donor_id"])]
                    row["project_total_from_donor"] = total
                    row["project_donation_count"] = count

            return rows
        finally:
            self._close_db(db)

    def _custom_donor_search(self, db: Session, organization_id: str, filters: Dict[str, Any],
                             limit: int) -> List[Dict[str, Any]]:
        total = func.coalesce(func.sum(Donation.amount), 0)
        conditions = [Donor.organization_id == organization_id]

        if filters.get("name"):
            conditions.append(_name_filter(filters["name"]))
        for key, column in (("email", Donor.email), ("phone", Donor.phone), ("state", Donor.state)):
            if filters.get(key):
                conditions.append(column.ilike(f"%{filters[key]}%"))
        if isinstance(filters.get("is_couple"), bool):
            conditions.append(Donor.is_couple.is_(filters["is_couple"]))
        if isinstance(filters.get("high_potential"), bool):
            conditions.append(Donor.high_potential_donor.is_(filters["high_potential"]))
        if filters.get("assigned_staff"):
            pattern = f"%{filters['assigned_staff']}%"
            conditions.append(or_(
                Staff.first_name.ilike(pattern),
                Staff.last_name.ilike(pattern),
                (Staff.first_name + " " + Staff.last_name).ilike(pattern),
            ))

        results = (
            db.query(
                Donor.id,
                Donor.first_name,
                Donor.last_name,
                Donor.display_name,
                Donor.email,
                Donor.phone,
                Donor.address,
                Donor.state,
                Donor.is_couple,
                Donor.high_potential_donor,
                Donor.current_stage_name,
                Staff.id.label("assigned_staff_id"),
                (Staff.first_name + " " + Staff.last_name).label("assigned_staff_name"),
                total.label("total_donations"),
                func.count(Donation.id).label("donation_count"),
                func.max(Donation.date).label("last_donation_date"),
            )
            .outerjoin(Staff, Donor.assigned_to_staff_id == Staff.id)
            .outerjoin(Donation, Donation.donor_id == Donor.id)
            .filter(and_(*conditions))
            .group_by(Donor.id, Staff.id)
            .order_by(total.desc())
            .limit(limit)
            .all()
        )
        return _rows(results)


def get_whatsapp_query_tools_service(db: Optional[Session] = None) -> WhatsAppQueryToolsService:
    """Get WhatsApp query tools service instance."""
    return WhatsAppQueryToolsService(db)
