"""
Person research storage - versioned research results per donor
"""

import logging
from typing import Optional, List, Dict, Any
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import PersonResearch, Donor
from ..base import BaseService
from ...errors import not_found

logger = logging.getLogger(__name__)


def _to_dict(row: PersonResearch) -> Dict[str, Any]:
    return {
        "id": row.id,
        "donor_id": row.donor_id,
        "organization_id": row.organization_id,
        "user_id": row.user_id,
        "research_topic": row.research_topic,
        "research_data": row.research_data,
        "is_live": row.is_live,
        "version": row.version,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


class PersonResearchDatabaseService(BaseService):
    """
    Each run is a new version; at most one version per donor is live.
    """

    def save_person_research(
        self,
        donor_id: int,
        organization_id: str,
        user_id: str,
        result: Dict[str, Any],
        set_as_live: bool = True,
    ) -> Dict[str, Any]:
        """
        Store a research result as the donor's next version.

        When live, older versions stop being live and the donor's
        high_potential_donor flag follows the structured data.
        """
        db = self._get_db()
        try:
            latest = (
                db.query(func.max(PersonResearch.version))
                .filter(
                    PersonResearch.donor_id == donor_id,
                    PersonResearch.organization_id == organization_id,
                )
                .scalar()
            )
            if set_as_live:
                db.query(PersonResearch).filter(
                    PersonResearch.donor_id == donor_id,
                    PersonResearch.organization_id == organization_id,
                ).update({"is_live": False}, synchronize_session=False)

            row = PersonResearch(
                donor_id=donor_id,
                organization_id=organization_id,
                user_id=user_id,
                research_topic=result["research_topic"],
                research_data=result,
                is_live=set_as_live,
                version=(latest or 0) + 1,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info(f"[Person Research] Saved version {row.version} for donor {donor_id}")

            structured = result.get("structured_data") or {}
            if set_as_live and "high_potential_donor" in structured:
                try:
                    db.query(Donor).filter(
                        Donor.id == donor_id, Donor.organization_id == organization_id
                    ).update(
                        {"high_potential_donor": bool(structured["high_potential_donor"])},
                        synchronize_session=False,
                    )
                    db.commit()
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.error(f"[Person Research] Failed to update donor {donor_id} potential flag: {e}")

            return _to_dict(row)
        finally:
            self._close_db(db)

    def get_live_research(self, donor_id: int, organization_id: str) -> Optional[Dict[str, Any]]:
        db = self._get_db()
        try:
            row = (
                db.query(PersonResearch)
                .filter(
                    PersonResearch.donor_id == donor_id,
                    PersonResearch.organization_id == organization_id,
                    PersonResearch.is_live.is_(True),
                )
                .first()
            )
            return _to_dict(row) if row else None
        finally:
            self._close_db(db)

    def get_all_versions(self, donor_id: int, organization_id: str) -> List[Dict[str, Any]]:
        """All versions, newest first."""
        db = self._get_db()
        try:
            rows = (
                db.query(PersonResearch)
                .filter(
                    PersonResearch.donor_id == donor_id,
                    PersonResearch.organization_id == organization_id,
                )
                .order_by(PersonResearch.version.desc())
                .all()
            )
            return [_to_dict(r) for r in rows]
        finally:
            self._close_db(db)

    def get_by_version(self, donor_id: int, organization_id: str, version: int) -> Optional[Dict[str, Any]]:
        db = self._get_db()
        try:
            row = (
                db.query(PersonResearch)
                .filter(
                    PersonResearch.donor_id == donor_id,
                    PersonResearch.organization_id == organization_id,
                    PersonResearch.version == version,
                )
                .first()
            )
            return _to_dict(row) if row else None
        finally:
            self._close_db(db)

    def set_live_version(self, donor_id: int, organization_id: str, version: int) -> Dict[str, Any]:
        db = self._get_db()
        try:
            row = (
                db.query(PersonResearch)
                .filter(
                    PersonResearch.donor_id == donor_id,
                    PersonResearch.organization_id == organization_id,
                    PersonResearch.version == version,
                )
                .first()
            )
            if not row:
                raise not_found("Research version")

            db.query(PersonResearch).filter(
                PersonResearch.donor_id == donor_id,
                PersonResearch.organization_id == organization_id,
                PersonResearch.id != row.id,
            ).update({"is_live": False}, synchronize_session=False)
            row.is_live = True
            db.commit()
            db.refresh(row)
            return _to_dict(row)
        finally:
            self._close_db(db)


def get_person_research_database_service(db: Optional[Session] = None) -> PersonResearchDatabaseService:
    """Get person research database service instance."""
    return PersonResearchDatabaseService(db)
