"""
Organization Service - profile and memory of the current organization
"""

import logging
from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Session

from database.models import Organization
from .base import BaseService
from ..errors import CRMError, ErrorCode, not_found
from ..models import OrganizationUpdate, OrganizationResponse

logger = logging.getLogger(__name__)


class OrganizationService(BaseService):
    """Organization profile, writing instructions and memory."""

    def __init__(self, db: Optional[Session] = None, executor=None):
        super().__init__(db)
        self._executor = executor

    async def _get_executor(self):
        if self._executor is None:
            from background_job_executor import get_executor
            self._executor = await get_executor()
        return self._executor

    def _get_org(self, db: Session, organization_id: str) -> Organization:
        organization = db.query(Organization).filter(Organization.id == organization_id).first()
        if not organization:
            raise not_found("Organization")
        return organization

    def get_or_create(self, organization_id: str, name: Optional[str] = None) -> OrganizationResponse:
        """Return the organization, creating a bare record on first use."""
        db = self._get_db()
        try:
            organization = db.query(Organization).filter(Organization.id == organization_id).first()
            if not organization:
                organization = Organization(id=organization_id, name=name or organization_id, memory=[])
                db.add(organization)
                db.commit()
                db.refresh(organization)
                logger.info(f"Created organization {organization_id}")
            return OrganizationResponse.model_validate(organization)
        finally:
            self._close_db(db)

    def get_current(self, organization_id: str) -> OrganizationResponse:
        db = self._get_db()
        try:
            return OrganizationResponse.model_validate(self._get_org(db, organization_id))
        finally:
            self._close_db(db)

    async def update_current(self, organization_id: str, data: OrganizationUpdate) -> OrganizationResponse:
        """
        Update profile fields. A new website URL starts the website summary job.
        """
        db = self._get_db()
        try:
            organization = self._get_org(db, organization_id)
            previous_url = organization.website_url
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(organization, key, value)
            db.commit()
            db.refresh(organization)
            logger.info(f"Updated organization {organization_id}")
            response = OrganizationResponse.model_validate(organization)
        finally:
            self._close_db(db)

        if response.website_url and response.website_url != previous_url:
            await self.start_website_summary(organization_id, response.website_url)
        return response

    async def start_website_summary(self, organization_id: str, url: str) -> str:
        """Submit the crawl-and-summarize job for the organization website."""
        from ..jobs.website_summary_job import crawl_and_summarize_website

        executor = await self._get_executor()
        job_id = f"website_summary_{organization_id}_{int(datetime.utcnow().timestamp())}"
        executor.submit(job_id, crawl_and_summarize_website, {"organization_id": organization_id, "url": url})
        logger.info(f"Website summary job {job_id} started for {url}")
        return job_id

    # =========================================================================
    # Memory
    # =========================================================================

    def get_memory(self, organization_id: str) -> List[str]:
        db = self._get_db()
        try:
            return list(self._get_org(db, organization_id).memory or [])
        finally:
            self._close_db(db)

    def _save_memory(self, db: Session, organization: Organization, memory: List[str]) -> List[str]:
        # Assign a new list so the JSON column is flagged dirty
        organization.memory = list(memory)
        db.commit()
        return list(memory)

    def add_memory_item(self, organization_id: str, item: str) -> List[str]:
        db = self._get_db()
        try:
            organization = self._get_org(db, organization_id)
            memory = list(organization.memory or [])
            memory.append(item)
            return self._save_memory(db, organization, memory)
        finally:
            self._close_db(db)

    def update_memory_item(self, organization_id: str, index: int, item: str) -> List[str]:
        db = self._get_db()
        try:
            organization = self._get_org(db, organization_id)
            memory = list(organization.memory or [])
            if index < 0 or index >= len(memory):
                raise CRMError(ErrorCode.BAD_REQUEST, "Invalid memory index")
            memory[index] = item
            return self._save_memory(db, organization, memory)
        finally:
            self._close_db(db)

    def remove_memory_item(self, organization_id: str, index: int) -> List[str]:
        db = self._get_db()
        try:
            organization = self._get_org(db, organization_id)
            memory = list(organization.memory or [])
            if index < 0 or index >= len(memory):
                raise CRMError(ErrorCode.BAD_REQUEST, "Invalid memory index")
            memory.pop(index)
            return self._save_memory(db, organization, memory)
        finally:
            self._close_db(db)


def get_organization_service(db: Optional[Session] = None) -> OrganizationService:
    """Get organization service instance."""
    return OrganizationService(db)
