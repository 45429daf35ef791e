"""
Project Service - initiatives that donations are made to
"""

import logging
from typing import Optional, List
from sqlalchemy.orm import Session

from database.models import Project, Donation
from .base import BaseService
from ..config import DEFAULT_PROJECT_NAME, DEFAULT_PROJECT_DESCRIPTION
from ..errors import CRMError, ErrorCode, not_found
from ..models import ProjectCreate, ProjectUpdate, ProjectResponse

logger = logging.getLogger(__name__)


def get_or_create_default_project(db: Session, organization_id: str) -> Project:
    """The organization's "General" project, created on first use."""
    project = (
        db.query(Project)
        .filter(Project.organization_id == organization_id, Project.name == DEFAULT_PROJECT_NAME)
        .first()
    )
    if project:
        return project

    project = Project(
        organization_id=organization_id,
        name=DEFAULT_PROJECT_NAME,
        description=DEFAULT_PROJECT_DESCRIPTION,
        active=True,
        tags=[],
    )
    db.add(project)
    db.flush()
    logger.info(f"Created default project for organization {organization_id}")
    return project


class ProjectService(BaseService):
    """Project CRUD."""

    def _get_project(self, db: Session, organization_id: str, project_id: int) -> Project:
        project = (
            db.query(Project)
            .filter(Project.id == project_id, Project.organization_id == organization_id)
            .first()
        )
        if not project:
            raise not_found("Project")
        return project

    def create(self, organization_id: str, data: ProjectCreate) -> ProjectResponse:
        db = self._get_db()
        try:
            project = Project(organization_id=organization_id, **data.model_dump())
            db.add(project)
            db.commit()
            db.refresh(project)
            logger.info(f"Created project {project.id} in organization {organization_id}")
            return ProjectResponse.model_validate(project)
        finally:
            self._close_db(db)

    def update(self, organization_id: str, project_id: int, data: ProjectUpdate) -> ProjectResponse:
        db = self._get_db()
        try:
            project = self._get_project(db, organization_id, project_id)
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(project, key, value)
            db.commit()
            db.refresh(project)
            return ProjectResponse.model_validate(project)
        finally:
            self._close_db(db)

    def delete(self, organization_id: str, project_id: int) -> bool:
        """Delete a project that has no donations."""
        db = self._get_db()
        try:
            project = self._get_project(db, organization_id, project_id)
            if db.query(Donation.id).filter(Donation.project_id == project_id).first():
                raise CRMError(ErrorCode.BAD_REQUEST, "Cannot delete a project that has donations")
            db.delete(project)
            db.commit()
            logger.info(f"Deleted project {project_id}")
            return True
        finally:
            self._close_db(db)

    def get_by_id(self, organization_id: str, project_id: int) -> ProjectResponse:
        db = self._get_db()
        try:
            return ProjectResponse.model_validate(self._get_project(db, organization_id, project_id))
        finally:
            self._close_db(db)

    def list(
        self,
        organization_id: str,
        active: Optional[bool] = None,
        search_term: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ProjectResponse]:
        db = self._get_db()
        try:
            query = db.query(Project).filter(Project.organization_id == organization_id)
            if active is not None:
                query = query.filter(Project.active.is_(active))
            if search_term and search_term.strip():
                query = query.filter(Project.name.ilike(f"%{search_term.strip()}%"))
            projects = query.order_by(Project.name, Project.id).offset(offset).limit(limit).all()
            return [ProjectResponse.model_validate(p) for p in projects]
        finally:
            self._close_db(db)

    def get_or_create_default(self, organization_id: str) -> ProjectResponse:
        db = self._get_db()
        try:
            project = get_or_create_default_project(db, organization_id)
            db.commit()
            db.refresh(project)
            return ProjectResponse.model_validate(project)
        finally:
            self._close_db(db)


def get_project_service(db: Optional[Session] = None) -> ProjectService:
    """Get project service instance."""
    return ProjectService(db)
