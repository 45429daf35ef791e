"""
Template Service - reusable prompts for email campaigns
"""

import logging
from typing import Optional, List
from sqlalchemy.orm import Session

from database.models import Template
from .base import BaseService
from ..errors import not_found
from ..models import TemplateCreate, TemplateUpdate, TemplateResponse

logger = logging.getLogger(__name__)


class TemplateService(BaseService):
    """Template CRUD."""

    def _get_template(self, db: Session, organization_id: str, template_id: int) -> Template:
        template = (
            db.query(Template)
            .filter(Template.id == template_id, Template.organization_id == organization_id)
            .first()
        )
        if not template:
            raise not_found("Template")
        return template

    def create(self, organization_id: str, data: TemplateCreate) -> TemplateResponse:
        db = self._get_db()
        try:
            template = Template(organization_id=organization_id, **data.model_dump())
            db.add(template)
            db.commit()
            db.refresh(template)
            logger.info(f"Created template {template.id} in organization {organization_id}")
            return TemplateResponse.model_validate(template)
        finally:
            self._close_db(db)

    def update(self, organization_id: str, template_id: int, data: TemplateUpdate) -> TemplateResponse:
        db = self._get_db()
        try:
            template = self._get_template(db, organization_id, template_id)
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(template, key, value)
            db.commit()
            db.refresh(template)
            return TemplateResponse.model_validate(template)
        finally:
            self._close_db(db)

    def delete(self, organization_id: str, template_id: int) -> bool:
        db = self._get_db()
        try:
            db.delete(self._get_template(db, organization_id, template_id))
            db.commit()
            return True
        finally:
            self._close_db(db)

    def get_by_id(self, organization_id: str, template_id: int) -> TemplateResponse:
        db = self._get_db()
        try:
            return TemplateResponse.model_validate(self._get_template(db, organization_id, template_id))
        finally:
            self._close_db(db)

    def list(self, organization_id: str, include_inactive: bool = False) -> List[TemplateResponse]:
        db = self._get_db()
        try:
            query = db.query(Template).filter(Template.organization_id == organization_id)
            if not include_inactive:
                query = query.filter(Template.is_active.is_(True))
            templates = query.order_by(Template.created_at.desc(), Template.id.desc()).all()
            return [TemplateResponse.model_validate(t) for t in templates]
        finally:
            self._close_db(db)


def get_template_service(db: Optional[Session] = None) -> TemplateService:
    """Get template service instance."""
    return TemplateService(db)
