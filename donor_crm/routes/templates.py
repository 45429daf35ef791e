"""
Email template routes.
"""

from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import TemplateCreate, TemplateUpdate, TemplateResponse
from .dependencies import get_organization_id

router = APIRouter(prefix="/api/templates", tags=["Templates"])


@router.get("", response_model=List[TemplateResponse])
async def list_templates(
    include_inactive: bool = False,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.template_service import get_template_service

    return get_template_service(db).list(organization_id, include_inactive)


@router.post("", response_model=TemplateResponse)
async def create_template(
    data: TemplateCreate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.template_service import get_template_service

    return get_template_service(db).create(organization_id, data)


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.template_service import get_template_service

    return get_template_service(db).get_by_id(organization_id, template_id)


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: int,
    data: TemplateUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.template_service import get_template_service

    return get_template_service(db).update(organization_id, template_id, data)


@router.delete("/{template_id}")
async def delete_template(
    template_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.template_service import get_template_service

    get_template_service(db).delete(organization_id, template_id)
    return {"success": True}
