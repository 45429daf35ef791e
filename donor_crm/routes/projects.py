"""
Project routes.
"""

from typing import Optional, List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import ProjectCreate, ProjectUpdate, ProjectResponse
from .dependencies import get_organization_id

router = APIRouter(prefix="/api/projects", tags=["Projects"])


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    active: Optional[bool] = None,
    search_term: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.project_service import get_project_service

    return get_project_service(db).list(organization_id, active, search_term, limit, offset)


@router.get("/default", response_model=ProjectResponse)
async def get_default_project(
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """The organization's General project, created on first use."""
    from ..services.project_service import get_project_service

    return get_project_service(db).get_or_create_default(organization_id)


@router.post("", response_model=ProjectResponse)
async def create_project(
    data: ProjectCreate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.project_service import get_project_service

    return get_project_service(db).create(organization_id, data)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.project_service import get_project_service

    return get_project_service(db).get_by_id(organization_id, project_id)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    data: ProjectUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.project_service import get_project_service

    return get_project_service(db).update(organization_id, project_id, data)


@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.project_service import get_project_service

    get_project_service(db).delete(organization_id, project_id)
    return {"success": True}
