"""
Organization routes: profile and AI memory.
"""

from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import OrganizationUpdate, OrganizationResponse, MemoryItemRequest
from .dependencies import get_organization_id

router = APIRouter(prefix="/api/organizations", tags=["Organizations"])


@router.get("/current", response_model=OrganizationResponse)
async def get_current_organization(
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Get the caller's organization, creating it on first use."""
    from ..services.organization_service import get_organization_service

    return get_organization_service(db).get_or_create(organization_id)


@router.patch("/current", response_model=OrganizationResponse)
async def update_current_organization(
    data: OrganizationUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.organization_service import get_organization_service

    return await get_organization_service(db).update_current(organization_id, data)


@router.get("/current/memory", response_model=List[str])
async def get_memory(
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.organization_service import get_organization_service

    return get_organization_service(db).get_memory(organization_id)


@router.post("/current/memory", response_model=List[str])
async def add_memory_item(
    data: MemoryItemRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.organization_service import get_organization_service

    return get_organization_service(db).add_memory_item(organization_id, data.item)


@router.put("/current/memory/{index}", response_model=List[str])
async def update_memory_item(
    index: int,
    data: MemoryItemRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.organization_service import get_organization_service

    return get_organization_service(db).update_memory_item(organization_id, index, data.item)


@router.delete("/current/memory/{index}", response_model=List[str])
async def remove_memory_item(
    index: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.organization_service import get_organization_service

    return get_organization_service(db).remove_memory_item(organization_id, index)
