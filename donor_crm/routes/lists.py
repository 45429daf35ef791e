"""
Donor list routes: CRUD, membership, criteria-built lists and CSV import.
"""

from typing import Optional, List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import (
    ListCreate,
    ListUpdate,
    ListResponse,
    ListMembersRequest,
    CreateListByCriteriaRequest,
    CSVImportRequest,
    ImportResult,
    IdsRequest,
)
from .dependencies import get_user_id, get_organization_id

router = APIRouter(prefix="/api/lists", tags=["Lists"])


@router.get("", response_model=List[ListResponse])
async def list_lists(
    search_term: Optional[str] = None,
    is_active: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    include_member_count: bool = True,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.list_service import get_list_service

    return get_list_service(db).list(organization_id, search_term, is_active, limit, offset, include_member_count)


@router.post("", response_model=ListResponse)
async def create_list(
    data: ListCreate,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.list_service import get_list_service

    return get_list_service(db).create(organization_id, data, user_id)


@router.post("/by-criteria", response_model=ListResponse)
async def create_list_by_criteria(
    data: CreateListByCriteriaRequest,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Create a list holding every donor that matches the criteria."""
    from ..services.list_service import get_list_service

    list_data = ListCreate(name=data.name, description=data.description, is_active=data.is_active)
    return get_list_service(db).create_by_criteria(organization_id, list_data, data.criteria, user_id)


@router.post("/donor-ids", response_model=List[int])
async def get_donor_ids_from_lists(
    data: IdsRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Unique donor IDs across several lists."""
    from ..services.list_service import get_list_service

    return get_list_service(db).get_donor_ids_from_lists(organization_id, data.ids)


@router.get("/{list_id}", response_model=ListResponse)
async def get_list(
    list_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.list_service import get_list_service

    return get_list_service(db).get_by_id(organization_id, list_id)


@router.patch("/{list_id}", response_model=ListResponse)
async def update_list(
    list_id: int,
    data: ListUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.list_service import get_list_service

    return get_list_service(db).update(organization_id, list_id, data)


@router.delete("/{list_id}")
async def delete_list(
    list_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.list_service import get_list_service

    get_list_service(db).delete(organization_id, list_id)
    return {"success": True}


@router.post("/{list_id}/members")
async def add_list_members(
    list_id: int,
    data: ListMembersRequest,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.list_service import get_list_service

    added = get_list_service(db).add_donors(organization_id, list_id, data.donor_ids, user_id)
    return {"success": True, "added": added}


@router.post("/{list_id}/members/remove")
async def remove_list_members(
    list_id: int,
    data: ListMembersRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.list_service import get_list_service

    removed = get_list_service(db).remove_donors(organization_id, list_id, data.donor_ids)
    return {"success": True, "removed": removed}


@router.post("/{list_id}/import", response_model=ImportResult)
async def import_csv(
    list_id: int,
    data: CSVImportRequest,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Import donors (and optionally pledges) from CSV exports into a list."""
    from ..services.list_service import get_list_service

    return get_list_service(db).import_csv(organization_id, list_id, data.accounts_csv, data.pledges_csv, user_id)
