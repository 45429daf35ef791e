"""
Donor routes: CRUD, search, assignment, notes, giving stats.
"""

from typing import Optional, List, Dict, Any
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import (
    DonorCreate,
    DonorUpdate,
    DonorResponse,
    DonorListResponse,
    DonorSearchParams,
    DonorNoteRequest,
    DonorStatsResponse,
    IdsRequest,
    AssignStaffRequest,
    BulkAssignStaffRequest,
    BulkDeleteResponse,
    Gender,
    DonorOrderBy,
    OrderDirection,
    TodoResponse,
)
from .dependencies import get_user_id, get_organization_id

router = APIRouter(prefix="/api/donors", tags=["Donors"])


def donor_search_params(
    search_term: Optional[str] = None,
    state: Optional[str] = None,
    gender: Optional[Gender] = None,
    assigned_to_staff_id: Optional[int] = None,
    only_unassigned: bool = False,
    list_id: Optional[int] = None,
    not_in_any_list: bool = False,
    only_researched: bool = False,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    order_by: Optional[DonorOrderBy] = None,
    order_direction: OrderDirection = OrderDirection.ASC,
) -> DonorSearchParams:
    return DonorSearchParams(
        search_term=search_term,
        state=state,
        gender=gender,
        assigned_to_staff_id=assigned_to_staff_id,
        only_unassigned=only_unassigned,
        list_id=list_id,
        not_in_any_list=not_in_any_list,
        only_researched=only_researched,
        limit=limit,
        offset=offset,
        order_by=order_by,
        order_direction=order_direction,
    )


@router.get("", response_model=DonorListResponse)
async def list_donors(
    params: DonorSearchParams = Depends(donor_search_params),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """List donors with filtering, sorting and pagination."""
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).list(organization_id, params)


@router.get("/for-communication")
async def list_donors_for_communication(
    params: DonorSearchParams = Depends(donor_search_params),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).list_for_communication(organization_id, params)


@router.get("/ids", response_model=List[int])
async def get_all_donor_ids(
    params: DonorSearchParams = Depends(donor_search_params),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """IDs of every donor matching the filters."""
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).get_all_ids(organization_id, params)


@router.post("/by-ids", response_model=List[DonorResponse])
async def get_donors_by_ids(
    data: IdsRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).get_by_ids(organization_id, data.ids)


@router.post("/stats", response_model=Dict[int, DonorStatsResponse])
async def get_multiple_donor_stats(
    data: IdsRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donation_service import get_donation_service

    return get_donation_service(db).get_multiple_donor_stats(organization_id, data.ids)


@router.post("/list-counts", response_model=Dict[int, int])
async def count_lists_for_donors(
    data: IdsRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).count_lists_for_donors(organization_id, data.ids)


@router.post("", response_model=DonorResponse)
async def create_donor(
    data: DonorCreate,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).create(organization_id, data, user_id)


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_donors(
    data: IdsRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).bulk_delete(organization_id, data.ids)


@router.post("/bulk-assign")
async def bulk_assign_staff(
    data: BulkAssignStaffRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    updated = get_donor_service(db).bulk_update_assigned_staff(organization_id, data.donor_ids, data.staff_id)
    return {"success": True, "updated": updated}


@router.get("/{donor_id}", response_model=DonorResponse)
async def get_donor(
    donor_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).get_by_id(organization_id, donor_id)


@router.patch("/{donor_id}", response_model=DonorResponse)
async def update_donor(
    donor_id: int,
    data: DonorUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).update(organization_id, donor_id, data)


@router.delete("/{donor_id}")
async def delete_donor(
    donor_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    get_donor_service(db).delete(organization_id, donor_id)
    return {"success": True}


@router.put("/{donor_id}/assigned-staff", response_model=DonorResponse)
async def assign_staff(
    donor_id: int,
    data: AssignStaffRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).update_assigned_staff(organization_id, donor_id, data.staff_id)


@router.post("/{donor_id}/notes", response_model=DonorResponse)
async def add_donor_note(
    donor_id: int,
    data: DonorNoteRequest,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donor_service import get_donor_service

    return get_donor_service(db).add_note(organization_id, donor_id, data.content, user_id)


@router.get("/{donor_id}/stats", response_model=DonorStatsResponse)
async def get_donor_stats(
    donor_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donation_service import get_donation_service

    return get_donation_service(db).get_donor_stats(organization_id, donor_id)


@router.get("/{donor_id}/todos", response_model=List[TodoResponse])
async def get_donor_todos(
    donor_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    return get_todo_service(db).get_by_donor(organization_id, donor_id)
