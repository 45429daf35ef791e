"""
Staff routes: CRUD, primary staff, signatures, WhatsApp access and activity.
"""

from typing import Optional, List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import (
    StaffCreate,
    StaffUpdate,
    StaffResponse,
    StaffListResponse,
    StaffSearchParams,
    StaffOrderBy,
    OrderDirection,
    SignatureUpdate,
    DonorResponse,
    TodoResponse,
    PhoneNumberRequest,
    PhonePermissionRequest,
    WhatsAppToggleRequest,
    StaffPhoneNumberResponse,
    StaffActivityResponse,
)
from .dependencies import get_organization_id

router = APIRouter(prefix="/api/staff", tags=["Staff"])


@router.get("", response_model=StaffListResponse)
async def list_staff(
    search_term: Optional[str] = None,
    is_real_person: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    order_by: Optional[StaffOrderBy] = None,
    order_direction: OrderDirection = OrderDirection.ASC,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    params = StaffSearchParams(
        search_term=search_term,
        is_real_person=is_real_person,
        limit=limit,
        offset=offset,
        order_by=order_by,
        order_direction=order_direction,
    )
    return get_staff_service(db).list(organization_id, params)


@router.get("/primary", response_model=Optional[StaffResponse])
async def get_primary_staff(
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).get_primary(organization_id)


@router.post("", response_model=StaffResponse)
async def create_staff(
    data: StaffCreate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).create(organization_id, data)


@router.get("/{staff_id}", response_model=StaffResponse)
async def get_staff(
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).get_by_id(organization_id, staff_id)


@router.patch("/{staff_id}", response_model=StaffResponse)
async def update_staff(
    staff_id: int,
    data: StaffUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).update(organization_id, staff_id, data)


@router.delete("/{staff_id}")
async def delete_staff(
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    get_staff_service(db).delete(organization_id, staff_id)
    return {"success": True}


@router.post("/{staff_id}/primary", response_model=StaffResponse)
async def set_primary_staff(
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).set_primary(organization_id, staff_id)


@router.delete("/{staff_id}/primary", response_model=StaffResponse)
async def unset_primary_staff(
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).unset_primary(organization_id, staff_id)


@router.put("/{staff_id}/signature", response_model=StaffResponse)
async def update_signature(
    staff_id: int,
    data: SignatureUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).update_signature(organization_id, staff_id, data.signature)


@router.get("/{staff_id}/donors", response_model=List[DonorResponse])
async def get_assigned_donors(
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).get_assigned_donors(organization_id, staff_id)


@router.get("/{staff_id}/todos", response_model=List[TodoResponse])
async def get_staff_todos(
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    return get_todo_service(db).get_by_staff(organization_id, staff_id)


# =============================================================================
# WhatsApp Access
# =============================================================================


@router.put("/{staff_id}/whatsapp", response_model=StaffResponse)
async def toggle_whatsapp(
    staff_id: int,
    data: WhatsAppToggleRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service

    return get_staff_service(db).toggle_whatsapp(organization_id, staff_id, data.enabled)


@router.get("/{staff_id}/phone-numbers", response_model=List[StaffPhoneNumberResponse])
async def list_phone_numbers(
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service
    from ..services.whatsapp.permission_service import get_whatsapp_permission_service

    get_staff_service(db).get_by_id(organization_id, staff_id)
    return get_whatsapp_permission_service(db).get_staff_phone_numbers(staff_id)


@router.post("/{staff_id}/phone-numbers")
async def add_phone_number(
    staff_id: int,
    data: PhoneNumberRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service
    from ..services.whatsapp.permission_service import get_whatsapp_permission_service

    get_staff_service(db).get_by_id(organization_id, staff_id)
    if not get_whatsapp_permission_service(db).add_phone_number_to_staff(staff_id, data.phone_number):
        raise HTTPException(status_code=400, detail="Failed to add phone number")
    return {"success": True}


@router.delete("/{staff_id}/phone-numbers/{phone_number}")
async def remove_phone_number(
    staff_id: int,
    phone_number: str,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service
    from ..services.whatsapp.permission_service import get_whatsapp_permission_service

    get_staff_service(db).get_by_id(organization_id, staff_id)
    if not get_whatsapp_permission_service(db).remove_phone_number_from_staff(staff_id, phone_number):
        raise HTTPException(status_code=500, detail="Failed to remove phone number")
    return {"success": True}


@router.put("/{staff_id}/phone-numbers/{phone_number}")
async def toggle_phone_permission(
    staff_id: int,
    phone_number: str,
    data: PhonePermissionRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.staff_service import get_staff_service
    from ..services.whatsapp.permission_service import get_whatsapp_permission_service

    get_staff_service(db).get_by_id(organization_id, staff_id)
    if not get_whatsapp_permission_service(db).toggle_phone_permission(staff_id, phone_number, data.is_allowed):
        raise HTTPException(status_code=500, detail="Failed to update phone permission")
    return {"success": True}


@router.get("/{staff_id}/whatsapp/activity", response_model=List[StaffActivityResponse])
async def get_staff_activity(
    staff_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.whatsapp.staff_logging_service import get_whatsapp_staff_logging_service

    return get_whatsapp_staff_logging_service(db).get_staff_activity_log(staff_id, organization_id, limit, offset)


@router.get("/{staff_id}/whatsapp/stats")
async def get_staff_activity_stats(
    staff_id: int,
    days: int = Query(30, ge=1, le=365),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.whatsapp.staff_logging_service import get_whatsapp_staff_logging_service

    return get_whatsapp_staff_logging_service(db).get_staff_activity_stats(staff_id, organization_id, days)
