"""
Donation routes.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import (
    DonationCreate,
    DonationUpdate,
    DonationResponse,
    DonationListResponse,
    DonationSearchParams,
    DonationOrderBy,
    OrderDirection,
)
from .dependencies import get_organization_id

router = APIRouter(prefix="/api/donations", tags=["Donations"])


@router.get("", response_model=DonationListResponse)
async def list_donations(
    donor_id: Optional[int] = None,
    project_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    order_by: DonationOrderBy = DonationOrderBy.DATE,
    order_direction: OrderDirection = OrderDirection.DESC,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donation_service import get_donation_service

    params = DonationSearchParams(
        donor_id=donor_id,
        project_id=project_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
        order_by=order_by,
        order_direction=order_direction,
    )
    return get_donation_service(db).list(organization_id, params)


@router.post("", response_model=DonationResponse)
async def create_donation(
    data: DonationCreate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donation_service import get_donation_service

    return get_donation_service(db).create(organization_id, data)


@router.get("/{donation_id}", response_model=DonationResponse)
async def get_donation(
    donation_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donation_service import get_donation_service

    return get_donation_service(db).get_by_id(organization_id, donation_id)


@router.patch("/{donation_id}", response_model=DonationResponse)
async def update_donation(
    donation_id: int,
    data: DonationUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donation_service import get_donation_service

    return get_donation_service(db).update(organization_id, donation_id, data)


@router.delete("/{donation_id}")
async def delete_donation(
    donation_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.donation_service import get_donation_service

    get_donation_service(db).delete(organization_id, donation_id)
    return {"success": True}
