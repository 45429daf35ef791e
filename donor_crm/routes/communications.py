"""
Communication thread routes: threads, messages and participants.
"""

from datetime import datetime
from typing import Optional, List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import (
    CommunicationChannel,
    ThreadCreate,
    ThreadResponse,
    MessageCreate,
    ThreadMessageResponse,
)
from .dependencies import get_organization_id

router = APIRouter(prefix="/api/communications", tags=["Communications"])


@router.get("/threads", response_model=List[ThreadResponse])
async def list_threads(
    channel: Optional[CommunicationChannel] = None,
    staff_id: Optional[int] = None,
    donor_id: Optional[int] = None,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    include_latest_message: bool = True,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).list_threads(
        organization_id, channel, staff_id, donor_id, limit, offset, include_latest_message
    )


@router.post("/threads", response_model=ThreadResponse)
async def create_thread(
    data: ThreadCreate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).create_thread(organization_id, data)


@router.get("/donors/{donor_id}/history", response_model=List[ThreadResponse])
async def get_donor_communication_history(
    donor_id: int,
    limit: int = Query(25, ge=1, le=100),
    messages_per_thread: int = Query(10, ge=1, le=100),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).get_donor_communication_history(
        organization_id, donor_id, limit, messages_per_thread
    )


@router.get("/threads/{thread_id}", response_model=ThreadResponse)
async def get_thread(
    thread_id: int,
    include_latest_message: bool = False,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).get_thread(
        organization_id, thread_id, include_latest_message=include_latest_message
    )


@router.get("/threads/{thread_id}/messages", response_model=List[ThreadMessageResponse])
async def get_messages(
    thread_id: int,
    limit: int = Query(25, ge=1, le=100),
    before_date: Optional[datetime] = None,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).get_messages(organization_id, thread_id, limit, before_date)


@router.post("/threads/{thread_id}/messages", response_model=ThreadMessageResponse)
async def add_message(
    thread_id: int,
    data: MessageCreate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).add_message(organization_id, thread_id, data)


# =============================================================================
# Participants
# =============================================================================


@router.post("/threads/{thread_id}/staff/{staff_id}", response_model=ThreadResponse)
async def add_thread_staff(
    thread_id: int,
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).add_staff(organization_id, thread_id, staff_id)


@router.delete("/threads/{thread_id}/staff/{staff_id}", response_model=ThreadResponse)
async def remove_thread_staff(
    thread_id: int,
    staff_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).remove_staff(organization_id, thread_id, staff_id)


@router.post("/threads/{thread_id}/donors/{donor_id}", response_model=ThreadResponse)
async def add_thread_donor(
    thread_id: int,
    donor_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).add_donor(organization_id, thread_id, donor_id)


@router.delete("/threads/{thread_id}/donors/{donor_id}", response_model=ThreadResponse)
async def remove_thread_donor(
    thread_id: int,
    donor_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.communication_service import get_communication_service

    return get_communication_service(db).remove_donor(organization_id, thread_id, donor_id)
