"""
Email campaign routes: sessions, launch/retry/regenerate, and generated emails.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import (
    CreateSessionRequest,
    UpdateCampaignRequest,
    RegenerateRequest,
    UpdateEmailRequest,
    UpdateEmailStatusRequest,
    GeneratedEmailResponse,
    SessionResponse,
    SessionDetailResponse,
    SessionStatus,
)
from .dependencies import get_user_id, get_organization_id

router = APIRouter(prefix="/api/email-campaigns", tags=["Email Campaigns"])


@router.get("")
async def list_campaigns(
    status: Optional[SessionStatus] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Campaigns with sent/total email counts."""
    from ..services.email_campaign_service import get_email_campaign_service

    return get_email_campaign_service(db).list_campaigns(organization_id, status, limit, offset)


@router.post("", response_model=SessionResponse)
async def create_campaign(
    data: CreateSessionRequest,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    return get_email_campaign_service(db).create_session(organization_id, user_id, data)


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_campaign(
    session_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    return get_email_campaign_service(db).get_session(organization_id, session_id)


@router.get("/{session_id}/status")
async def get_campaign_status(
    session_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    return get_email_campaign_service(db).get_session_status(organization_id, session_id)


@router.patch("/{session_id}", response_model=SessionResponse)
async def update_campaign(
    session_id: int,
    data: UpdateCampaignRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    return get_email_campaign_service(db).update_campaign(organization_id, session_id, data)


@router.delete("/{session_id}")
async def delete_campaign(
    session_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    get_email_campaign_service(db).delete_campaign(organization_id, session_id)
    return {"success": True}


@router.post("/{session_id}/launch", response_model=SessionResponse)
async def launch_campaign(
    session_id: int,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Submit the background job that generates the campaign's emails."""
    from ..services.email_campaign_service import get_email_campaign_service

    return await get_email_campaign_service(db).launch_campaign(organization_id, user_id, session_id)


@router.post("/{session_id}/retry", response_model=SessionResponse)
async def retry_campaign(
    session_id: int,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    return await get_email_campaign_service(db).retry_campaign(organization_id, user_id, session_id)


@router.post("/{session_id}/regenerate", response_model=SessionResponse)
async def regenerate_campaign(
    session_id: int,
    data: RegenerateRequest,
    user_id: str = Depends(get_user_id),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    """Drop every generated email and generate them again."""
    from ..services.email_campaign_service import get_email_campaign_service

    return await get_email_campaign_service(db).regenerate_all_emails(organization_id, user_id, session_id, data)


# =============================================================================
# Generated Emails
# =============================================================================


@router.get("/emails/{email_id}/status")
async def get_email_status(
    email_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    return get_email_campaign_service(db).get_email_status(organization_id, email_id)


@router.put("/emails/{email_id}", response_model=GeneratedEmailResponse)
async def update_email(
    email_id: int,
    data: UpdateEmailRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    return get_email_campaign_service(db).update_email(organization_id, email_id, data)


@router.put("/emails/{email_id}/status", response_model=GeneratedEmailResponse)
async def update_email_status(
    email_id: int,
    data: UpdateEmailStatusRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.email_campaign_service import get_email_campaign_service

    return get_email_campaign_service(db).update_email_status(organization_id, email_id, data.status)
