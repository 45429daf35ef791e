"""
WhatsApp routes: Cloud API webhook plus chat history and activity lookups.
"""

import json
import logging
from typing import Optional, List
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from database.database import get_db
from ..config import get_crm_settings
from ..models import ChatMessageResponse, StaffActivityResponse
from ..webhooks.whatsapp_webhook import InvalidWebhookObject, WhatsAppWebhookHandler, get_webhook_handler
from .dependencies import get_organization_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/whatsapp", tags=["WhatsApp"])


# =============================================================================
# Webhook
# =============================================================================


@router.get("/webhook")
async def verify_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Meta subscription handshake: echo the challenge when the verify token matches."""
    verify_token = get_crm_settings().whatsapp_verify_token
    if mode == "subscribe" and verify_token and token == verify_token:
        logger.info("[WhatsApp Webhook] Webhook verified")
        return PlainTextResponse(challenge or "")

    logger.warning("[WhatsApp Webhook] Webhook verification failed")
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    handler: WhatsAppWebhookHandler = Depends(get_webhook_handler),
):
    body = await request.body()
    signature = request.headers.get("x-hub-signature-256")
    if not signature:
        raise HTTPException(status_code=401, detail="Missing signature")
    if not handler.verify_signature(body, signature):
        logger.warning("[WhatsApp Webhook] Invalid signature")
        raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        processed = await handler.handle_webhook(payload)
    except InvalidWebhookObject as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "processed": processed}


# =============================================================================
# History & Activity
# =============================================================================


@router.get("/history", response_model=List[ChatMessageResponse])
async def get_chat_history(
    phone_number: str,
    staff_id: Optional[int] = None,
    limit: int = Query(20, ge=1, le=200),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.whatsapp.history_service import get_whatsapp_history_service

    return get_whatsapp_history_service(db).get_chat_history(organization_id, phone_number, limit, staff_id)


@router.delete("/history")
async def clear_chat_history(
    phone_number: str,
    staff_id: Optional[int] = None,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.whatsapp.history_service import get_whatsapp_history_service

    deleted = get_whatsapp_history_service(db).clear_conversation_history(organization_id, phone_number, staff_id)
    return {"success": True, "deleted": deleted}


@router.get("/activity", response_model=List[StaffActivityResponse])
async def get_phone_activity(
    phone_number: str,
    limit: int = Query(50, ge=1, le=200),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.whatsapp.staff_logging_service import get_whatsapp_staff_logging_service

    return get_whatsapp_staff_logging_service(db).get_phone_activity_log(phone_number, organization_id, limit)
