"""
WhatsApp Webhook Handler - staff messages to the donor assistant

Handles incoming WhatsApp Cloud API webhook events:
- Permission check of the sender's phone number
- Text messages: answered by the assistant
- Voice messages: downloaded, transcribed with Whisper, then answered

Webhook URL: POST /api/whatsapp/webhook
Verification: GET /api/whatsapp/webhook?hub.mode=subscribe&hub.verify_token=...
"""

import hashlib
import hmac
import logging
import time
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from ..clients.voice_transcriber import VoiceTranscriber
from ..clients.whatsapp_messaging import WhatsAppMessagingClient
from ..config import get_crm_settings
from ..services.whatsapp.ai_service import WhatsAppAIService
from ..services.whatsapp.permission_service import WhatsAppPermissionService
from ..services.whatsapp.staff_logging_service import WhatsAppStaffLoggingService
from monitoring import capture_exception

logger = logging.getLogger(__name__)

WHATSAPP_OBJECT = "whatsapp_business_account"
PERMISSION_DENIED_REPLY = (
    "Sorry, you don't have permission to use this WhatsApp service. Please contact your administrator."
)
VOICE_FAILURE_REPLY = (
    "Sorry, I had trouble processing your voice message. Could you please try sending it as text instead?"
)
UNSUPPORTED_REPLY = "Sorry, I can only understand text and voice messages."


class InvalidWebhookObject(ValueError):
    """Payload is not a WhatsApp Business Account event."""


class WhatsAppWebhookHandler:
    """
    Routes incoming WhatsApp messages to the donor assistant.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        permission_service: Optional[WhatsAppPermissionService] = None,
        logging_service: Optional[WhatsAppStaffLoggingService] = None,
        ai_service: Optional[WhatsAppAIService] = None,
        messaging_client: Optional[WhatsAppMessagingClient] = None,
        transcriber: Optional[VoiceTranscriber] = None,
    ):
        self.settings = get_crm_settings()
        self.permission_service = permission_service or WhatsAppPermissionService(db)
        self.logging_service = logging_service or WhatsAppStaffLoggingService(db)
        self.ai_service = ai_service or WhatsAppAIService(db)
        self.messaging_client = messaging_client or WhatsAppMessagingClient()
        self.transcriber = transcriber or VoiceTranscriber()

    def verify_signature(self, payload: bytes, signature: str) -> bool:
        """
        Verify the X-Hub-Signature-256 header against the app secret.

        Args:
            payload: Raw request body
            signature: Header value, "sha256=<hex>"
        """
        if not signature or not self.settings.whatsapp_app_secret:
            return False

        expected_signature = hmac.new(
            self.settings.whatsapp_app_secret.encode(),
            payload,
            hashlib.sha256,
        ).hexdigest()

        provided = signature.replace("sha256=", "")
        return hmac.compare_digest(expected_signature, provided)

    async def handle_webhook(self, payload: Dict[str, Any]) -> int:
        """
        Process a webhook payload.

        Returns:
            Number of messages handled

        Raises:
            InvalidWebhookObject: payload["object"] is not a WhatsApp business account
        """
        if payload.get("object") != WHATSAPP_OBJECT:
            logger.warning(f"[WhatsApp Webhook] Invalid object type: {payload.get('object')}")
            raise InvalidWebhookObject("Invalid object type")

        processed = 0
        for entry in payload.get("entry", []):
            for change in entry.get("changes", []):
                value = change.get("value", {})
                phone_number_id = value.get("metadata", {}).get("phone_number_id")
                for message in value.get("messages", []) or []:
                    await self._handle_message(message, phone_number_id)
                    processed += 1
        return processed

    async def _handle_message(self, message: Dict[str, Any], phone_number_id: str):
        from_number = message.get("from")
        message_type = message.get("type")
        logger.info(
            f"[WhatsApp Webhook] Processing {message_type} message {message.get('id')} from {from_number}"
        )

        permission = self.permission_service.check_phone_permission(from_number)
        if not permission["is_allowed"]:
            logger.warning(f"[WhatsApp Webhook] Permission denied for {from_number}: {permission['reason']}")
            attempted = (
                message.get("text", {}).get("body") if message_type == "text" else f"{message_type} message"
            )
            self.logging_service.log_permission_denied(
                from_number, permission["reason"] or "Unknown reason", attempted
            )
            await self.messaging_client.send_text(phone_number_id, from_number, PERMISSION_DENIED_REPLY)
            return

        staff_id = permission["staff_id"]
        organization_id = permission["organization_id"]
        staff = permission["staff"]
        logger.info(
            f"[WhatsApp Webhook] Permission granted for {from_number} - Staff: "
            f"{staff['first_name']} {staff['last_name']} (ID: {staff_id}) in org: {organization_id}"
        )

        if message_type == "text":
            await self._handle_text(message, phone_number_id, staff_id, organization_id)
        elif message_type == "audio":
            await self._handle_audio(message, phone_number_id, staff_id, organization_id)
        else:
            logger.info(f"[WhatsApp Webhook] Unsupported message type {message_type} from {from_number}")
            await self.messaging_client.send_text(phone_number_id, from_number, UNSUPPORTED_REPLY)

    async def _answer(self, text: str, message: Dict[str, Any], phone_number_id: str,
                      staff_id: int, organization_id: str, is_transcribed: bool):
        from_number = message["from"]
        result = await self.ai_service.process_message(
            text,
            organization_id,
            staff_id,
            from_number,
            is_transcribed=is_transcribed,
            message_id=message.get("id"),
        )
        response_text = result["response"]
        logger.info(f"[WhatsApp Webhook] AI response generated (tokens: {result['tokens_used']['total_tokens']})")

        self.logging_service.log_message_sent(
            staff_id, organization_id, from_number, response_text, result["tokens_used"]
        )
        await self.messaging_client.send_text(phone_number_id, from_number, response_text)

    async def _handle_text(self, message: Dict[str, Any], phone_number_id: str,
                           staff_id: int, organization_id: str):
        from_number = message["from"]
        text = message.get("text", {}).get("body", "")
        self.logging_service.log_message_received(
            staff_id, organization_id, from_number, text, "text", message.get("id")
        )
        try:
            await self._answer(text, message, phone_number_id, staff_id, organization_id, is_transcribed=False)
        except Exception as e:
            self.logging_service.log_error(
                staff_id, organization_id, from_number, str(e), None, "text_message_processing"
            )
            raise

    async def _handle_audio(self, message: Dict[str, Any], phone_number_id: str,
                            staff_id: int, organization_id: str):
        from_number = message["from"]
        audio_id = message.get("audio", {}).get("id")
        logger.info(f"[WhatsApp Webhook] Processing voice message from {from_number}")

        try:
            started = time.monotonic()
            audio = await self.messaging_client.download_audio(audio_id)
            transcription = await self.transcriber.transcribe(audio, f"voice_{message.get('id')}.ogg")
            logger.info(f'[WhatsApp Webhook] Voice message transcribed: "{transcription}"')

            self.logging_service.log_voice_transcribed(
                staff_id, organization_id, from_number, audio_id, transcription,
                int((time.monotonic() - started) * 1000),
            )
            self.logging_service.log_message_received(
                staff_id, organization_id, from_number, transcription, "audio", message.get("id")
            )
            await self._answer(transcription, message, phone_number_id, staff_id, organization_id,
                               is_transcribed=True)
        except Exception as e:
            logger.error(f"[WhatsApp Webhook] Error processing voice message: {e}")
            self.logging_service.log_error(
                staff_id, organization_id, from_number, str(e), None, "voice_message_processing"
            )
            capture_exception(e, {"phone": from_number, "organization_id": organization_id})
            await self.messaging_client.send_text(phone_number_id, from_number, VOICE_FAILURE_REPLY)


_webhook_handler: Optional[WhatsAppWebhookHandler] = None


def get_webhook_handler() -> WhatsAppWebhookHandler:
    """Process-wide handler used by the webhook route."""
    global _webhook_handler
    if _webhook_handler is None:
        _webhook_handler = WhatsAppWebhookHandler()
    return _webhook_handler
