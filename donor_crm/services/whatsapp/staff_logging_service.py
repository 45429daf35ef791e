"""
WhatsApp Staff Logging Service - audit trail of assistant usage

Logging must never break message handling: database failures are logged
and reported as False.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import StaffWhatsAppActivity
from ..base import BaseService
from ...models import StaffActivityType

logger = logging.getLogger(__name__)

SUMMARY_PREVIEW_CHARS = 100


def _preview(text: str) -> str:
    text = text or ""
    if len(text) > SUMMARY_PREVIEW_CHARS:
        return text[:SUMMARY_PREVIEW_CHARS] + "..."
    return text


def _now() -> str:
    return datetime.utcnow().isoformat()


class WhatsAppStaffLoggingService(BaseService):
    """Writes and reads the staff WhatsApp activity log."""

    def log_activity(
        self,
        staff_id: Optional[int],
        organization_id: Optional[str],
        activity_type: StaffActivityType,
        phone_number: str,
        summary: str,
        data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        db = self._get_db()
        try:
            db.add(StaffWhatsAppActivity(
                staff_id=staff_id,
                organization_id=organization_id,
                activity_type=StaffActivityType(activity_type).value,
                phone_number=phone_number,
                summary=summary,
                data=data,
                activity_metadata=metadata,
            ))
            db.commit()
            logger.info(
                f'[WhatsApp Staff Logging] Logged activity "{StaffActivityType(activity_type).value}" '
                f"for staff ID: {staff_id} - {summary}"
            )
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[WhatsApp Staff Logging] Error logging activity: {e}")
            return False
        finally:
            self._close_db(db)

    # =========================================================================
    # Activity helpers
    # =========================================================================

    def log_message_received(self, staff_id: int, organization_id: str, phone_number: str,
                             message_content: str, message_type: str = "text",
                             message_id: Optional[str] = None) -> bool:
        return self.log_activity(
            staff_id, organization_id, StaffActivityType.MESSAGE_RECEIVED, phone_number,
            summary=f'Received {message_type} message: "{_preview(message_content)}"',
            data={
                "message_content": message_content,
                "message_type": message_type,
                "message_id": message_id,
                "timestamp": _now(),
            },
            metadata={"content_length": len(message_content), "message_source": "whatsapp_webhook"},
        )

    def log_message_sent(self, staff_id: int, organization_id: str, phone_number: str,
                         response_content: str, tokens_used: Optional[Dict[str, int]] = None) -> bool:
        return self.log_activity(
            staff_id, organization_id, StaffActivityType.MESSAGE_SENT, phone_number,
            summary=f'Sent AI response: "{_preview(response_content)}"',
            data={"response_content": response_content, "timestamp": _now()},
            metadata={
                "content_length": len(response_content),
                "tokens_used": tokens_used,
                "response_source": "ai_generated",
            },
        )

    def log_permission_denied(self, phone_number: str, reason: str,
                              attempted_message: Optional[str] = None) -> bool:
        # No staff or organization: the number did not resolve to one
        return self.log_activity(
            None, None, StaffActivityType.PERMISSION_DENIED, phone_number,
            summary=f"Permission denied: {reason}",
            data={"reason": reason, "attempted_message": attempted_message, "timestamp": _now()},
            metadata={"security_event": True},
        )

    def log_database_query(self, staff_id: int, organization_id: str, phone_number: str,
                           query: str, query_result: Any = None,
                           processing_time_ms: Optional[int] = None) -> bool:
        return self.log_activity(
            staff_id, organization_id, StaffActivityType.DB_QUERY_EXECUTED, phone_number,
            summary=f"Executed DB query: {_preview(query)}",
            data={"query": query, "query_result": query_result, "timestamp": _now()},
            metadata={
                "query_length": len(query),
                "result_count": len(query_result) if isinstance(query_result, list) else 1,
                "processing_time_ms": processing_time_ms,
            },
        )

    def log_ai_response_generated(self, staff_id: int, organization_id: str, phone_number: str,
                                  prompt: str, response: str, tokens_used: Dict[str, int],
                                  tool_calls: Optional[List[Dict[str, Any]]] = None,
                                  processing_time_ms: Optional[int] = None) -> bool:
        total_tokens = tokens_used.get("total_tokens", 0)
        return self.log_activity(
            staff_id, organization_id, StaffActivityType.AI_RESPONSE_GENERATED, phone_number,
            summary=f"Generated AI response using {total_tokens} tokens",
            data={
                "prompt": prompt[:500],
                "response": response,
                "tokens_used": tokens_used,
                "tool_calls": tool_calls or [],
                "timestamp": _now(),
            },
            metadata={
                "prompt_length": len(prompt),
                "response_length": len(response),
                "tool_call_count": len(tool_calls or []),
                "processing_time_ms": processing_time_ms,
                "efficiency": len(response) / total_tokens if total_tokens > 0 else 0,
            },
        )

    def log_voice_transcribed(self, staff_id: int, organization_id: str, phone_number: str,
                              audio_id: str, transcription: str,
                              processing_time_ms: Optional[int] = None) -> bool:
        return self.log_activity(
            staff_id, organization_id, StaffActivityType.VOICE_TRANSCRIBED, phone_number,
            summary=f'Transcribed voice message: "{_preview(transcription)}"',
            data={"audio_id": audio_id, "transcription": transcription, "timestamp": _now()},
            metadata={
                "transcription_length": len(transcription),
                "processing_time_ms": processing_time_ms,
                "audio_source": "whatsapp_voice",
            },
        )

    def log_error(self, staff_id: Optional[int], organization_id: Optional[str], phone_number: str,
                  error_message: str, error_details: Any = None, context: Optional[str] = None) -> bool:
        return self.log_activity(
            staff_id, organization_id, StaffActivityType.ERROR_OCCURRED, phone_number,
            summary=f"Error occurred: {error_message}",
            data={
                "error_message": error_message,
                "error_details": error_details,
                "context": context,
                "timestamp": _now(),
            },
            metadata={"error_type": "processing_error", "severity": "error"},
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_staff_activity_log(self, staff_id: int, organization_id: str,
                               limit: int = 50, offset: int = 0) -> List[StaffWhatsAppActivity]:
        db = self._get_db()
        try:
            return (
                db.query(StaffWhatsAppActivity)
                .filter(
                    StaffWhatsAppActivity.staff_id == staff_id,
                    StaffWhatsAppActivity.organization_id == organization_id,
                )
                .order_by(StaffWhatsAppActivity.created_at.desc(), StaffWhatsAppActivity.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        finally:
            self._close_db(db)

    def get_phone_activity_log(self, phone_number: str, organization_id: str,
                               limit: int = 50) -> List[StaffWhatsAppActivity]:
        db = self._get_db()
        try:
            return (
                db.query(StaffWhatsAppActivity)
                .filter(
                    StaffWhatsAppActivity.phone_number == phone_number,
                    StaffWhatsAppActivity.organization_id == organization_id,
                )
                .order_by(StaffWhatsAppActivity.created_at.desc(), StaffWhatsAppActivity.id.desc())
                .limit(limit)
                .all()
            )
        finally:
            self._close_db(db)

    def get_staff_activity_stats(self, staff_id: int, organization_id: str, days: int = 30) -> Dict[str, Any]:
        """
        Per-type counts over the last `days` days.

        Returns:
            {total_activities, messages_sent, messages_received,
             db_queries_executed, errors_occurred, voice_transcribed,
             unique_phone_numbers}
        """
        cutoff = datetime.utcnow() - timedelta(days=days)
        db = self._get_db()
        try:
            rows = (
                db.query(StaffWhatsAppActivity.activity_type, StaffWhatsAppActivity.phone_number)
                .filter(
                    StaffWhatsAppActivity.staff_id == staff_id,
                    StaffWhatsAppActivity.organization_id == organization_id,
                    StaffWhatsAppActivity.created_at >= cutoff,
                )
                .all()
            )
        finally:
            self._close_db(db)

        counts = Counter(row.activity_type for row in rows)
        return {
            "total_activities": len(rows),
            "messages_sent": counts[StaffActivityType.MESSAGE_SENT.value],
            "messages_received": counts[StaffActivityType.MESSAGE_RECEIVED.value],
            "db_queries_executed": counts[StaffActivityType.DB_QUERY_EXECUTED.value],
            "errors_occurred": counts[StaffActivityType.ERROR_OCCURRED.value],
            "voice_transcribed": counts[StaffActivityType.VOICE_TRANSCRIBED.value],
            "unique_phone_numbers": sorted({row.phone_number for row in rows}),
        }


def get_whatsapp_staff_logging_service(db: Optional[Session] = None) -> WhatsAppStaffLoggingService:
    """Get WhatsApp staff logging service instance."""
    return WhatsAppStaffLoggingService(db)
