"""
WhatsApp History Service - conversation memory for the assistant
"""

import logging
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session

from database.models import WhatsAppChatMessage
from ..base import BaseService

logger = logging.getLogger(__name__)


class WhatsAppHistoryService(BaseService):
    """Stores and reads WhatsApp conversations per phone number."""

    def save_message(
        self,
        organization_id: str,
        staff_id: Optional[int],
        from_phone_number: str,
        role: str,
        content: str,
        message_id: Optional[str] = None,
        tool_calls: Optional[Any] = None,
        tool_results: Optional[Any] = None,
        tokens_used: Optional[Dict[str, Any]] = None,
    ) -> WhatsAppChatMessage:
        db = self._get_db()
        try:
            message = WhatsAppChatMessage(
                organization_id=organization_id,
                staff_id=staff_id,
                from_phone_number=from_phone_number,
                message_id=message_id,
                role=role,
                content=content,
                tool_calls=tool_calls,
                tool_results=tool_results,
                tokens_used=tokens_used,
            )
            db.add(message)
            db.commit()
            db.refresh(message)
            logger.info(f"[WhatsApp History] Saved {role} message from {from_phone_number} to history")
            return message
        except Exception:
            db.rollback()
            raise
        finally:
            self._close_db(db)

    def get_chat_history(
        self,
        organization_id: str,
        from_phone_number: str,
        limit: int = 20,
        staff_id: Optional[int] = None,
    ) -> List[WhatsAppChatMessage]:
        """The newest `limit` messages, oldest first."""
        db = self._get_db()
        try:
            query = db.query(WhatsAppChatMessage).filter(
                WhatsAppChatMessage.organization_id == organization_id,
                WhatsAppChatMessage.from_phone_number == from_phone_number,
            )
            if staff_id:
                query = query.filter(WhatsAppChatMessage.staff_id == staff_id)
            messages = (
                query.order_by(WhatsAppChatMessage.created_at.desc(), WhatsAppChatMessage.id.desc())
                .limit(limit)
                .all()
            )
            messages.reverse()
            logger.info(f"[WhatsApp History] Retrieved {len(messages)} messages for {from_phone_number}")
            return messages
        finally:
            self._close_db(db)

    @staticmethod
    def format_history_for_ai(messages: List[WhatsAppChatMessage]) -> str:
        return "\n\n".join(
            f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in messages
        )

    def clear_conversation_history(self, organization_id: str, from_phone_number: str,
                                   staff_id: Optional[int] = None) -> int:
        """Returns the number of deleted messages."""
        db = self._get_db()
        try:
            query = db.query(WhatsAppChatMessage).filter(
                WhatsAppChatMessage.organization_id == organization_id,
                WhatsAppChatMessage.from_phone_number == from_phone_number,
            )
            if staff_id:
                query = query.filter(WhatsAppChatMessage.staff_id == staff_id)
            deleted = query.delete(synchronize_session=False)
            db.commit()
            logger.info(f"[WhatsApp History] Cleared conversation history for phone {from_phone_number}")
            return deleted
        except Exception:
            db.rollback()
            raise
        finally:
            self._close_db(db)

    def cleanup_old_history(self, organization_id: str, keep_last_n: int = 100) -> int:
        """
        Keep only the newest `keep_last_n` messages per phone number.

        Returns:
            Number of deleted messages
        """
        db = self._get_db()
        try:
            phones = [
                row.from_phone_number
                for row in db.query(WhatsAppChatMessage.from_phone_number)
                .filter(WhatsAppChatMessage.organization_id == organization_id)
                .distinct()
                .all()
            ]

            total_deleted = 0
            for phone in phones:
                ids = [
                    row.id
                    for row in db.query(WhatsAppChatMessage.id)
                    .filter(
                        WhatsAppChatMessage.organization_id == organization_id,
                        WhatsAppChatMessage.from_phone_number == phone,
                    )
                    .order_by(WhatsAppChatMessage.created_at.desc(), WhatsAppChatMessage.id.desc())
                    .all()
                ]
                stale = ids[keep_last_n:]
                if stale:
                    db.query(WhatsAppChatMessage).filter(
                        WhatsAppChatMessage.id.in_(stale)
                    ).delete(synchronize_session=False)
                    total_deleted += len(stale)
                    logger.info(f"[WhatsApp History] Cleaned up {len(stale)} old messages for {phone}")

            db.commit()
            return total_deleted
        except Exception:
            db.rollback()
            raise
        finally:
            self._close_db(db)


def get_whatsapp_history_service(db: Optional[Session] = None) -> WhatsAppHistoryService:
    """Get WhatsApp history service instance."""
    return WhatsAppHistoryService(db)
