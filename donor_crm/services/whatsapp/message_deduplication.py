"""
Message deduplication for WhatsApp webhooks

WhatsApp retries deliveries it thinks failed. Messages already seen from
the same phone and organization within the window are reported as retries.
"""

import hashlib
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from ...config import get_crm_settings

logger = logging.getLogger(__name__)


class MessageDeduplicator:
    """
    In-memory cache of recently processed messages.

    Keys are phone:organization:md5(normalized text); expired entries are
    swept on every check.
    """

    def __init__(self, window_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = (
            window_seconds if window_seconds is not None
            else get_crm_settings().message_dedup_window_seconds
        )
        self._clock = clock
        # key -> (timestamp, message hash)
        self._processed: Dict[str, Tuple[float, str]] = {}

    @staticmethod
    def generate_message_hash(message: str) -> str:
        return hashlib.md5(message.strip().lower().encode("utf-8")).hexdigest()

    def generate_message_key(self, message: str, from_phone_number: str, organization_id: str) -> str:
        return f"{from_phone_number}:{organization_id}:{self.generate_message_hash(message)}"

    def cleanup(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        cutoff = self._clock() - self.window_seconds
        expired = [key for key, (ts, _) in self._processed.items() if ts < cutoff]
        for key in expired:
            del self._processed[key]
        if expired:
            logger.debug(
                f"[Message Dedup] Cleaned up {len(expired)} expired entries, {len(self._processed)} remaining"
            )
        return len(expired)

    def is_recently_processed(self, message_key: str, message_hash: str) -> bool:
        self.cleanup()
        existing = self._processed.get(message_key)
        if not existing:
            return False
        timestamp, existing_hash = existing
        return existing_hash == message_hash and self._clock() - timestamp < self.window_seconds

    def mark_message_processed(self, message_key: str, message_hash: str):
        self._processed[message_key] = (self._clock(), message_hash)

    def check_and_mark_message(self, message: str, from_phone_number: str, organization_id: str) -> bool:
        """
        Check and mark in one step.

        Returns:
            True if this message is a retry of one already processed
        """
        message_key = self.generate_message_key(message, from_phone_number, organization_id)
        message_hash = self.generate_message_hash(message)

        is_retry = self.is_recently_processed(message_key, message_hash)
        if is_retry:
            logger.debug(f"[Message Dedup] Duplicate message from {from_phone_number} in {organization_id}")
        else:
            self.mark_message_processed(message_key, message_hash)
            logger.debug(f"[Message Dedup] New message marked as processed (cache size {self.size})")
        return is_retry

    @property
    def size(self) -> int:
        return len(self._processed)

    def clear(self):
        self._processed.clear()


_default_deduplicator: Optional[MessageDeduplicator] = None


def get_message_deduplicator() -> MessageDeduplicator:
    """Process-wide deduplicator used by the webhook."""
    global _default_deduplicator
    if _default_deduplicator is None:
        _default_deduplicator = MessageDeduplicator()
    return _default_deduplicator


def check_and_mark_message(message: str, from_phone_number: str, organization_id: str) -> bool:
    return get_message_deduplicator().check_and_mark_message(message, from_phone_number, organization_id)
