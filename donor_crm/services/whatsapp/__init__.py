"""
WhatsApp assistant services: permissions, history, activity log, queries.
"""

from .message_deduplication import MessageDeduplicator, get_message_deduplicator, check_and_mark_message
from .permission_service import (
    WhatsAppPermissionService,
    get_whatsapp_permission_service,
    normalize_phone_number,
)
from .history_service import WhatsAppHistoryService, get_whatsapp_history_service
from .staff_logging_service import WhatsAppStaffLoggingService, get_whatsapp_staff_logging_service
from .query_tools_service import WhatsAppQueryToolsService, get_whatsapp_query_tools_service
from .sql_engine_service import WhatsAppSQLEngineService, get_whatsapp_sql_engine_service

__all__ = [
    "MessageDeduplicator",
    "get_message_deduplicator",
    "check_and_mark_message",
    "WhatsAppPermissionService",
    "get_whatsapp_permission_service",
    "normalize_phone_number",
    "WhatsAppHistoryService",
    "get_whatsapp_history_service",
    "WhatsAppStaffLoggingService",
    "get_whatsapp_staff_logging_service",
    "WhatsAppQueryToolsService",
    "get_whatsapp_query_tools_service",
    "WhatsAppSQLEngineService",
    "get_whatsapp_sql_engine_service",
]
