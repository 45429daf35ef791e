"""
Inbound webhooks.
"""

from .whatsapp_webhook import WhatsAppWebhookHandler, get_webhook_handler

__all__ = ["WhatsAppWebhookHandler", "get_webhook_handler"]
