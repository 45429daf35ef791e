"""
Thin clients for external APIs: Google Custom Search, the WhatsApp Cloud
API and OpenAI speech-to-text.
"""

from .google_search import GoogleSearchClient, GoogleSearchError
from .whatsapp_messaging import WhatsAppMessagingClient, WhatsAppAPIError
from .voice_transcriber import VoiceTranscriber

__all__ = [
    "GoogleSearchClient",
    "GoogleSearchError",
    "WhatsAppMessagingClient",
    "WhatsAppAPIError",
    "VoiceTranscriber",
]
