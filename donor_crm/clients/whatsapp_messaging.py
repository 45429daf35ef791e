"""
WhatsApp Messaging Client - replies and media downloads via the Graph API

Docs: https://developers.facebook.com/docs/whatsapp/cloud-api
"""

import logging
import httpx
from typing import Optional, Dict, Any

from ..config import get_crm_settings, WHATSAPP_GRAPH_URL

logger = logging.getLogger(__name__)


class WhatsAppAPIError(Exception):
    """WhatsApp Cloud API request failed."""


class WhatsAppMessagingClient:
    """
    Sends text replies and downloads voice notes for the WhatsApp assistant.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            access_token: Cloud API token (defaults to WHATSAPP_TOKEN)
            transport: Optional httpx transport (tests use MockTransport)
        """
        settings = get_crm_settings()
        self.access_token = access_token or settings.whatsapp_token
        self.base_url = f"{WHATSAPP_GRAPH_URL}/{settings.whatsapp_api_version}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=30.0,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_text(self, phone_number_id: str, to: str, body: str) -> Dict[str, Any]:
        """
        Send a text message.

        Args:
            phone_number_id: Business phone number ID the message came in on
            to: Recipient (as received in the webhook)
            body: Message text
        """
        client = await self._get_client()
        response = await client.post(
            f"{self.base_url}/{phone_number_id}/messages",
            json={
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": body},
            },
        )

        if response.status_code != 200:
            logger.error(f"[WhatsApp] Failed to send message to {to} ({response.status_code}): {response.text[:200]}")
            raise WhatsAppAPIError(
                f"Failed to send WhatsApp message: {response.status_code} {response.reason_phrase}"
            )

        result = response.json()
        logger.info(f"[WhatsApp] Message sent to {to}: {result.get('messages', [{}])[0].get('id')}")
        return result

    async def get_media_url(self, media_id: str) -> str:
        """Resolve a media ID to its (short-lived) download URL."""
        client = await self._get_client()
        response = await client.get(f"{self.base_url}/{media_id}")
        if response.status_code != 200:
            raise WhatsAppAPIError(f"Failed to get media URL: {response.status_code} {response.reason_phrase}")
        return response.json()["url"]

    async def download_media(self, url: str) -> bytes:
        client = await self._get_client()
        response = await client.get(url)
        if response.status_code != 200:
            raise WhatsAppAPIError(f"Failed to download media: {response.status_code} {response.reason_phrase}")
        logger.info(f"[WhatsApp] Downloaded media: {len(response.content)} bytes")
        return response.content

    async def download_audio(self, media_id: str) -> bytes:
        """Download a voice note by media ID."""
        return await self.download_media(await self.get_media_url(media_id))
