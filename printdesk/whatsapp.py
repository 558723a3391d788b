"""WhatsApp Cloud API adapter: webhook parsing, signature check, outbound text, media download."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from .config import Settings
from .models import InboundMessage, WhatsAppWebhook

logger = logging.getLogger("printdesk.whatsapp")

GRAPH_BASE_URL = "https://graph.facebook.com"


class OutboundSender(Protocol):
    def send_text(self, sender_id: str, text: str) -> bool:
        ...


def parse_webhook(payload: Dict[str, Any]) -> List[InboundMessage]:
    """Flatten a webhook envelope into InboundMessages in arrival order.

    Status callbacks carry no messages and yield an empty list. Messages of other
    types (images, stickers) are returned without content so the router reports them.
    """
    envelope = WhatsAppWebhook.model_validate(payload)
    inbound: List[InboundMessage] = []
    for entry in envelope.entry:
        for change in entry.changes:
            for message in change.value.messages:
                text = message.text.body if message.text else None
                media = message.audio or message.voice
                inbound.append(
                    InboundMessage(
                        sender_id=message.sender or "",
                        text=text,
                        audio_ref=media.id if media else None,
                        message_id=message.id,
                    )
                )
    return inbound


def verify_signature(app_secret: str, body: bytes, header: Optional[str]) -> bool:
    """Check X-Hub-Signature-256; with no secret configured every request passes."""
    if not app_secret:
        return True
    if not header or not header.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, header.split("=", 1)[1])


class WhatsAppClient:
    """Outbound messages and media downloads through the Graph API."""

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None) -> None:
        self._token = settings.whatsapp_token
        self._phone_number_id = settings.whatsapp_phone_number_id
        self._base_url = f"{GRAPH_BASE_URL}/{settings.whatsapp_api_version}"
        self._client = client or httpx.Client(timeout=settings.http_timeout_seconds)

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    def send_text(self, sender_id: str, text: str) -> bool:
        """Send one text reply; failures are logged and never retried."""
        if not self._token or not self._phone_number_id:
            logger.error("whatsapp credentials missing; dropping reply to sender=%s", sender_id)
            return False
        payload = {
            "messaging_product": "whatsapp",
            "to": sender_id,
            "type": "text",
            "text": {"body": text},
        }
        try:
            response = self._client.post(
                f"{self._base_url}/{self._phone_number_id}/messages",
                json=payload,
                headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "send failed sender=%s status=%s body=%s",
                sender_id,
                exc.response.status_code,
                exc.response.text[:300],
            )
            return False
        except httpx.HTTPError as exc:
            logger.error("send failed sender=%s error=%s", sender_id, exc)
            return False
        logger.info("sent sender=%s chars=%s", sender_id, len(text))
        return True

    def fetch_media(self, media_id: str) -> Tuple[bytes, str]:
        """Resolve a media id to its download URL, then download the bytes."""
        meta = self._client.get(f"{self._base_url}/{media_id}", headers=self._headers)
        meta.raise_for_status()
        info = meta.json()
        url = info.get("url")
        if not url:
            raise ValueError(f"media {media_id} has no download url")
        download = self._client.get(url, headers=self._headers)
        download.raise_for_status()
        mime_type = info.get("mime_type") or download.headers.get("content-type", "audio/ogg")
        return download.content, mime_type

    def close(self) -> None:
        self._client.close()
