from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .errors import MalformedMessageError


@dataclass(frozen=True)
class InboundMessage:
    """Transport-neutral inbound message; audio_ref is an opaque media handle."""
    sender_id: str
    text: Optional[str] = None
    audio_ref: Optional[str] = None
    message_id: Optional[str] = None

    def has_content(self) -> bool:
        return bool((self.text or "").strip()) or bool(self.audio_ref)

    def ensure_routable(self) -> None:
        if not self.sender_id:
            raise MalformedMessageError(f"message {self.message_id} has no sender id")
        if not self.has_content():
            raise MalformedMessageError(f"message {self.message_id} from {self.sender_id} has no text or audio")


class ChatRequest(BaseModel):
    """Request payload for the operator chat API."""
    sender_id: str = Field(min_length=1)
    message: str


class ChatResponse(BaseModel):
    """Response payload returned by the operator chat API."""
    sender_id: str
    reply: Optional[str]
    intent: str
    failed: bool = False


class SessionView(BaseModel):
    sender_id: str
    printer_model: Optional[str] = None
    software_name: Optional[str] = None
    last_touched: float


class IntentStats(BaseModel):
    intents: Dict[str, int]


# WhatsApp Cloud API webhook envelope. Only the fields the router needs are modelled.

class WhatsAppText(BaseModel):
    body: str = ""


class WhatsAppMedia(BaseModel):
    id: str
    mime_type: Optional[str] = None


class WhatsAppMessage(BaseModel):
    id: Optional[str] = None
    sender: Optional[str] = Field(default=None, alias="from")
    type: str = "text"
    text: Optional[WhatsAppText] = None
    audio: Optional[WhatsAppMedia] = None
    voice: Optional[WhatsAppMedia] = None


class WhatsAppValue(BaseModel):
    messaging_product: Optional[str] = None
    messages: List[WhatsAppMessage] = Field(default_factory=list)


class WhatsAppChange(BaseModel):
    field: Optional[str] = None
    value: WhatsAppValue = Field(default_factory=WhatsAppValue)


class WhatsAppEntry(BaseModel):
    id: Optional[str] = None
    changes: List[WhatsAppChange] = Field(default_factory=list)


class WhatsAppWebhook(BaseModel):
    object: Optional[str] = None
    entry: List[WhatsAppEntry] = Field(default_factory=list)
