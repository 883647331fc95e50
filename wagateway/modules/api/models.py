"""
wagateway HTTP data models.

These models define the JSON shapes of the HTTP facade. Field aliases keep
the camelCase keys existing API consumers already parse.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..client.interfaces import ChatSummary
from ..session import Phase, SessionSnapshot

PREVIEW_LENGTH = 100

ENDPOINTS = {
    "status": "GET /api/status",
    "qr": "GET /api/qr",
    "send_message": "POST /api/send-message",
    "number_info": "GET /api/number-info/:number",
    "chats": "GET /api/chats",
    "restart": "POST /api/restart",
    "health": "GET /health",
}

AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /api/status",
    "GET /api/qr",
    "POST /api/send-message",
    "GET /api/number-info/:number",
    "GET /api/chats",
    "POST /api/restart",
    "GET /health",
]

PAIRING_INSTRUCTIONS = [
    "1. Open WhatsApp on your phone",
    "2. Go to Settings > Linked devices",
    '3. Tap "Link a device"',
    "4. Scan this QR code",
]

EXAMPLE_SEND_BODY = {"number": "5491234567890", "message": "Hello from the WhatsApp API!"}


# Enums


class StatusLabel(str, Enum):
    """Coarse session status shown to API consumers."""

    READY = "ready"
    WAITING_FOR_QR = "waiting_for_qr"
    INITIALIZING = "initializing"

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "StatusLabel":
        if snapshot.phase is Phase.READY:
            return cls.READY
        if snapshot.has_pairing_code:
            return cls.WAITING_FOR_QR
        return cls.INITIALIZING


# Request Models (API Input)


class SendMessageRequest(BaseModel):
    """Request to send a text message. Presence is checked after readiness."""

    number: Optional[str] = Field(None, description="Phone number with country code, or a chat id")
    message: Optional[str] = Field(None, description="Message text")

    @field_validator("number", mode="before")
    @classmethod
    def coerce_number(cls, v):
        """Accept numbers sent as JSON integers."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("number", "message")
    @classmethod
    def blank_as_missing(cls, v):
        if v is not None and not v.strip():
            return None
        return v


# Response Models (API Output)


class SendMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Message sent"
    to: str
    message_id: str = Field(..., alias="messageId")
    timestamp: str
    platform: str


class NumberInfoResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    exists: bool
    number_info: Optional[Dict[str, Any]] = Field(None, alias="numberInfo")
    checked: str
    message: str


class LastMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    body: Optional[str] = None
    timestamp: Optional[int] = None
    from_: Optional[str] = Field(None, alias="from")


class ChatItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    is_group: bool = Field(False, alias="isGroup")
    unread_count: int = Field(0, alias="unreadCount")
    last_message: Optional[LastMessage] = Field(None, alias="lastMessage")

    @classmethod
    def from_summary(cls, chat: ChatSummary) -> "ChatItem":
        last = None
        if chat.last_message is not None:
            last = LastMessage(
                body=truncate_preview(chat.last_message.body),
                timestamp=chat.last_message.timestamp,
                from_=chat.last_message.sender,
            )
        return cls(
            id=chat.id,
            name=chat.name,
            is_group=chat.is_group,
            unread_count=chat.unread_count,
            last_message=last,
        )


class ChatListResponse(BaseModel):
    success: bool = True
    message: str = "Chats retrieved"
    chats: List[ChatItem]
    total: int
    showing: int
    platform: str


class RestartResponse(BaseModel):
    success: bool = True
    message: str = "Client restarting"
    timestamp: str
    delay_seconds: float = Field(..., alias="delaySeconds")

    model_config = ConfigDict(populate_by_name=True)


# Helpers


def truncate_preview(body: Optional[str], length: int = PREVIEW_LENGTH) -> Optional[str]:
    """Cut a message body for listings, marking the cut with an ellipsis."""
    if body is None:
        return None
    if len(body) > length:
        return body[:length] + "..."
    return body


def describe_send_failure(error: Optional[str]) -> str:
    """Human-readable explanation for a raw send failure."""
    text = error or ""
    if "Chat not found" in text:
        return "Invalid number or number is not on WhatsApp"
    if "Rate limit" in text:
        return "Too many messages, wait a moment"
    if "Timeout" in text:
        return "Timeout sending message, try again"
    return "Error sending message"
