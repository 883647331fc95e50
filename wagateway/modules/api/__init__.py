"""
API Module - Black Box Interface

Purpose: HTTP request/response shapes
Interface: Pydantic models and response helpers used by wagateway.main
Hidden: Field aliases, preview truncation, failure descriptions

The API layer only translates - session logic lives in the session module.
"""

from .models import (
    AVAILABLE_ENDPOINTS,
    ENDPOINTS,
    EXAMPLE_SEND_BODY,
    PAIRING_INSTRUCTIONS,
    ChatItem,
    ChatListResponse,
    NumberInfoResponse,
    RestartResponse,
    SendMessageRequest,
    SendMessageResponse,
    StatusLabel,
    describe_send_failure,
)

__all__ = [
    "AVAILABLE_ENDPOINTS",
    "ENDPOINTS",
    "EXAMPLE_SEND_BODY",
    "PAIRING_INSTRUCTIONS",
    "ChatItem",
    "ChatListResponse",
    "NumberInfoResponse",
    "RestartResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "StatusLabel",
    "describe_send_failure",
]
