"""
Client Module - Black Box Interface

Purpose: Drive the WhatsApp Web session
Interface: MessagingClient protocol, ClientFactory.build(), client events
Hidden: Browser automation, page selectors, polling

Replaceable with any client implementing the MessagingClient protocol.
"""

from .factory import ClientBuilder, ClientFactory
from .interfaces import (
    Authenticated,
    AuthFailed,
    ChatSummary,
    ClientError,
    ClientEvent,
    Disconnected,
    LoadingProgress,
    MessageReceived,
    MessagePreview,
    MessagingClient,
    MessagingClientError,
    PairingCode,
    Ready,
    RecipientInfo,
    SentMessage,
    to_chat_id,
)

__all__ = [
    "Authenticated",
    "AuthFailed",
    "ChatSummary",
    "ClientBuilder",
    "ClientError",
    "ClientEvent",
    "ClientFactory",
    "Disconnected",
    "LoadingProgress",
    "MessageReceived",
    "MessagePreview",
    "MessagingClient",
    "MessagingClientError",
    "PairingCode",
    "Ready",
    "RecipientInfo",
    "SentMessage",
    "to_chat_id",
]
