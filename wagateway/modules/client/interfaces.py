"""Messaging client interfaces following Black Box Design principles."""
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Union


CONTACT_SUFFIX = "@c.us"


class MessagingClientError(Exception):
    """Raised by a messaging client when an operation against WhatsApp Web fails."""


# Events emitted by a client


@dataclass(frozen=True)
class PairingCode:
    """A new QR payload is available for linking a device."""
    code: str


@dataclass(frozen=True)
class Authenticated:
    """The linked device was accepted; the session is still loading."""


@dataclass(frozen=True)
class Ready:
    """The session is usable."""


@dataclass(frozen=True)
class AuthFailed:
    """Pairing was rejected or never completed."""
    reason: str


@dataclass(frozen=True)
class Disconnected:
    """A previously usable session was lost."""
    reason: str


@dataclass(frozen=True)
class ClientError:
    """Non-fatal client error."""
    reason: str


@dataclass(frozen=True)
class LoadingProgress:
    """WhatsApp Web loading screen progress."""
    percent: int
    message: str = ""


@dataclass(frozen=True)
class MessageReceived:
    """Incoming message on the linked account."""
    sender: str
    body: str
    is_status: bool = False


ClientEvent = Union[
    PairingCode,
    Authenticated,
    Ready,
    AuthFailed,
    Disconnected,
    ClientError,
    LoadingProgress,
    MessageReceived,
]

EventHandler = Callable[[ClientEvent], None]


# Records returned by a client


@dataclass(frozen=True)
class SentMessage:
    """Acknowledgement of a sent message."""
    id: str
    recipient: str
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class RecipientInfo:
    """Registered WhatsApp account behind a number."""
    user: str
    server: str = "c.us"

    @property
    def serialized(self) -> str:
        return f"{self.user}@{self.server}"

    def to_dict(self) -> dict:
        return {"user": self.user, "server": self.server, "_serialized": self.serialized}


@dataclass(frozen=True)
class MessagePreview:
    """Last message shown for a chat."""
    body: Optional[str]
    timestamp: Optional[int] = None
    sender: Optional[str] = None


@dataclass(frozen=True)
class ChatSummary:
    """One entry of the chat list."""
    id: str
    name: str
    is_group: bool = False
    unread_count: int = 0
    last_message: Optional[MessagePreview] = None


class MessagingClient(Protocol):
    """
    Protocol for messaging clients - allows swappable implementations.

    A client is single-use: launch() once, destroy() once. Events are pushed
    to the handlers registered with subscribe().
    """

    def subscribe(self, handler: EventHandler) -> None:
        """Register an event handler."""
        ...

    async def launch(self) -> None:
        """
        Start the client.

        Raises:
            MessagingClientError: If the browser or WhatsApp Web fails to start
        """
        ...

    async def destroy(self) -> None:
        """Stop the client and release the browser."""
        ...

    async def send_message(self, recipient: str, body: str) -> SentMessage:
        """
        Send a text message.

        Args:
            recipient: Chat id ("<number>@c.us")
            body: Message text

        Returns:
            SentMessage acknowledgement
        """
        ...

    async def resolve_recipient(self, recipient: str) -> Optional[RecipientInfo]:
        """Look up the account behind a chat id, None if not on WhatsApp."""
        ...

    async def list_chats(self, limit: Optional[int] = None) -> List[ChatSummary]:
        """List chats, most recent first."""
        ...


def to_chat_id(number: str) -> str:
    """Turn a bare phone number into a contact chat id."""
    number = number.strip()
    if "@" in number:
        return number
    return f"{number}{CONTACT_SUFFIX}"


def digits_only(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())
