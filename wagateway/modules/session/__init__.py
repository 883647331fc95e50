"""
Session Module - Black Box Interface

Purpose: Manage the WhatsApp session lifecycle
Interface: launch(), restart(), get_pairing(), send_message(), snapshot()
Hidden: Phase transitions, relaunch timers, client ownership

The controller is the only writer of session state; callers get results
and snapshots, never the state itself.
"""

from .errors import (
    AuthFailedError,
    ClientRequestError,
    InvalidRequestError,
    LaunchFailedError,
    NotReadyError,
    SendFailedError,
    SendTimeoutError,
    SessionError,
)
from .retry import RelaunchReason, RetryPolicy
from .session import (
    ChatListing,
    PairingResult,
    PairingStatus,
    Phase,
    SessionController,
    SessionSnapshot,
)

__all__ = [
    "AuthFailedError",
    "ChatListing",
    "ClientRequestError",
    "InvalidRequestError",
    "LaunchFailedError",
    "NotReadyError",
    "PairingResult",
    "PairingStatus",
    "Phase",
    "RelaunchReason",
    "RetryPolicy",
    "SendFailedError",
    "SendTimeoutError",
    "SessionController",
    "SessionError",
    "SessionSnapshot",
]
