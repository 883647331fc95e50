"""Session error taxonomy, translated to HTTP responses by the API layer."""
from typing import Optional


class SessionError(Exception):
    """Base class for errors raised at the session controller boundary."""

    status_code = 500
    default_message = "Session error"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.error = error


class NotReadyError(SessionError):
    """The session is not in the READY phase."""

    status_code = 503
    default_message = "WhatsApp is not connected"


class InvalidRequestError(SessionError):
    """Required request fields are missing or malformed."""

    status_code = 400
    default_message = "Invalid request"


class SendTimeoutError(SessionError):
    """The client did not acknowledge a send in time."""

    default_message = "Timeout sending message, try again"


class SendFailedError(SessionError):
    """The client rejected or failed a send."""

    default_message = "Error sending message"


class ClientRequestError(SessionError):
    """A read operation (recipient lookup, chat listing) failed or timed out."""

    default_message = "WhatsApp request failed"


class LaunchFailedError(SessionError):
    """The client could not be started. Handled internally with backoff."""

    default_message = "Client launch failed"


class AuthFailedError(SessionError):
    """Pairing was rejected. Handled internally with a fixed retry delay."""

    default_message = "Authentication failed"
