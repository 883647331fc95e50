import asyncio
import functools
import io
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Set

import qrcode

from ...config.provider import SessionConfig
from ..client.interfaces import (
    Authenticated,
    AuthFailed,
    ChatSummary,
    ClientError,
    ClientEvent,
    Disconnected,
    LoadingProgress,
    MessageReceived,
    MessagingClient,
    PairingCode,
    Ready,
    RecipientInfo,
    SentMessage,
    to_chat_id,
)
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

logger = logging.getLogger(__name__)

PONG_REPLY = "pong - API running!"


class Phase(str, Enum):
    """Lifecycle phase of the WhatsApp session."""

    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    AWAITING_PAIRING = "awaiting_pairing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class SessionState:
    """Mutable session state. Only SessionController writes to it."""

    phase: Phase = Phase.UNINITIALIZED
    pairing_code: Optional[str] = None
    pairing_issued_at: Optional[datetime] = None
    launch_in_flight: bool = False
    client: Optional[MessagingClient] = None

    def clear_pairing(self) -> None:
        self.pairing_code = None
        self.pairing_issued_at = None


class PairingStatus(str, Enum):
    ALREADY_CONNECTED = "already_connected"
    CODE = "code"
    EXPIRED = "expired"
    PENDING = "pending"


@dataclass(frozen=True)
class PairingResult:
    """Answer to "how do I link a device right now?"."""

    status: PairingStatus
    code: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    seconds_left: Optional[int] = None
    initializing: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    """Consistent read-only view for status endpoints."""

    phase: Phase
    has_pairing_code: bool
    pairing_issued_at: Optional[datetime]
    launch_in_flight: bool
    relaunch_pending: bool
    launch_count: int
    last_error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.phase is Phase.READY


@dataclass(frozen=True)
class ChatListing:
    chats: List[ChatSummary]
    total: int


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionController:
    def __init__(
        self,
        client_builder: Callable[[], MessagingClient],
        config: Optional[SessionConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the session controller.

        Args:
            client_builder: Returns a new, not yet launched, messaging client
            config: Session timeouts and delays
            retry_policy: Relaunch delays (derived from config if omitted)
            clock: Wall clock returning aware datetimes
        """
        self.config = config or SessionConfig()
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self._build_client = client_builder
        self._clock = clock

        self._state = SessionState()
        self._lifecycle_lock = asyncio.Lock()
        self._generation = 0
        self._launch_failures = 0
        self._launch_count = 0
        self._last_error: Optional[SessionError] = None

        self._relaunch_timer: Optional[asyncio.Task] = None
        self._teardowns: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()

    # Read-only accessors

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def pairing_code(self) -> Optional[str]:
        return self._state.pairing_code

    @property
    def pairing_issued_at(self) -> Optional[datetime]:
        return self._state.pairing_issued_at

    @property
    def launch_in_flight(self) -> bool:
        return self._state.launch_in_flight

    @property
    def client(self) -> Optional[MessagingClient]:
        return self._state.client

    @property
    def relaunch_pending(self) -> bool:
        return self._relaunch_timer is not None and not self._relaunch_timer.done()

    @property
    def pairing_ttl(self) -> timedelta:
        return timedelta(seconds=self.config.pairing_ttl)

    def _pairing_valid(self, now: datetime) -> bool:
        issued_at = self._state.pairing_issued_at
        return (
            self._state.pairing_code is not None
            and issued_at is not None
            and now - issued_at < self.pairing_ttl
        )

    def snapshot(self) -> SessionSnapshot:
        state = self._state
        return SessionSnapshot(
            phase=state.phase,
            has_pairing_code=self._pairing_valid(self._clock()),
            pairing_issued_at=state.pairing_issued_at,
            launch_in_flight=state.launch_in_flight,
            relaunch_pending=self.relaunch_pending,
            launch_count=self._launch_count,
            last_error=_describe(self._last_error),
        )

    # Lifecycle

    def start(self) -> float:
        """Schedule the first launch. Returns the delay in seconds."""
        return self._schedule_launch(RelaunchReason.STARTUP)

    async def launch(self) -> bool:
        """
        Replace the current client with a fresh one and start it.

        Returns:
            True if a client was started, False if the call was a no-op
            (another launch in flight) or the start failed

        Logic:
        1. Refuse if a launch is already in flight
        2. Destroy the previous client, wait for it to be gone
        3. Build, subscribe and store the new client
        4. Start it; on failure go to FAILED and schedule a retry
        """
        state = self._state
        if state.launch_in_flight:
            logger.warning("Launch already in progress, skipping")
            return False

        self._cancel_relaunch_timer()
        self._generation += 1
        generation = self._generation
        state.launch_in_flight = True
        state.phase = Phase.LAUNCHING
        state.clear_pairing()

        async with self._lifecycle_lock:
            await self._retire_client()
            if generation != self._generation:
                logger.info("Launch superseded while waiting for the previous client to close")
                return False
            try:
                client = self._build_client()
            except Exception as e:
                self._on_launch_failure(e)
                return False
            client.subscribe(functools.partial(self._dispatch, client))
            state.client = client
            self._launch_count += 1

        logger.info("Starting WhatsApp client...")
        try:
            await client.launch()
        except Exception as e:
            if state.client is client:
                self._on_launch_failure(e)
            else:
                logger.info(f"Superseded client failed to start: {e}")
            return False

        return True

    async def restart(self) -> float:
        """
        Destroy the client, reset to UNINITIALIZED and schedule a launch.

        Returns:
            Delay in seconds before the launch
        """
        logger.info("Restarting WhatsApp client...")
        self._cancel_relaunch_timer()
        self._generation += 1
        self._discard_client()
        self._reset()
        async with self._lifecycle_lock:
            await self._retire_client()
            self._supersede_waiting_launches()
        self._launch_failures = 0
        return self._schedule_launch(RelaunchReason.RESTART)

    async def close(self) -> None:
        """Tear everything down on process shutdown."""
        self._cancel_relaunch_timer()
        self._generation += 1
        self._discard_client()
        self._reset()
        async with self._lifecycle_lock:
            await self._retire_client()
            self._supersede_waiting_launches()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        logger.info("Session controller closed")

    def _reset(self) -> None:
        state = self._state
        state.phase = Phase.UNINITIALIZED
        state.clear_pairing()
        state.launch_in_flight = False

    def _supersede_waiting_launches(self) -> None:
        """Invalidate launches that queued on the lock during a teardown."""
        self._generation += 1
        self._cancel_relaunch_timer()
        self._reset()

    def _on_launch_failure(self, error: Exception) -> None:
        self._launch_failures += 1
        self._last_error = LaunchFailedError(error=str(error))
        logger.error(f"Error during client launch (attempt {self._launch_failures}): {error}")
        state = self._state
        state.phase = Phase.FAILED
        state.clear_pairing()
        state.launch_in_flight = False
        self._discard_client()
        self._schedule_launch(RelaunchReason.LAUNCH_FAILED, attempt=self._launch_failures)

    # Relaunch timer

    def _schedule_launch(self, reason: RelaunchReason, attempt: int = 1) -> float:
        delay = self.retry_policy.delay_for(reason, attempt)
        self._cancel_relaunch_timer()
        logger.info(f"Launch scheduled in {delay:g}s ({reason.value})")
        self._relaunch_timer = asyncio.create_task(self._launch_after(delay, reason))
        return delay

    async def _launch_after(self, delay: float, reason: RelaunchReason) -> None:
        await asyncio.sleep(delay)
        if self._relaunch_timer is asyncio.current_task():
            self._relaunch_timer = None
        try:
            await self.launch()
        except Exception:
            logger.exception(f"Scheduled launch ({reason.value}) crashed")

    def _cancel_relaunch_timer(self) -> None:
        timer = self._relaunch_timer
        self._relaunch_timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    # Client ownership

    def _discard_client(self) -> None:
        """Detach the current client and destroy it in the background."""
        client = self._state.client
        self._state.client = None
        if client is None:
            return
        task = asyncio.create_task(self._destroy_client(client))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)

    async def _retire_client(self) -> None:
        """Detach the current client and wait until every discarded client is destroyed."""
        self._discard_client()
        if self._teardowns:
            await asyncio.gather(*list(self._teardowns))

    @staticmethod
    async def _destroy_client(client: MessagingClient) -> None:
        try:
            await client.destroy()
        except Exception as e:
            logger.warning(f"Error destroying previous client: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # Events

    def _dispatch(self, client: MessagingClient, event: ClientEvent) -> None:
        if client is not self._state.client:
            logger.debug(f"Ignoring {type(event).__name__} from a retired client")
            return
        self.handle_event(event)

    def handle_event(self, event: ClientEvent) -> None:
        """Apply one client event to the session state."""
        if isinstance(event, PairingCode):
            self._on_pairing_code(event)
        elif isinstance(event, Ready):
            self._on_ready()
        elif isinstance(event, AuthFailed):
            self._on_auth_failed(event)
        elif isinstance(event, Disconnected):
            self._on_disconnected(event)
        elif isinstance(event, ClientError):
            logger.error(f"WhatsApp client error: {event.reason}")
            self._state.launch_in_flight = False
        elif isinstance(event, Authenticated):
            logger.info("Authentication successful")
        elif isinstance(event, LoadingProgress):
            logger.info(f"Loading WhatsApp Web... {event.percent}% {event.message}".rstrip())
        elif isinstance(event, MessageReceived):
            self._on_message(event)
        else:
            logger.warning(f"Unknown client event: {event!r}")

    def _on_pairing_code(self, event: PairingCode) -> None:
        state = self._state
        state.pairing_code = event.code
        state.pairing_issued_at = self._clock()
        state.phase = Phase.AWAITING_PAIRING
        state.launch_in_flight = False
        self._launch_failures = 0
        logger.info("QR code generated, scan it with WhatsApp (available at /api/qr)")
        if self.config.print_qr:
            self._log_qr(event.code)

    def _on_ready(self) -> None:
        state = self._state
        state.phase = Phase.READY
        state.clear_pairing()
        state.launch_in_flight = False
        self._launch_failures = 0
        self._last_error = None
        logger.info("WhatsApp connected and ready")

    def _on_auth_failed(self, event: AuthFailed) -> None:
        logger.error(f"Authentication failed: {event.reason}")
        self._last_error = AuthFailedError(error=event.reason)
        self._fail()
        self._schedule_launch(RelaunchReason.AUTH_FAILED)

    def _on_disconnected(self, event: Disconnected) -> None:
        logger.warning(f"WhatsApp disconnected: {event.reason}")
        self._last_error = SessionError("Disconnected", error=event.reason)
        self._fail()
        if self.retry_policy.should_relaunch(RelaunchReason.DISCONNECTED):
            self._schedule_launch(RelaunchReason.DISCONNECTED)
        else:
            logger.info("Automatic reconnect disabled; waiting for /api/qr or /api/restart")

    def _fail(self) -> None:
        state = self._state
        state.phase = Phase.FAILED
        state.clear_pairing()
        state.launch_in_flight = False
        self._discard_client()

    def _on_message(self, event: MessageReceived) -> None:
        if event.is_status or not event.body:
            return
        logger.info(f"Message received from {event.sender}: {event.body[:50]}")
        if self.config.auto_reply_ping and event.body.strip().lower() == "ping":
            client = self._state.client
            if client is not None and self._state.phase is Phase.READY:
                self._spawn(self._reply(client, event.sender, PONG_REPLY))

    async def _reply(self, client: MessagingClient, recipient: str, body: str) -> None:
        try:
            await asyncio.wait_for(client.send_message(recipient, body), self.config.send_timeout)
            logger.info(f"Auto-reply sent to {recipient}")
        except Exception as e:
            logger.error(f"Error sending auto-reply to {recipient}: {e}")

    @staticmethod
    def _log_qr(code: str) -> None:
        qr = qrcode.QRCode(border=1)
        qr.add_data(code)
        qr.make(fit=True)
        buf = io.StringIO()
        qr.print_ascii(out=buf, invert=True)
        logger.info("\n" + buf.getvalue())

    # Queries and commands

    def get_pairing(self) -> PairingResult:
        """
        Current pairing artifact.

        An expired QR is cleared and exactly one relaunch is scheduled.
        """
        state = self._state
        if state.phase is Phase.READY:
            return PairingResult(PairingStatus.ALREADY_CONNECTED)

        if state.phase is Phase.AWAITING_PAIRING and state.pairing_code is not None:
            now = self._clock()
            issued_at = state.pairing_issued_at
            expires_at = issued_at + self.pairing_ttl
            if self._pairing_valid(now):
                return PairingResult(
                    PairingStatus.CODE,
                    code=state.pairing_code,
                    issued_at=issued_at,
                    expires_at=expires_at,
                    seconds_left=max(0, int((expires_at - now).total_seconds())),
                )

            logger.info("QR code expired, relaunching to get a new one")
            state.clear_pairing()
            state.phase = Phase.LAUNCHING
            self._discard_client()
            self._schedule_launch(RelaunchReason.PAIRING_EXPIRED)
            return PairingResult(PairingStatus.EXPIRED)

        # Nothing is starting and no QR is held, whatever phase was left behind
        idle = state.pairing_code is None
        if idle and not state.launch_in_flight and not self.relaunch_pending:
            self._schedule_launch(RelaunchReason.PAIRING_REQUESTED)
        return PairingResult(PairingStatus.PENDING, initializing=state.launch_in_flight)

    def _require_ready(self) -> MessagingClient:
        client = self._state.client
        if self._state.phase is not Phase.READY or client is None:
            raise NotReadyError()
        return client

    async def send_message(self, recipient: Optional[str], body: Optional[str]) -> SentMessage:
        """
        Send a text message through the current client.

        Raises:
            NotReadyError: Session is not READY
            InvalidRequestError: Recipient or body missing
            SendTimeoutError: No acknowledgement within send_timeout
            SendFailedError: The client reported a failure
        """
        client = self._require_ready()
        if not recipient or not body:
            raise InvalidRequestError("Number and message are required")

        chat_id = to_chat_id(recipient)
        logger.info(f"Sending message to {recipient}: {body[:50]}")

        # Left running on timeout; the outcome is only logged
        send = asyncio.ensure_future(client.send_message(chat_id, body))
        done, _ = await asyncio.wait({send}, timeout=self.config.send_timeout)
        if not done:
            send.add_done_callback(_log_abandoned_send)
            logger.error(f"Timeout sending message to {recipient} after {self.config.send_timeout:g}s")
            raise SendTimeoutError(error="Timeout sending message")

        try:
            sent = send.result()
        except Exception as e:
            logger.error(f"Error sending message to {recipient}: {e}")
            raise SendFailedError(error=str(e)) from e

        logger.info(f"Message sent to {recipient}")
        return sent

    async def resolve_recipient(self, number: str) -> Optional[RecipientInfo]:
        """Check whether a number is registered on WhatsApp."""
        client = self._require_ready()
        if not number:
            raise InvalidRequestError("Number is required")
        return await self._bounded(
            client.resolve_recipient(to_chat_id(number)), "Error checking number"
        )

    async def list_chats(self, limit: int = 20) -> ChatListing:
        """List the most recent chats, truncated to limit."""
        client = self._require_ready()
        if limit < 1:
            raise InvalidRequestError("limit must be a positive integer")
        chats = await self._bounded(client.list_chats(None), "Error fetching chats")
        return ChatListing(chats=list(chats[:limit]), total=len(chats))

    async def _bounded(self, coro, message: str):
        try:
            return await asyncio.wait_for(coro, self.config.request_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{message}: timed out after {self.config.request_timeout:g}s")
            raise ClientRequestError(message, error="Timeout waiting for WhatsApp") from e
        except Exception as e:
            logger.error(f"{message}: {e}")
            raise ClientRequestError(message, error=str(e)) from e


def _log_abandoned_send(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning(f"Timed-out send finished with error: {error}")
    else:
        logger.info("Timed-out send eventually completed")


def _describe(error: Optional[SessionError]) -> Optional[str]:
    if error is None:
        return None
    if error.error:
        return f"{error.message}: {error.error}"
    return error.message
