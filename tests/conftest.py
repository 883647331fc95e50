"""
Shared pytest fixtures for wagateway tests.

This module provides common fixtures including:
- FakeMessagingClient: Scriptable stand-in for the Playwright client
- FakeClientFactory: Records every client the controller builds
- ManualClock: Wall clock the tests move by hand
- A SessionController wired with millisecond relaunch delays
"""

import asyncio
import os
import sys
from datetime import UTC, datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wagateway.config.provider import SessionConfig
from wagateway.modules.client.interfaces import (
    ChatSummary,
    ClientEvent,
    EventHandler,
    RecipientInfo,
    SentMessage,
)
from wagateway.modules.session import RetryPolicy, SessionController


# =============================================================================
# Messaging Client Fakes
# =============================================================================

class FakeMessagingClient:
    """
    In-memory messaging client.

    Tests push events with emit() and tune behaviour through attributes:
    launch_error / launch_delay / on_launch for start, send_delay /
    send_error for sends, destroy_delay for teardown, recipients / chats for queries.
    """

    def __init__(self):
        self.handlers: List[EventHandler] = []
        self.launch_calls = 0
        self.destroy_calls = 0
        self.launch_error: Optional[Exception] = None
        self.launch_delay = 0.0
        self.on_launch: List[ClientEvent] = []
        self.send_delay = 0.0
        self.send_error: Optional[Exception] = None
        self.sent: List[Tuple[str, str]] = []
        self.recipients: Dict[str, RecipientInfo] = {}
        self.chats: List[ChatSummary] = []
        self.query_delay = 0.0
        self.destroy_delay = 0.0

    @property
    def destroyed(self) -> bool:
        return self.destroy_calls > 0

    def subscribe(self, handler: EventHandler) -> None:
        self.handlers.append(handler)

    def emit(self, event: ClientEvent) -> None:
        for handler in list(self.handlers):
            handler(event)

    async def launch(self) -> None:
        self.launch_calls += 1
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.launch_error is not None:
            raise self.launch_error
        for event in self.on_launch:
            self.emit(event)

    async def destroy(self) -> None:
        self.destroy_calls += 1
        if self.destroy_delay:
            await asyncio.sleep(self.destroy_delay)

    async def send_message(self, recipient: str, body: str) -> SentMessage:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((recipient, body))
        return SentMessage(id=f"MSG{len(self.sent)}", recipient=recipient, timestamp=1700000000)

    async def resolve_recipient(self, recipient: str) -> Optional[RecipientInfo]:
        if self.query_delay:
            await asyncio.sleep(self.query_delay)
        return self.recipients.get(recipient)

    async def list_chats(self, limit: Optional[int] = None) -> List[ChatSummary]:
        if self.query_delay:
            await asyncio.sleep(self.query_delay)
        return list(self.chats[:limit] if limit else self.chats)


class FakeClientFactory:
    """
    Client builder handed to the controller.

    live_at_build records how many earlier clients were still alive (not
    destroyed) each time a new one was constructed.
    """

    def __init__(self):
        self.clients: List[FakeMessagingClient] = []
        self.live_at_build: List[int] = []
        self.configure: Callable[[FakeMessagingClient, int], None] = lambda client, index: None

    def __call__(self) -> FakeMessagingClient:
        self.live_at_build.append(sum(1 for c in self.clients if not c.destroyed))
        client = FakeMessagingClient()
        self.configure(client, len(self.clients))
        self.clients.append(client)
        return client

    @property
    def latest(self) -> FakeMessagingClient:
        return self.clients[-1]


class ManualClock:
    """Aware UTC clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
    """Poll predicate on the event loop until it holds or timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.005)
    return predicate()


# =============================================================================
# Controller Fixtures
# =============================================================================

def fast_retry_policy(**overrides) -> RetryPolicy:
    """Relaunch delays short enough to observe inside a test."""
    values = dict(
        startup_delay=0.01,
        launch_base_delay=0.02,
        launch_max_delay=0.08,
        auth_failed_delay=0.03,
        disconnected_delay=0.02,
        pairing_expired_delay=0.01,
        restart_delay=0.05,
        relaunch_on_disconnect=True,
    )
    values.update(overrides)
    return RetryPolicy(**values)


@pytest.fixture
def session_config():
    return SessionConfig(
        pairing_ttl=120.0,
        send_timeout=0.1,
        request_timeout=0.1,
        print_qr=False,
    )


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def retry_policy():
    return fast_retry_policy()


@pytest_asyncio.fixture
async def controller(client_factory, session_config, retry_policy, clock):
    """SessionController with a fake client factory, closed after the test."""
    ctrl = SessionController(
        client_factory,
        config=session_config,
        retry_policy=retry_policy,
        clock=clock,
    )
    yield ctrl
    await ctrl.close()


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Tests exercising a module against mocked browser pages"
    )
