"""
Integration tests for the Playwright client using a mocked WhatsApp Web page.

These tests verify that the watcher turns what it sees on the page into
client events, and that operations drive the page correctly, without
starting a real browser.

Usage:
    pytest tests/integration/test_playwright_client_mocked.py -v
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from wagateway.config.provider import BrowserConfig
from wagateway.modules.client import (
    Authenticated,
    AuthFailed,
    Disconnected,
    LoadingProgress,
    MessageReceived,
    MessagingClientError,
    PairingCode,
    Ready,
)
from wagateway.modules.client.playwright_client import (
    LOADING_PROGRESS_JS,
    PlaywrightMessagingClient,
)


# =============================================================================
# Test Helpers
# =============================================================================

class FakeLocator:
    """Just enough of a Playwright locator for the client."""

    def __init__(self, count=0, attribute=None, text=""):
        self._count = count
        self.attribute = attribute
        self.text = text
        self.clicks = 0

    async def count(self):
        return self._count

    @property
    def first(self):
        return self

    async def get_attribute(self, name):
        return self.attribute

    async def inner_text(self):
        return self.text

    async def click(self):
        self.clicks += 1


class FakePage:
    """WhatsApp Web page whose DOM is a dict of selector -> locator."""

    def __init__(self):
        self.elements = {}
        self.chat_rows = []
        self.progress = None
        self.visited = []

    def show(self, selector, **kwargs):
        self.elements[selector] = FakeLocator(count=1, **kwargs)
        return self.elements[selector]

    def hide(self, selector):
        self.elements.pop(selector, None)

    def locator(self, selector):
        return self.elements.get(selector, FakeLocator())

    async def evaluate(self, script, arg=None):
        if script == LOADING_PROGRESS_JS:
            return self.progress
        return [dict(row) for row in self.chat_rows]

    async def goto(self, url, **kwargs):
        self.visited.append(url)


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def client(page, tmp_path):
    """Client attached to a fake page, recording emitted events."""
    config = BrowserConfig(executable_path=None, session_dir=str(tmp_path), client_id="test")
    instance = PlaywrightMessagingClient(config)
    instance._page = page
    instance.events = []
    instance.subscribe(instance.events.append)
    return instance


def event_types(client):
    return [type(event) for event in client.events]


# =============================================================================
# Watcher
# =============================================================================

@pytest.mark.integration
@pytest.mark.asyncio
class TestWatcher:
    """Test _poll_once() event detection."""

    async def test_qr_emitted_once_per_code(self, client, page):
        page.show("div[data-ref]", attribute="2@first")

        await client._poll_once()
        await client._poll_once()
        page.show("div[data-ref]", attribute="2@second")
        await client._poll_once()

        assert client.events == [PairingCode("2@first"), PairingCode("2@second")]

    async def test_loading_progress(self, client, page):
        page.progress = 40
        await client._poll_once()
        await client._poll_once()
        page.progress = 80
        await client._poll_once()

        assert client.events == [LoadingProgress(40, "WhatsApp"), LoadingProgress(80, "WhatsApp")]

    async def test_login_emits_ready_once(self, client, page):
        page.show("div[data-ref]", attribute="2@code")
        await client._poll_once()

        page.hide("div[data-ref]")
        page.show("#pane-side")
        await client._poll_once()
        await client._poll_once()

        assert event_types(client) == [PairingCode, Authenticated, Ready]

    async def test_incoming_message_detected(self, client, page):
        page.show("#pane-side")
        page.chat_rows = [{"name": "+54 9 11 1234-5678", "preview": "hello", "unread": 0, "group": False}]
        await client._poll_once()

        page.chat_rows = [{"name": "+54 9 11 1234-5678", "preview": "ping", "unread": 1, "group": False}]
        await client._poll_once()

        assert client.events[-1] == MessageReceived(sender="5491112345678@c.us", body="ping")

    async def test_read_chat_changes_are_ignored(self, client, page):
        page.show("#pane-side")
        page.chat_rows = [{"name": "Ana", "preview": "hello", "unread": 0}]
        await client._poll_once()

        page.chat_rows = [{"name": "Ana", "preview": "sent from my phone", "unread": 0}]
        await client._poll_once()

        assert event_types(client) == [Authenticated, Ready]

    async def test_logout_detected(self, client, page):
        page.show("#pane-side")
        await client._poll_once()

        page.hide("#pane-side")
        page.show("div[data-ref]", attribute="2@again")
        await client._poll_once()

        assert client.events[-1] == Disconnected("LOGOUT")

    async def test_auth_timeout_after_scan(self, client, page):
        page.show("div[data-ref]", attribute="2@code")
        await client._poll_once()
        page.hide("div[data-ref]")

        clock = MagicMock()
        clock.monotonic.side_effect = [1000.0, 1000.0 + client.config.auth_timeout + 1]
        with patch("wagateway.modules.client.playwright_client.time", clock):
            await client._poll_once()
            await client._poll_once()

        assert isinstance(client.events[-1], AuthFailed)

    async def test_page_close_reports_disconnect_once(self, client):
        client._on_page_closed()
        client._on_page_closed()

        assert client.events == [Disconnected("page closed")]


# =============================================================================
# Operations
# =============================================================================

@pytest.mark.integration
@pytest.mark.asyncio
class TestOperations:
    """Test operations against the page."""

    async def test_send_message(self, client, page):
        page.show('footer div[contenteditable="true"]')
        send_button = page.show('button[aria-label="Send"]')

        sent = await client.send_message("5491234567890@c.us", "hola mundo")

        assert send_button.clicks == 1
        assert page.visited == [
            "https://web.whatsapp.com/send?phone=5491234567890&text=hola%20mundo"
        ]
        assert sent.recipient == "5491234567890@c.us"
        assert sent.id.startswith("3EB0")

    async def test_send_to_unknown_number(self, client, page):
        page.show('div[data-animate-modal-popup="true"]', text="Phone number shared via url is invalid.")

        with pytest.raises(MessagingClientError, match="Chat not found"):
            await client.send_message("000@c.us", "hello")

    async def test_send_without_digits(self, client):
        with pytest.raises(MessagingClientError, match="Chat not found"):
            await client.send_message("Family", "hello")

    async def test_resolve_recipient(self, client, page):
        page.show('div[data-testid="conversation-compose-box-input"]')

        info = await client.resolve_recipient("5491234567890@c.us")

        assert info.serialized == "5491234567890@c.us"
        assert page.visited == ["https://web.whatsapp.com/send?phone=5491234567890"]

    async def test_resolve_unknown_recipient(self, client, page):
        page.show('div[data-animate-modal-popup="true"]', text="Phone number isn't on WhatsApp")

        assert await client.resolve_recipient("000@c.us") is None

    async def test_list_chats(self, client, page):
        page.chat_rows = [
            {"name": "+54 9 11 1234-5678", "preview": "see you", "unread": 2, "group": False},
            {"name": "Family", "preview": None, "unread": 0, "group": True},
        ]

        chats = await client.list_chats()

        assert chats[0].id == "5491112345678@c.us"
        assert chats[0].unread_count == 2
        assert chats[0].last_message.body == "see you"
        assert chats[1].id == "Family"
        assert chats[1].is_group is True
        assert chats[1].last_message is None

    async def test_operations_need_running_client(self, client):
        await client.destroy()

        with pytest.raises(MessagingClientError, match="not running"):
            await client.list_chats()

    async def test_destroy_is_idempotent(self, client):
        await client.destroy()
        await client.destroy()

        assert client._page is None


class TestChatIds:
    """Test chat id derivation from chat titles."""

    @pytest.mark.parametrize(
        "title,expected",
        [
            ("+54 9 11 1234-5678", "5491112345678@c.us"),
            ("Ana", "Ana"),
            ("Office 2024", "Office 2024"),
            ("123", "123"),
        ],
    )
    def test_chat_id_for_title(self, title, expected):
        assert PlaywrightMessagingClient._chat_id_for_title(title) == expected
