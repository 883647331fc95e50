"""
WhatsApp Web client driven by Playwright.

One persistent Chromium profile per client id keeps the linked-device
session across restarts. A watcher task polls the page and turns what it
sees into client events.
"""

import asyncio
import contextlib
import logging
import os
import secrets
import time
import urllib.parse
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ...config.provider import BrowserConfig
from .interfaces import (
    Authenticated,
    AuthFailed,
    ChatSummary,
    ClientError,
    ClientEvent,
    Disconnected,
    EventHandler,
    LoadingProgress,
    MessageReceived,
    MessagePreview,
    MessagingClientError,
    PairingCode,
    Ready,
    RecipientInfo,
    SentMessage,
    digits_only,
    to_chat_id,
)

logger = logging.getLogger(__name__)

WHATSAPP_WEB_URL = "https://web.whatsapp.com/"

# The QR container carries the raw pairing payload in data-ref
QR_SELECTORS = [
    "div[data-ref]",
    'div[data-testid="qrcode"][data-ref]',
]

LOGIN_MARKERS = [
    "#pane-side",
    'div[aria-label="Chat list"]',
    'div[data-testid="chat-list"]',
    'header[data-testid="chatlist-header"]',
]

SEND_BUTTON_SELECTORS = [
    'button[aria-label="Send"]',
    'span[data-icon="send"]',
    '[data-testid="send"]',
    '[data-testid="compose-btn-send"]',
]

COMPOSE_BOX_SELECTORS = [
    'footer div[contenteditable="true"]',
    'div[data-testid="conversation-compose-box-input"]',
]

INVALID_NUMBER_POPUP = 'div[data-animate-modal-popup="true"]'

SCRAPE_CHATS_JS = """
(limit) => {
    const rows = Array.from(document.querySelectorAll(
        '#pane-side div[role="listitem"], div[aria-label="Chat list"] > div'
    ));
    const out = [];
    for (const row of rows) {
        const titles = row.querySelectorAll('span[title]');
        if (!titles.length) continue;
        const name = titles[0].getAttribute('title') || '';
        const preview = titles.length > 1 ? titles[titles.length - 1].getAttribute('title') : null;
        const badge = row.querySelector('span[aria-label*="unread"]');
        const unread = badge ? parseInt(badge.textContent, 10) || 1 : 0;
        const group = !!row.querySelector('span[data-icon="default-group"]');
        out.push({name: name, preview: preview, unread: unread, group: group});
        if (limit && out.length >= limit) break;
    }
    return out;
}
"""

LOADING_PROGRESS_JS = """
() => {
    const bar = document.querySelector('progress');
    return bar ? Math.round(Number(bar.value)) : null;
}
"""


def _new_message_id() -> str:
    return "3EB0" + secrets.token_hex(8).upper()


class PlaywrightMessagingClient:
    """Messaging client backed by a persistent Chromium profile."""

    def __init__(self, config: BrowserConfig):
        self.config = config
        self._handlers: List[EventHandler] = []
        self._playwright = None
        self._context = None
        self._page = None
        self._watcher: Optional[asyncio.Task] = None
        self._page_lock = asyncio.Lock()
        self._closed = False

        # Watcher state
        self._ready = False
        self._last_code: Optional[str] = None
        self._last_progress: Optional[int] = None
        self._auth_started_at: Optional[float] = None
        self._chat_previews: Dict[str, Optional[str]] = {}

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def _emit(self, event: ClientEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {type(event).__name__}")

    async def launch(self) -> None:
        """
        Start Chromium with the session profile and open WhatsApp Web.

        Raises:
            MessagingClientError: If the browser cannot start or the page cannot load
        """
        profile_dir = self.config.profile_dir
        os.makedirs(profile_dir, exist_ok=True)

        try:
            self._playwright = await async_playwright().start()
            self._context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=profile_dir,
                headless=self.config.headless,
                executable_path=self.config.executable_path,
                args=self.config.args,
                user_agent=self.config.user_agent,
                viewport={"width": 1366, "height": 768},
                timeout=self.config.launch_timeout * 1000,
                handle_sigint=False,
                handle_sigterm=False,
                handle_sighup=False,
            )
            self._page = self._context.pages[0] if self._context.pages else await self._context.new_page()
            self._page.on("close", lambda _page: self._on_page_closed())
            await self._page.goto(
                WHATSAPP_WEB_URL,
                wait_until="domcontentloaded",
                timeout=self.config.navigation_timeout * 1000,
            )
        except PlaywrightError as exc:
            await self._shutdown_browser()
            raise MessagingClientError(f"Browser launch failed: {exc}") from exc

        logger.info(f"WhatsApp Web opened with profile {profile_dir}")
        self._watcher = asyncio.create_task(self._watch())

    async def destroy(self) -> None:
        """Stop the watcher and close the browser. Safe to call more than once."""
        self._closed = True
        if self._watcher and not self._watcher.done():
            self._watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watcher
        self._watcher = None
        await self._shutdown_browser()

    async def _shutdown_browser(self) -> None:
        context, playwright = self._context, self._playwright
        self._context = self._page = self._playwright = None
        if context is not None:
            with contextlib.suppress(PlaywrightError):
                await context.close()
        if playwright is not None:
            with contextlib.suppress(PlaywrightError):
                await playwright.stop()

    def _on_page_closed(self) -> None:
        if not self._closed:
            self._closed = True
            self._emit(Disconnected("page closed"))

    def _require_page(self):
        if self._page is None or self._closed:
            raise MessagingClientError("Client is not running")
        return self._page

    # Watcher

    async def _watch(self) -> None:
        try:
            while not self._closed:
                async with self._page_lock:
                    await self._poll_once()
                await asyncio.sleep(self.config.poll_interval)
        except asyncio.CancelledError:
            raise
        except PlaywrightError as exc:
            if not self._closed:
                self._closed = True
                self._emit(Disconnected(f"browser error: {exc}"))
        except Exception as exc:
            logger.exception("WhatsApp Web watcher crashed")
            self._emit(ClientError(str(exc)))

    async def _poll_once(self) -> None:
        page = self._require_page()

        if await self._is_logged_in(page):
            self._auth_started_at = None
            if not self._ready:
                self._ready = True
                self._last_code = None
                self._emit(Authenticated())
                self._emit(Ready())
                self._chat_previews = await self._preview_snapshot(page)
            else:
                await self._detect_incoming(page)
            return

        code = await self._qr_payload(page)

        if self._ready:
            # Chat list gone and the QR back: the device was unlinked
            if code is not None:
                self._ready = False
                self._closed = True
                self._emit(Disconnected("LOGOUT"))
            return

        progress = await page.evaluate(LOADING_PROGRESS_JS)
        if progress is not None and progress != self._last_progress:
            self._last_progress = progress
            self._emit(LoadingProgress(progress, "WhatsApp"))

        if code is not None:
            self._auth_started_at = None
            if code != self._last_code:
                self._last_code = code
                self._emit(PairingCode(code))
            return

        if self._last_code is not None:
            # QR scanned, waiting for the phone to confirm
            now = time.monotonic()
            if self._auth_started_at is None:
                self._auth_started_at = now
            elif now - self._auth_started_at > self.config.auth_timeout:
                self._auth_started_at = None
                self._last_code = None
                self._emit(AuthFailed("authentication timed out after QR scan"))

    async def _is_logged_in(self, page) -> bool:
        for marker in LOGIN_MARKERS:
            if await page.locator(marker).count() > 0:
                return True
        return False

    async def _qr_payload(self, page) -> Optional[str]:
        for selector in QR_SELECTORS:
            locator = page.locator(selector)
            if await locator.count() == 0:
                continue
            ref = await locator.first.get_attribute("data-ref")
            if ref:
                return ref
        return None

    async def _preview_snapshot(self, page) -> Dict[str, Optional[str]]:
        rows = await page.evaluate(SCRAPE_CHATS_JS, 0)
        return {row["name"]: row.get("preview") for row in rows}

    async def _detect_incoming(self, page) -> None:
        rows = await page.evaluate(SCRAPE_CHATS_JS, 0)
        previews = {}
        for row in rows:
            name, preview = row["name"], row.get("preview")
            previews[name] = preview
            if row.get("unread") and preview and self._chat_previews.get(name) != preview:
                self._emit(MessageReceived(sender=self._chat_id_for_title(name), body=preview))
        self._chat_previews = previews

    @staticmethod
    def _chat_id_for_title(title: str) -> str:
        # Unsaved contacts are titled with their formatted number
        digits = digits_only(title)
        if digits and len(digits) >= 8 and not any(ch.isalpha() for ch in title):
            return to_chat_id(digits)
        return title

    # Operations

    async def _open_chat(self, page, phone: str, text: str = "") -> bool:
        """Open a chat through the send deep link. Returns False for unknown numbers."""
        query = {"phone": phone}
        if text:
            query["text"] = text
        url = f"{WHATSAPP_WEB_URL}send?{urllib.parse.urlencode(query, quote_via=urllib.parse.quote)}"
        await page.goto(url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout * 1000)

        deadline = time.monotonic() + self.config.navigation_timeout
        while time.monotonic() < deadline:
            for selector in COMPOSE_BOX_SELECTORS:
                if await page.locator(selector).count() > 0:
                    return True
            popup = page.locator(INVALID_NUMBER_POPUP)
            if await popup.count() > 0:
                text_content = (await popup.first.inner_text()).lower()
                if "invalid" in text_content or "isn't on whatsapp" in text_content:
                    return False
            await asyncio.sleep(0.5)
        raise MessagingClientError(f"Timeout opening chat {phone}")

    async def send_message(self, recipient: str, body: str) -> SentMessage:
        phone = digits_only(recipient.split("@")[0])
        if not phone:
            raise MessagingClientError(f"Chat not found: {recipient}")

        async with self._page_lock:
            page = self._require_page()
            try:
                if not await self._open_chat(page, phone, body):
                    raise MessagingClientError(f"Chat not found: {recipient}")
                for selector in SEND_BUTTON_SELECTORS:
                    button = page.locator(selector)
                    if await button.count() > 0:
                        await button.first.click()
                        break
                else:
                    raise MessagingClientError("Send button not found")
                # Give WhatsApp Web time to hand the message to the socket
                await asyncio.sleep(1.5)
                self._chat_previews = await self._preview_snapshot(page)
            except PlaywrightError as exc:
                raise MessagingClientError(str(exc)) from exc

        return SentMessage(id=_new_message_id(), recipient=recipient, timestamp=int(time.time()))

    async def resolve_recipient(self, recipient: str) -> Optional[RecipientInfo]:
        phone = digits_only(recipient.split("@")[0])
        if not phone:
            return None

        async with self._page_lock:
            page = self._require_page()
            try:
                if not await self._open_chat(page, phone):
                    return None
            except PlaywrightError as exc:
                raise MessagingClientError(str(exc)) from exc
        return RecipientInfo(user=phone)

    async def list_chats(self, limit: Optional[int] = None) -> List[ChatSummary]:
        async with self._page_lock:
            page = self._require_page()
            try:
                rows: List[Dict[str, Any]] = await page.evaluate(SCRAPE_CHATS_JS, limit or 0)
            except PlaywrightError as exc:
                raise MessagingClientError(str(exc)) from exc

        chats = []
        for row in rows:
            preview = row.get("preview")
            chats.append(
                ChatSummary(
                    id=self._chat_id_for_title(row["name"]),
                    name=row["name"],
                    is_group=bool(row.get("group")),
                    unread_count=int(row.get("unread") or 0),
                    last_message=MessagePreview(body=preview) if preview is not None else None,
                )
            )
        return chats
