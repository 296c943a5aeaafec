"""
Playwright Probe - interactive browser session as a network event source

Launches Chromium, navigates to the target and forwards every request and
response of the browser context onto two channels. The session stays open
so the user can keep browsing; closing the window ends it.
"""

import asyncio
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from gql_intel.errors import EventSourceError
from gql_intel.probers.events import RequestEvent, ResponseEvent, static_body
from gql_intel.utils.channel import Channel, ChannelClosed
from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)

BROWSER_ARGS = [
    "--disable-dev-shm-usage",  # Prevent /dev/shm issues
    "--no-sandbox",
    "--disable-gpu",
]

FORWARD_FLUSH_TIMEOUT = 5  # seconds


def _request_id(request) -> str:
    # Playwright hands out the same Request object to the response, so its
    # identity is stable for the lifetime of the exchange
    return f"{id(request):x}"


class PlaywrightEventSource:
    """Browser-backed implementation of the EventSource contract."""

    def __init__(self, settings=None):
        settings = settings or {}
        browser_cfg = settings.get("browser", {})
        crawler_cfg = settings.get("crawler", {})
        capture_cfg = settings.get("capture", {})

        self.headless = bool(browser_cfg.get("headless", False))
        self.navigation_timeout = browser_cfg.get("navigation_timeout", 45000)
        self.user_agent = crawler_cfg.get("user_agent")
        channel_size = int(capture_cfg.get("channel_size", 100))

        self.requests = Channel(channel_size)
        self.responses = Channel(channel_size)
        self.error: Optional[BaseException] = None

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._forwarders = set()
        self._closing = False

    # ------------------------------------------------------------------
    # Event forwarding
    # ------------------------------------------------------------------

    def _forward(self, channel: Channel, event) -> None:
        # Playwright callbacks are synchronous; the send awaits channel space
        task = asyncio.create_task(self._send(channel, event))
        self._forwarders.add(task)
        task.add_done_callback(self._forwarders.discard)

    async def _send(self, channel: Channel, event) -> None:
        try:
            await channel.send(event)
        except ChannelClosed:
            pass

    def _on_request(self, request) -> None:
        try:
            body = request.post_data
        except Exception as e:  # binary bodies fail to decode
            logger.debug(f"Unreadable request body for {request.url}: {e}")
            body = None
        self._forward(self.requests, RequestEvent(
            request_id=_request_id(request),
            url=request.url,
            headers=dict(request.headers),
            body=body,
            method=request.method,
        ))

    def _on_response(self, response) -> None:
        self._forward(self.responses, ResponseEvent(
            request_id=_request_id(response.request),
            url=response.url,
            fetch_body=response.text,
            mime_type=response.headers.get("content-type"),
            status=response.status,
        ))

    def _on_request_failed(self, request) -> None:
        self._forward(self.responses, ResponseEvent(
            request_id=_request_id(request),
            url=request.url,
            fetch_body=static_body(""),
            failure=request.failure or "request failed",
        ))

    def _on_crash(self, page) -> None:
        logger.error("Browser page crashed")
        self.error = EventSourceError("browser page crashed")
        self._close_channels()

    def _on_disconnected(self, browser) -> None:
        logger.info("Browser disconnected")
        self._close_channels()

    def _close_channels(self) -> None:
        self.requests.close()
        self.responses.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, url: str) -> None:
        """
        Launch the browser and navigate to `url`.

        Raises:
            EventSourceError: the browser could not be launched
        """
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=BROWSER_ARGS,
            )
            context_kwargs = {"viewport": {"width": 1280, "height": 800}}
            if self.user_agent:
                context_kwargs["user_agent"] = self.user_agent
            self._context = await self._browser.new_context(**context_kwargs)

            self._browser.on("disconnected", self._on_disconnected)
            self._context.on("request", self._on_request)
            self._context.on("response", self._on_response)
            self._context.on("requestfailed", self._on_request_failed)

            self._page = await self._context.new_page()
            self._page.on("crash", self._on_crash)
        except Exception as e:
            await self.close()
            raise EventSourceError(f"failed to launch browser: {e}") from e

        logger.info(f"Navigating to: {url}")
        try:
            await self._page.goto(url, timeout=self.navigation_timeout, wait_until="domcontentloaded")
        except Exception as e:
            # The session is still usable; the user can navigate by hand
            logger.warning(f"Page load failed for {url}: {e}")
        logger.info("Continue browsing to capture more queries. Close the browser when done.")

    async def is_alive(self) -> bool:
        if self._closing or self._browser is None or self._page is None:
            return False
        return self._browser.is_connected() and not self._page.is_closed()

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        if self._forwarders:
            # let queued events reach the channels while the consumer still drains
            _, stuck = await asyncio.wait(list(self._forwarders), timeout=FORWARD_FLUSH_TIMEOUT)
            for task in stuck:
                task.cancel()
        try:
            if self._browser is not None and self._browser.is_connected():
                await self._browser.close()
            if self._playwright is not None:
                await self._playwright.stop()
        except Exception as e:
            logger.debug(f"Error closing browser: {e}")
        finally:
            self._close_channels()
        logger.info("Closed browser session.")
