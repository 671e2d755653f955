"""
Browser management built on patchright.

Provides AgentBrowser, an async context manager owning the browser lifecycle.
Popups are followed automatically by always exposing the most recent page.
"""

import base64
import logging
from typing import Optional

from patchright.async_api import Browser, BrowserContext, Page, async_playwright


logger = logging.getLogger(__name__)


class AgentBrowser:
    """
    Async context manager wrapper around a patchright browser.

    Example:
        async with AgentBrowser(headless=False) as browser:
            await browser.page.goto("https://example.com")
            image = await browser.screenshot()
    """

    def __init__(
        self,
        headless: bool = True,
        width: int = 1280,
        height: int = 720,
        timeout: int = 30000,
        locale: str = "en-US",
        timezone: str = "America/Los_Angeles",
        start_url: Optional[str] = None,
    ):
        self.headless = headless
        self.width = width
        self.height = height
        self.timeout = timeout
        self.locale = locale
        self.timezone = timezone
        self.start_url = start_url
        self.accept_language = f"{locale},{locale.split('-')[0]};q=0.9"

        self._playwright = None
        self._browser = None
        self._context = None

    async def __aenter__(self) -> "AgentBrowser":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        logger.debug(
            "Playwright started (headless=%s, viewport=%sx%s)",
            self.headless,
            self.width,
            self.height,
        )

        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        self._context = await self._browser.new_context(
            viewport={"width": self.width, "height": self.height},
            locale=self.locale,
            timezone_id=self.timezone,
            extra_http_headers={"Accept-Language": self.accept_language},
        )

        if self.timeout:
            self._context.set_default_timeout(self.timeout)
            logger.debug("Set default timeout to %s ms", self.timeout)

        if not self._context.pages:
            await self._context.new_page()
            logger.debug("Initial page created in browser context")

        if self.start_url:
            await self.page.goto(self.start_url, wait_until="domcontentloaded")
            logger.info("Opened start page %s", self.start_url)

    async def stop(self) -> None:
        if self._context:
            await self._context.close()
            logger.debug("Browser context closed")
        if self._browser:
            await self._browser.close()
            logger.debug("Browser closed")
        if self._playwright:
            await self._playwright.stop()
            logger.debug("Playwright stopped")

    @property
    def browser(self) -> Browser:
        return self._browser

    @property
    def context(self) -> BrowserContext:
        return self._context

    @property
    def page(self) -> Page:
        return self._context.pages[-1]

    async def screenshot(self, quality: int = 60) -> str:
        """Take a JPEG screenshot of the current page and return it base64-encoded."""
        screenshot_bytes = await self.page.screenshot(type="jpeg", quality=quality)
        logger.debug("Captured screenshot at quality=%d", quality)
        return base64.b64encode(screenshot_bytes).decode("utf-8")
