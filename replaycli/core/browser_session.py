"""Owned handle to the live browser shared by sequential runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from replaycli.core.config import BrowserConfig
from replaycli.core.errors import PlatformInitError

logger = logging.getLogger("replay.browser")

CDP_CONNECT_ATTEMPTS = 3
CDP_RETRY_DELAY = 1.0
CDP_CONNECT_TIMEOUT_MS = 10_000
LAUNCH_TIMEOUT_MS = 30_000


class BrowserSession:
    """Create-once, reuse-across-runs browser handle.

    The session is created by the caller and injected into the executor and
    the web action executor. Ending a run never closes it; only an explicit
    close_browser action (or the owner) does. Runs sharing a session must be
    serialized by the caller.
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        """Initialize session.

        Args:
            config: Browser launch settings
            playwright_factory: Returns an object whose start() yields Playwright
        """
        self._config = config or BrowserConfig()
        self._playwright_factory = playwright_factory
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._connected_over_cdp = False

    @property
    def is_open(self) -> bool:
        """True while a connected browser is held."""
        return self._browser is not None and self._browser.is_connected()

    @property
    def page(self) -> Page | None:
        """Current page, or None when no live page is open."""
        if not self.is_open or self._page is None or self._page.is_closed():
            return None
        return self._page

    async def start(self) -> Page:
        """Ensure a browser, context and page exist (idempotent).

        Returns:
            The active page

        Raises:
            PlatformInitError: If the browser cannot be launched or attached
        """
        reusing = self.is_open
        if reusing:
            logger.debug("Browser already open - reusing existing session")
        elif self._browser is not None:
            logger.info("Browser was closed outside the session, starting a new one")
            self._forget_browser()

        try:
            if not reusing:
                if self._playwright is None:
                    self._playwright = await self._playwright_factory().start()
                self._browser = await self._connect_or_launch()
            return await self._ensure_page()
        except PlatformInitError:
            raise
        except Exception as e:
            await self.close()
            raise PlatformInitError(f"Could not start browser: {e}") from e

    async def switch_to_latest_page(self) -> Page | None:
        """Follow the most recently opened tab, as the recorder did."""
        if self._context is None:
            return self.page
        pages = [p for p in self._context.pages if not p.is_closed()]
        if pages:
            self._page = pages[-1]
            await self._page.bring_to_front()
            logger.debug("Switched to tab #%d (%s)", len(pages), self._page.url)
        return self.page

    async def close(self) -> None:
        """Close (or disconnect from) the browser and stop Playwright."""
        try:
            if self.is_open:
                if self._connected_over_cdp:
                    # Disconnects only; the persistent browser keeps running
                    logger.info("Disconnecting from persistent browser")
                else:
                    logger.info("Closing browser")
                await self._browser.close()
            if self._playwright is not None:
                await self._playwright.stop()
        finally:
            self._playwright = None
            self._forget_browser()

    def _forget_browser(self) -> None:
        """Drop handles to the browser and everything opened in it."""
        self._browser = None
        self._context = None
        self._page = None
        self._connected_over_cdp = False

    async def _connect_or_launch(self) -> Browser:
        assert self._playwright is not None
        endpoint = self._config.cdp_endpoint

        if endpoint:
            for attempt in range(1, CDP_CONNECT_ATTEMPTS + 1):
                try:
                    logger.info(
                        "Connecting to persistent browser at %s (attempt %d/%d)",
                        endpoint, attempt, CDP_CONNECT_ATTEMPTS,
                    )
                    browser = await self._playwright.chromium.connect_over_cdp(
                        endpoint, timeout=CDP_CONNECT_TIMEOUT_MS
                    )
                    self._connected_over_cdp = True
                    return browser
                except Exception as e:
                    logger.warning("CDP connection attempt %d failed: %s", attempt, e)
                    if attempt < CDP_CONNECT_ATTEMPTS:
                        await asyncio.sleep(CDP_RETRY_DELAY)
            logger.warning("No persistent browser reachable, launching a local one")

        browser_type = getattr(self._playwright, self._config.type, None)
        if browser_type is None:
            raise PlatformInitError(f"Unknown browser type: {self._config.type}")

        logger.info("Launching %s (headless=%s)", self._config.type, self._config.headless)
        self._connected_over_cdp = False
        return await browser_type.launch(
            headless=self._config.headless,
            args=list(self._config.args),
            timeout=LAUNCH_TIMEOUT_MS,
        )

    async def _ensure_page(self) -> Page:
        assert self._browser is not None
        if self._context is None:
            contexts = self._browser.contexts
            if contexts:
                self._context = contexts[0]
            else:
                self._context = await self._browser.new_context(no_viewport=True)

        if self._page is None or self._page.is_closed():
            pages = [p for p in self._context.pages if not p.is_closed()]
            if pages:
                logger.debug("Reusing existing page (%d open): %s", len(pages), pages[0].url)
                self._page = pages[0]
            else:
                self._page = await self._context.new_page()
        return self._page
