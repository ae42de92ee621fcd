"""Web action executor backed by Playwright."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from replaycli.core.browser_session import BrowserSession
from replaycli.core.config import ReplayConfig, to_ms
from replaycli.core.errors import (
    AssertionMismatchError,
    InteractionError,
    ResolutionError,
    UnsupportedActionError,
)
from replaycli.core.healing import HealingLog
from replaycli.core.locator_resolver import LocatorResolver, Resolution
from replaycli.core.platforms import ActionExecutor, parse_point, value_field
from replaycli.core.screenshot_saver import ScreenshotSaver
from replaycli.models.test import ActionType, ElementLocator, LocatorType, PlatformType, TestAction

logger = logging.getLogger("replay.web")

# Recorder markers carried in custom action values
START_BROWSER = "start_browser"
CLOSE_BROWSER = "close_browser"


class WebActionExecutor(ActionExecutor):
    """Replay web actions against the page held by a BrowserSession.

    The browser outlives runs: cleanup() leaves it open so the next test in a
    batch or loop continues where the previous one stopped.
    """

    platform = PlatformType.WEB
    UNSUPPORTED = frozenset({
        ActionType.DRAG_DROP,
        ActionType.SWIPE,
        ActionType.TAP,
        ActionType.SCROLL,
    })

    def __init__(
        self,
        session: BrowserSession,
        config: ReplayConfig | None = None,
        resolver: LocatorResolver | None = None,
        screenshots: ScreenshotSaver | None = None,
        healing: HealingLog | None = None,
    ):
        """Initialize executor.

        Args:
            session: Shared browser handle (owned by the caller)
            config: Configuration for timeouts, delays and heuristics
            resolver: Locator resolver (built from config if not provided)
            screenshots: Destination for screenshot actions
            healing: Log that heals are recorded in (ignored when resolver is given)
        """
        self._session = session
        self._config = config or ReplayConfig()
        self._resolver = resolver or LocatorResolver(
            self._config.timeouts, self._config.delays, self._config.heuristics, healing
        )
        self._screenshots = screenshots or ScreenshotSaver(self._config.screenshot_dir)

    @property
    def session(self) -> BrowserSession:
        return self._session

    async def capture(self) -> bytes | None:
        """PNG of the current page, or None when unavailable."""
        page = self._session.page
        if page is None:
            return None
        try:
            return await page.screenshot()
        except PlaywrightError as e:
            logger.debug("Could not capture page: %s", e)
            return None

    async def navigate(self, page: Page, url: str) -> None:
        """Go to url, tolerating a slow DOM, then let the app initialize."""
        logger.info("Navigating to %s", url)
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=to_ms(self._config.timeouts.navigation),
            )
        except PlaywrightTimeoutError:
            logger.warning(
                "DOM content not loaded within %.0fs for %s, continuing",
                self._config.timeouts.navigation, url,
            )
        except PlaywrightError as e:
            raise InteractionError.from_driver_error(e) from e
        await asyncio.sleep(self._config.delays.post_navigation)

    # ------------------------------------------------------------------
    # Action handlers

    async def _action_custom(self, action: TestAction) -> dict[str, Any]:
        command = str(action.value or "").strip()

        if command == START_BROWSER:
            page = await self._session.start()
            return {"browser": "started", "url": page.url}

        if command == CLOSE_BROWSER:
            await self._session.close()
            return {"browser": "closed"}

        if _is_url(command):
            page = await self._session.start()
            await self.navigate(page, command)
            return {"browser": "started", "url": command}

        raise UnsupportedActionError(self.platform, action.type, f"command {command!r}")

    async def _action_navigate(self, action: TestAction) -> dict[str, Any]:
        url = str(action.value or "").strip()
        if not url:
            # Blank URL marks a recorded tab switch
            page = await self._session.switch_to_latest_page()
            logger.info("Tab switch recorded, following newest tab")
            return {"note": "tab switch", "url": page.url if page else None}

        page = await self._page()
        if page.url == url:
            logger.info("Already on %s, skipping navigation", url)
            return {"note": "already on page", "url": url}

        await self.navigate(page, url)
        return {"url": url}

    async def _action_click(self, action: TestAction) -> dict[str, Any]:
        target = _require_target(action)
        page = await self._page()

        if target.type == LocatorType.COORDINATES:
            x, y = parse_point(target.value)
            await _driver(page.mouse.click(x, y))
            return {"coordinates": {"x": x, "y": y}}

        await self._remove_recorder_overlay(page)
        resolution = await self._resolver.click(page, target, action.description)
        return _resolution_details(resolution)

    async def _action_type(self, action: TestAction) -> dict[str, Any]:
        target = _require_target(action)
        page = await self._page()
        await self._remove_recorder_overlay(page)

        resolution = await self._resolver.resolve_input(page, target, action.description)
        text = "" if action.value is None else str(action.value)
        await _driver(resolution.locator.fill(text, timeout=self._op_timeout))
        return _resolution_details(resolution)

    async def _action_wait(self, action: TestAction) -> dict[str, Any]:
        try:
            ms = float(action.value or 0)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid wait duration: {action.value!r}")
        await asyncio.sleep(max(ms, 0) / 1000)
        return {"waited_ms": ms}

    async def _action_wait_for_element(self, action: TestAction) -> dict[str, Any]:
        target = _require_target(action)
        page = await self._page()
        await self._resolver.wait_for_element(page, target)
        return {}

    async def _action_assert(self, action: TestAction) -> dict[str, Any]:
        target = _require_target(action)
        page = await self._page()
        await self._remove_recorder_overlay(page)

        resolution = await self._resolver.resolve(page, target, action.description)
        actual = await _driver(resolution.locator.text_content(timeout=self._op_timeout))
        actual = (actual or "").strip()

        expected = action.value
        if not isinstance(expected, str):
            expected = value_field(action.value, "expectedValue")
        details = _resolution_details(resolution)
        details["actual"] = actual

        if expected is None:
            # Nothing to compare; resolving the element is the assertion
            return details
        if actual != str(expected).strip():
            raise AssertionMismatchError(str(expected).strip(), actual)
        return details

    async def _action_hover(self, action: TestAction) -> dict[str, Any]:
        target = _require_target(action)
        page = await self._page()
        await self._remove_recorder_overlay(page)

        resolution = await self._resolver.resolve(page, target, action.description)
        await _driver(resolution.locator.hover(timeout=self._op_timeout))
        return _resolution_details(resolution)

    async def _action_select(self, action: TestAction) -> dict[str, Any]:
        target = _require_target(action)
        page = await self._page()
        await self._remove_recorder_overlay(page)

        option = action.value
        if not isinstance(option, str):
            option = value_field(action.value, "value") or value_field(action.value, "label")
        if option is None:
            raise ValueError("select requires an option value")

        resolution = await self._resolver.resolve(page, target, action.description)
        await _driver(resolution.locator.select_option(str(option), timeout=self._op_timeout))
        details = _resolution_details(resolution)
        details["option"] = str(option)
        return details

    async def _action_press_key(self, action: TestAction) -> dict[str, Any]:
        key = str(action.value or "").strip()
        if not key:
            raise ValueError("press_key requires a key name")

        page = await self._page()
        details: dict[str, Any] = {"key": key}
        if action.target is not None:
            await self._remove_recorder_overlay(page)
            resolution = await self._resolver.resolve(page, action.target, action.description)
            await _driver(resolution.locator.focus(timeout=self._op_timeout))
            details.update(_resolution_details(resolution))

        await _driver(page.keyboard.press(key))
        return details

    async def _action_screenshot(self, action: TestAction) -> dict[str, Any]:
        page = self._session.page
        if page is None:
            logger.warning("Screenshot requested with no open page")
            return {"note": "no page"}
        try:
            path = self._screenshots.timestamped_path()
            await page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, OSError) as e:
            logger.warning("Screenshot failed: %s", e)
            return {"note": f"screenshot failed: {e}"}
        logger.info("Saved screenshot to %s", path)
        return {"path": str(path)}

    # ------------------------------------------------------------------
    # Helpers

    @property
    def _op_timeout(self) -> float:
        return to_ms(self._config.timeouts.action)

    async def _page(self) -> Page:
        page = self._session.page
        if page is None:
            page = await self._session.start()
        return page

    async def _remove_recorder_overlay(self, page: Page) -> None:
        overlay_id = self._config.heuristics.recorder_overlay_id
        if not overlay_id:
            return
        try:
            await page.evaluate(
                "id => { const el = document.getElementById(id); if (el) el.remove(); }",
                overlay_id,
            )
        except PlaywrightError as e:
            logger.debug("Could not remove recorder overlay: %s", e)


def _require_target(action: TestAction) -> ElementLocator:
    if action.target is None:
        raise ResolutionError(f"{action.type.value} action {action.id} has no target")
    return action.target


def _resolution_details(resolution: Resolution) -> dict[str, Any]:
    return {"resolvedBy": resolution.strategy, "locator": resolution.describe()}


async def _driver(operation: Awaitable[Any]) -> Any:
    """Await a Playwright call, classifying driver failures."""
    try:
        return await operation
    except PlaywrightError as e:
        raise InteractionError.from_driver_error(e) from e


def _is_url(value: str) -> bool:
    return value.startswith(("http://", "https://", "file://", "about:"))
