"""Shared fixtures: in-memory stand-ins for Playwright pages and locators."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from replaycli.core.config import DelayConfig, ReplayConfig, TimeoutConfig


class FakeLocator:
    """Records interactions; visibility and failures are scripted."""

    def __init__(
        self,
        name: str,
        visible: bool = True,
        count: int = 1,
        click_error: Exception | None = None,
        text: str = "",
    ):
        self.name = name
        self.visible = visible
        self.matches = count
        self.click_error = click_error
        self.text = text
        self.page: FakePage | None = None
        self.clicks: list[bool] = []  # force flag per click
        self.filled: list[str] = []
        self.hovered = 0
        self.focused = 0
        self.selected: list[str] = []
        self.waits = 0

    @property
    def first(self) -> FakeLocator:
        return self

    def filter(self, has_text: str | None = None) -> FakeLocator:
        assert self.page is not None
        return self.page.locator(f"{self.name}|has_text={has_text}")

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        self.waits += 1
        if not self.visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.name}")

    async def is_visible(self) -> bool:
        return self.visible

    async def count(self) -> int:
        return self.matches

    async def click(self, timeout: float | None = None, force: bool = False) -> None:
        self.clicks.append(force)
        if self.matches == 0:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded clicking {self.name}")
        if self.click_error is not None and not force:
            raise self.click_error

    async def fill(self, value: str, timeout: float | None = None) -> None:
        self.filled.append(value)

    async def hover(self, timeout: float | None = None) -> None:
        self.hovered += 1

    async def focus(self, timeout: float | None = None) -> None:
        self.focused += 1

    async def select_option(self, value: str, timeout: float | None = None) -> list[str]:
        self.selected.append(value)
        return [value]

    async def text_content(self, timeout: float | None = None) -> str:
        return self.text


class FakePage:
    """Serves FakeLocators by selector; unknown selectors never become visible."""

    def __init__(self, locators: dict[str, FakeLocator] | None = None, url: str = "about:blank"):
        self.locators = dict(locators or {})
        for locator in self.locators.values():
            locator.page = self
        self.url = url
        self.requested: list[str] = []
        self.mouse = MagicMock()
        self.mouse.click = AsyncMock()
        self.keyboard = MagicMock()
        self.keyboard.press = AsyncMock()
        self.goto = AsyncMock()
        self.wait_for_load_state = AsyncMock()
        self.evaluate = AsyncMock()
        self.screenshot = AsyncMock(return_value=b"\x89PNG")
        self.bring_to_front = AsyncMock()

    def locator(self, selector: str) -> FakeLocator:
        self.requested.append(selector)
        if selector not in self.locators:
            missing = FakeLocator(selector, visible=False, count=0)
            missing.page = self
            return missing
        return self.locators[selector]

    def get_by_text(self, text: str, exact: bool = False) -> FakeLocator:
        return self.locator(f"text={text}")

    def get_by_placeholder(self, text: str) -> FakeLocator:
        return self.locator(f"placeholder={text}")

    def get_by_role(self, role: str, name: str | None = None) -> FakeLocator:
        return self.locator(f"role={role}:{name}")

    def is_closed(self) -> bool:
        return False


@pytest.fixture
def make_locator():
    """Factory for FakeLocator."""
    return FakeLocator


@pytest.fixture
def make_page():
    """Factory for FakePage."""
    return FakePage


@pytest.fixture
def intercepted_error():
    """Driver error Playwright raises when another element takes the click."""
    return PlaywrightError(
        "Element is not clickable: <div class=\"cdk-overlay-backdrop\"> intercepts pointer events"
    )


@pytest.fixture
def fast_config():
    """Config with zero settle delays so tests don't sleep."""
    return ReplayConfig(
        timeouts=TimeoutConfig(),
        delays=DelayConfig(post_navigation=0, backdrop_settle=0, force_settle=0),
    )
