"""Self-healing element resolution for web targets.

The ladder, tried strictly in order and stopping at the first success:

1. primary locator (structural path preferred when the chain has one)
2. declared fallbacks, in list order
3. quoted text taken from the action description
4. forced interaction on the primary, then on the first style-selector
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from replaycli.core.config import DelayConfig, HeuristicsConfig, TimeoutConfig, to_ms
from replaycli.core.errors import InteractionError, ResolutionError, is_interception
from replaycli.core.healing import HealingLog
from replaycli.core.heuristics import (
    extract_quoted_text,
    is_modal_path,
    is_selector_fragment,
    row_index_from_path,
    scope_selector_to_row,
)
from replaycli.models.test import ElementLocator, LocatorType

logger = logging.getLogger("replay.resolver")

# (locator, force) -> performs the interaction
Operation = Callable[[Locator, bool], Awaitable[None]]

# Driver-level failures that move the ladder to its next rung
_RUNG_ERRORS = (PlaywrightError, ValueError)


@dataclass
class Resolution:
    """Outcome of a successful ladder run."""

    locator: Locator
    strategy: str  # "primary", "fallback", "text-match", "forced"
    used: ElementLocator | None = None
    text: str | None = None

    @property
    def healed(self) -> bool:
        return self.strategy != "primary"

    def describe(self) -> str:
        if self.used is not None:
            return f"{self.strategy}: {self.used.describe()}"
        return f'{self.strategy}: "{self.text}"'


class LocatorResolver:
    """Resolve ElementLocator chains against a live Playwright page."""

    def __init__(
        self,
        timeouts: TimeoutConfig | None = None,
        delays: DelayConfig | None = None,
        heuristics: HeuristicsConfig | None = None,
        healing: HealingLog | None = None,
    ):
        self._timeouts = timeouts or TimeoutConfig()
        self._delays = delays or DelayConfig()
        self._heuristics = heuristics or HeuristicsConfig()
        self._healing = healing

    @property
    def healing(self) -> HealingLog | None:
        return self._healing

    # ------------------------------------------------------------------
    # Public entry points

    async def click(
        self, page: Page, target: ElementLocator, description: str | None = None
    ) -> Resolution:
        """Run the full ladder, including the forced rung, and click."""
        await self.dismiss_backdrop(page)
        await self.settle_for_modal(page, target)

        action_timeout = to_ms(self._timeouts.action)

        async def do_click(locator: Locator, force: bool) -> None:
            await locator.click(timeout=action_timeout, force=force)

        return await self._ladder(page, target, description, do_click, forced=True)

    async def resolve(
        self, page: Page, target: ElementLocator, description: str | None = None
    ) -> Resolution:
        """Resolve a visible element through rungs 1 to 3 (no forced rung)."""
        await self.settle_for_modal(page, target)
        return await self._ladder(page, target, description, None, forced=False)

    async def resolve_input(
        self, page: Page, target: ElementLocator, description: str | None = None
    ) -> Resolution:
        """Primary locator, then the first style-selector fallback only."""
        await self.settle_for_modal(page, target)
        primary, _ = self._split_primary(target)
        attempted = [primary]
        try:
            return await self._attempt(
                page, target, primary, "primary", self._timeouts.element, None
            )
        except _RUNG_ERRORS as e:
            last_error: BaseException = e
            logger.debug("Primary input locator %s failed: %s", primary.describe(), e)

        css = self._css_fallback(target, primary)
        if css is not None:
            attempted.append(css)
            try:
                resolution = await self._attempt(
                    page, target, css, "fallback", self._timeouts.fallback, None
                )
                return self._note_heal(primary, resolution, description)
            except _RUNG_ERRORS as e:
                last_error = e

        raise ResolutionError("Could not resolve input element", attempted, last_error)

    async def wait_for_element(
        self, page: Page, target: ElementLocator, timeout: float | None = None
    ) -> Locator:
        """Wait for the primary locator to become visible; no fallbacks."""
        timeout = timeout if timeout is not None else self._timeouts.wait_for_element
        primary, _ = self._split_primary(target)
        try:
            locator = self.to_playwright(page, primary)
            await locator.wait_for(state="visible", timeout=to_ms(timeout))
        except _RUNG_ERRORS as e:
            raise ResolutionError(
                f"Element did not appear within {timeout:.0f}s", [primary], e
            ) from e
        return locator

    # ------------------------------------------------------------------
    # Page preparation

    async def dismiss_backdrop(self, page: Page) -> bool:
        """Click away a visible transient backdrop that would swallow clicks."""
        selector = self._heuristics.backdrop_selector
        if not selector:
            return False
        try:
            backdrop = page.locator(selector).first
            if not await backdrop.is_visible():
                return False
            logger.info("Dismissing overlay backdrop (%s)", selector)
            await backdrop.click(force=True, timeout=to_ms(self._timeouts.action))
        except PlaywrightError as e:
            logger.debug("Backdrop dismissal failed: %s", e)
            return False
        await asyncio.sleep(self._delays.backdrop_settle)
        return True

    async def settle_for_modal(self, page: Page, target: ElementLocator) -> None:
        """Let an in-flight navigation finish before looking inside a modal."""
        xpath = self._structural_path(target)
        if not is_modal_path(xpath, self._heuristics):
            return
        logger.debug("Target looks modal (%s), waiting for navigation to settle", xpath)
        try:
            await page.wait_for_load_state(
                "load", timeout=to_ms(self._timeouts.modal_navigation)
            )
        except PlaywrightError as e:
            logger.debug("Navigation did not settle before modal lookup: %s", e)

    # ------------------------------------------------------------------
    # Locator construction

    def to_playwright(self, page: Page, spec: ElementLocator) -> Locator:
        """Translate one ElementLocator into a Playwright Locator."""
        kind, value = spec.type, spec.value
        if kind == LocatorType.XPATH:
            return page.locator(value if value.startswith("xpath=") else f"xpath={value}")
        if kind == LocatorType.CSS:
            return page.locator(value)
        if kind == LocatorType.ID:
            return page.locator(f'[id="{_quote(value)}"]')
        if kind == LocatorType.NAME:
            return page.locator(f'[name="{_quote(value)}"]')
        if kind == LocatorType.ACCESSIBILITY_ID:
            return page.locator(f'[aria-label="{_quote(value)}"]')
        if kind == LocatorType.TEXT:
            return page.get_by_text(value, exact=True)
        if kind == LocatorType.PLACEHOLDER:
            return page.get_by_placeholder(value)
        if kind == LocatorType.ROLE:
            role, _, name = value.partition(":")
            if name:
                return page.get_by_role(role.strip(), name=name.strip())
            return page.get_by_role(role.strip())
        raise ValueError(f"{kind.value} locators do not address an element")

    # ------------------------------------------------------------------
    # Ladder

    async def _ladder(
        self,
        page: Page,
        target: ElementLocator,
        description: str | None,
        operation: Operation | None,
        *,
        forced: bool,
    ) -> Resolution:
        primary, rest = self._split_primary(target)
        attempted: list[ElementLocator] = []
        last_error: BaseException | None = None

        rungs = [(primary, "primary", self._timeouts.element)]
        rungs += [(spec, "fallback", self._timeouts.fallback) for spec in rest]

        for spec, strategy, timeout in rungs:
            attempted.append(spec)
            try:
                resolution = await self._attempt(
                    page, target, spec, strategy, timeout, operation
                )
            except InteractionError as e:
                last_error = e
                if e.intercepted:
                    logger.debug("%s is obscured by another element", spec.describe())
                    break
                logger.debug("Interaction with %s failed: %s", spec.describe(), e)
                continue
            except _RUNG_ERRORS as e:
                last_error = e
                logger.debug("Locator %s failed: %s", spec.describe(), _short(e))
                continue
            return self._note_heal(primary, resolution, description)

        if not is_interception(last_error):
            text = extract_quoted_text(description)
            if text and not is_selector_fragment(text):
                try:
                    resolution = await self._text_match(page, text, operation)
                    return self._note_heal(primary, resolution, description)
                except InteractionError as e:
                    last_error = e
                except _RUNG_ERRORS as e:
                    last_error = e
                    logger.debug('Text match for "%s" failed: %s', text, _short(e))

        if forced and operation is not None:
            resolution = await self._force(
                page, target, primary, operation, attempted, last_error
            )
            return self._note_heal(primary, resolution, description)

        raise ResolutionError("Could not resolve element", attempted, last_error)

    async def _attempt(
        self,
        page: Page,
        target: ElementLocator,
        spec: ElementLocator,
        strategy: str,
        timeout: float,
        operation: Operation | None,
    ) -> Resolution:
        if strategy == "fallback" and spec.type == LocatorType.CSS:
            locator = await self._css_candidate(page, target, spec)
        else:
            locator = self.to_playwright(page, spec)

        await locator.wait_for(state="visible", timeout=to_ms(timeout))
        await self._perform(locator, operation)
        return Resolution(locator=locator, strategy=strategy, used=spec)

    async def _css_candidate(
        self, page: Page, target: ElementLocator, spec: ElementLocator
    ) -> Locator:
        """Pick one element when a style-selector fallback matches several."""
        base = page.locator(spec.value)
        if await base.count() <= 1:
            return base

        row = row_index_from_path(self._structural_path(target))
        if row is not None:
            scoped = page.locator(scope_selector_to_row(spec.value, row))
            if await scoped.count() > 0:
                logger.debug("Retargeted %s to recorded row %s[%d]", spec.value, *row)
                return scoped.first
        return base.first

    async def _text_match(
        self, page: Page, text: str, operation: Operation | None
    ) -> Resolution:
        timeout = to_ms(self._timeouts.text_match)
        option = page.locator(self._heuristics.option_selector).filter(has_text=text).first
        try:
            await option.wait_for(state="visible", timeout=timeout)
        except PlaywrightError:
            exact = page.get_by_text(text, exact=True).first
            await exact.wait_for(state="visible", timeout=timeout)
            await self._perform(exact, operation)
            return Resolution(locator=exact, strategy="text-match", text=text)

        await self._perform(option, operation)
        return Resolution(locator=option, strategy="text-match", text=text)

    async def _force(
        self,
        page: Page,
        target: ElementLocator,
        primary: ElementLocator,
        operation: Operation,
        attempted: list[ElementLocator],
        last_error: BaseException | None,
    ) -> Resolution:
        if is_interception(last_error):
            logger.info("Element obscured, forcing interaction on %s", primary.describe())
        else:
            await asyncio.sleep(self._delays.force_settle)
            logger.info("Retrying %s with forced interaction", primary.describe())

        candidates = [(primary, self.to_playwright)]
        css = self._css_fallback(target, primary)
        if css is not None:
            candidates.append((css, lambda p, s: p.locator(s.value).first))

        for spec, build in candidates:
            try:
                locator = build(page, spec)
                await operation(locator, True)
            except _RUNG_ERRORS as e:
                last_error = e
                logger.debug("Forced interaction on %s failed: %s", spec.describe(), _short(e))
                continue
            return Resolution(locator=locator, strategy="forced", used=spec)

        raise ResolutionError("All locator strategies failed", attempted, last_error)

    def _note_heal(
        self, primary: ElementLocator, resolution: Resolution, description: str | None
    ) -> Resolution:
        if resolution.healed:
            logger.info("Healed %s using %s", primary.describe(), resolution.describe())
            if self._healing is not None:
                self._healing.record(primary, resolution, object_name=description)
        return resolution

    async def _perform(self, locator: Locator, operation: Operation | None) -> None:
        if operation is None:
            return
        try:
            await operation(locator, False)
        except PlaywrightError as e:
            raise InteractionError.from_driver_error(e) from e

    # ------------------------------------------------------------------
    # Chain helpers

    def _split_primary(
        self, target: ElementLocator
    ) -> tuple[ElementLocator, list[ElementLocator]]:
        """Order the chain so a structural path, when present, goes first."""
        chain = target.chain()
        if chain[0].type != LocatorType.XPATH:
            for index, spec in enumerate(chain[1:], start=1):
                if spec.type == LocatorType.XPATH:
                    return spec, chain[:index] + chain[index + 1:]
        return chain[0], chain[1:]

    def _structural_path(self, target: ElementLocator) -> str | None:
        for spec in target.chain():
            if spec.type == LocatorType.XPATH:
                return spec.value
        return None

    def _css_fallback(
        self, target: ElementLocator, primary: ElementLocator
    ) -> ElementLocator | None:
        for spec in target.chain():
            if spec.type == LocatorType.CSS and spec != primary:
                return spec
        return None


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _short(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__
