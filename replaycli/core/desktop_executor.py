"""Desktop action executor backed by PyAutoGUI."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from replaycli.core.config import ReplayConfig
from replaycli.core.desktop_controller import DesktopController
from replaycli.core.errors import PlatformInitError, UnsupportedActionError
from replaycli.core.platforms import ActionExecutor, parse_point, value_field
from replaycli.core.screenshot_saver import ScreenshotSaver
from replaycli.models.test import ActionType, LocatorType, PlatformType, TestAction

logger = logging.getLogger("replay.desktop")

DEFAULT_DRAG_DURATION = 0.5


class DesktopActionExecutor(ActionExecutor):
    """Coordinate-driven replay on the local desktop.

    Only coordinate targets are addressable. A click or drag recorded with any
    other locator kind is skipped with a warning.
    """

    platform = PlatformType.DESKTOP
    UNSUPPORTED = frozenset({
        ActionType.SELECT,
        ActionType.HOVER,
        ActionType.NAVIGATE,
        ActionType.WAIT_FOR_ELEMENT,
        ActionType.ASSERT,
        ActionType.SWIPE,
        ActionType.TAP,
        ActionType.SCROLL,
        ActionType.CUSTOM,
    })

    def __init__(
        self,
        controller: DesktopController | None = None,
        config: ReplayConfig | None = None,
        screenshots: ScreenshotSaver | None = None,
    ):
        self._controller = controller or DesktopController()
        self._config = config or ReplayConfig()
        self._screenshots = screenshots or ScreenshotSaver(self._config.screenshot_dir)

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self._controller.ensure_available)
        except RuntimeError as e:
            raise PlatformInitError(str(e)) from e

    async def capture(self) -> bytes | None:
        try:
            return await asyncio.to_thread(self._controller.take_screenshot)
        except Exception as e:
            logger.debug("Could not capture screen: %s", e)
            return None

    async def _action_click(self, action: TestAction) -> dict[str, Any]:
        x, y = self._coordinates(action)
        await asyncio.to_thread(self._controller.click, x, y)
        return {"coordinates": {"x": x, "y": y}}

    async def _action_type(self, action: TestAction) -> dict[str, Any]:
        text = "" if action.value is None else str(action.value)
        if action.target is not None and action.target.type == LocatorType.COORDINATES:
            x, y = parse_point(action.target.value)
            await asyncio.to_thread(self._controller.click, x, y)
        await asyncio.to_thread(self._controller.type_text, text)
        return {"length": len(text)}

    async def _action_press_key(self, action: TestAction) -> dict[str, Any]:
        key = str(action.value or "").strip()
        if not key:
            raise ValueError("press_key requires a key name")
        await asyncio.to_thread(self._controller.press, key)
        return {"key": key}

    async def _action_drag_drop(self, action: TestAction) -> dict[str, Any]:
        x1, y1 = self._coordinates(action)
        to_x = value_field(action.value, "toX")
        to_y = value_field(action.value, "toY")
        if to_x is None or to_y is None:
            raise ValueError("drag_drop requires value.toX and value.toY")
        x2, y2 = int(float(to_x)), int(float(to_y))
        duration = value_field(action.value, "duration")
        seconds = float(duration) / 1000 if duration else DEFAULT_DRAG_DURATION

        await asyncio.to_thread(self._controller.drag, x1, y1, x2, y2, seconds)
        return {"from": {"x": x1, "y": y1}, "to": {"x": x2, "y": y2}}

    async def _action_wait(self, action: TestAction) -> dict[str, Any]:
        try:
            ms = float(action.value or 0)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid wait duration: {action.value!r}")
        await asyncio.sleep(max(ms, 0) / 1000)
        return {"waited_ms": ms}

    async def _action_screenshot(self, action: TestAction) -> dict[str, Any]:
        data = await self.capture()
        if data is None:
            logger.warning("Desktop screenshot failed")
            return {"note": "screenshot failed"}
        try:
            path = self._screenshots.save_timestamped(data)
        except OSError as e:
            logger.warning("Could not write screenshot: %s", e)
            return {"note": f"screenshot failed: {e}"}
        return {"path": str(path)}

    def _coordinates(self, action: TestAction) -> tuple[int, int]:
        target = action.target
        if target is None or target.type != LocatorType.COORDINATES:
            kind = target.type.value if target is not None else "none"
            logger.warning(
                "Desktop %s needs a coordinates target, got %s; skipping",
                action.type.value, kind,
            )
            raise UnsupportedActionError(
                self.platform, action.type, f"{kind} locator is not addressable"
            )
        return parse_point(target.value)
