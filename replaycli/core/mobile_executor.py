"""Android action executor backed by adb."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from replaycli.core.config import ReplayConfig
from replaycli.core.device_controller import DeviceController
from replaycli.core.errors import (
    InteractionError,
    PlatformInitError,
    ResolutionError,
    UnsupportedActionError,
)
from replaycli.core.platforms import ActionExecutor, parse_point, value_field
from replaycli.core.screenshot_saver import ScreenshotSaver
from replaycli.models.test import ActionType, ElementLocator, LocatorType, PlatformType, TestAction

logger = logging.getLogger("replay.mobile")

DEFAULT_SWIPE_MS = 300

# Locator kinds that can be looked up in the uiautomator hierarchy
LOOKUP_KINDS = frozenset({
    LocatorType.ID,
    LocatorType.XPATH,
    LocatorType.ACCESSIBILITY_ID,
    LocatorType.TEXT,
})


class MobileActionExecutor(ActionExecutor):
    """Replay mobile actions on an attached Android device.

    Element targets are located with one hierarchy lookup; there is no
    fallback ladder on mobile.
    """

    platform = PlatformType.MOBILE
    UNSUPPORTED = frozenset({
        ActionType.CLICK,
        ActionType.SELECT,
        ActionType.HOVER,
        ActionType.NAVIGATE,
        ActionType.WAIT_FOR_ELEMENT,
        ActionType.ASSERT,
        ActionType.DRAG_DROP,
        ActionType.SCROLL,
        ActionType.CUSTOM,
    })

    def __init__(
        self,
        config: ReplayConfig | None = None,
        device_factory: Callable[[str], DeviceController] = DeviceController,
        list_devices: Callable[[], list[dict[str, str]]] = DeviceController.list_devices,
        screenshots: ScreenshotSaver | None = None,
    ):
        """Initialize executor.

        Args:
            config: Configuration (config.device selects the device)
            device_factory: Builds a controller for a device id
            list_devices: Lists attached devices as adb reports them
            screenshots: Destination for screenshot actions
        """
        self._config = config or ReplayConfig()
        self._device_factory = device_factory
        self._list_devices = list_devices
        self._screenshots = screenshots or ScreenshotSaver(self._config.screenshot_dir)
        self._device: DeviceController | None = None

    async def initialize(self) -> None:
        """Attach to the configured device, or the first online one."""
        try:
            devices = await asyncio.to_thread(self._list_devices)
        except (OSError, RuntimeError) as e:
            raise PlatformInitError(f"Could not list devices: {e}") from e

        online = [d["id"] for d in devices if d.get("status") == "device"]
        wanted = self._config.device

        if wanted:
            if wanted not in online:
                raise PlatformInitError(f"Device '{wanted}' is not attached or not online")
            device_id = wanted
        elif online:
            device_id = online[0]
        else:
            raise PlatformInitError("No online Android device found")

        logger.info("Using device %s", device_id)
        self._device = self._device_factory(device_id)

    async def cleanup(self) -> None:
        self._device = None

    async def capture(self) -> bytes | None:
        if self._device is None:
            return None
        try:
            return await asyncio.to_thread(self._device.take_screenshot)
        except Exception as e:
            logger.debug("Could not capture device screen: %s", e)
            return None

    async def _action_tap(self, action: TestAction) -> dict[str, Any]:
        target = self._target(action)
        x, y = await self._locate(target)
        await self._adb(self.device.tap, x, y)
        return {"coordinates": {"x": x, "y": y}}

    async def _action_type(self, action: TestAction) -> dict[str, Any]:
        target = self._target(action)
        x, y = await self._locate(target)
        await self._adb(self.device.tap, x, y)
        text = "" if action.value is None else str(action.value)
        await self._adb(self.device.type_text, text)
        return {"coordinates": {"x": x, "y": y}, "length": len(text)}

    async def _action_swipe(self, action: TestAction) -> dict[str, Any]:
        target = self._target(action)
        if target.type != LocatorType.COORDINATES:
            raise UnsupportedActionError(
                self.platform, action.type, "swipe needs a coordinates target"
            )
        x1, y1 = parse_point(target.value)
        end_x = value_field(action.value, "endX")
        end_y = value_field(action.value, "endY")
        if end_x is None or end_y is None:
            raise ValueError("swipe requires value.endX and value.endY")
        x2, y2 = int(float(end_x)), int(float(end_y))
        duration = int(float(value_field(action.value, "duration") or DEFAULT_SWIPE_MS))

        await self._adb(self.device.swipe, x1, y1, x2, y2, duration)
        return {"from": {"x": x1, "y": y1}, "to": {"x": x2, "y": y2}, "duration_ms": duration}

    async def _action_wait(self, action: TestAction) -> dict[str, Any]:
        try:
            ms = float(action.value or 0)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid wait duration: {action.value!r}")
        await asyncio.sleep(max(ms, 0) / 1000)
        return {"waited_ms": ms}

    async def _action_press_key(self, action: TestAction) -> dict[str, Any]:
        key = str(action.value or "").strip()
        if not key:
            raise ValueError("press_key requires a key name")
        await self._adb(self.device.press_key, key)
        return {"key": key}

    async def _action_screenshot(self, action: TestAction) -> dict[str, Any]:
        data = await self.capture()
        if data is None:
            logger.warning("Device screenshot failed")
            return {"note": "screenshot failed"}
        try:
            path = self._screenshots.save_timestamped(data)
        except OSError as e:
            logger.warning("Could not write screenshot: %s", e)
            return {"note": f"screenshot failed: {e}"}
        return {"path": str(path)}

    @property
    def device(self) -> DeviceController:
        if self._device is None:
            raise PlatformInitError("Mobile executor used before initialize()")
        return self._device

    def _target(self, action: TestAction) -> ElementLocator:
        if action.target is None:
            raise ResolutionError(f"{action.type.value} action {action.id} has no target")
        return action.target

    async def _locate(self, target: ElementLocator) -> tuple[int, int]:
        if target.type == LocatorType.COORDINATES:
            return parse_point(target.value)
        if target.type not in LOOKUP_KINDS:
            raise ResolutionError(f"{target.type.value} locators are not supported on Android")

        center = await self._adb(self.device.find_element, target.type, target.value)
        if center is None:
            raise ResolutionError("Element not found on device", [target])
        return center

    async def _adb(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except RuntimeError as e:
            raise InteractionError(str(e)) from e
