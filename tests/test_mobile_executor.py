"""Tests for MobileActionExecutor."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from replaycli.core.config import ReplayConfig
from replaycli.core.errors import (
    InteractionError,
    PlatformInitError,
    ResolutionError,
    UnsupportedActionError,
)
from replaycli.core.executor import TestExecutor
from replaycli.core.mobile_executor import MobileActionExecutor
from replaycli.core.screenshot_saver import ScreenshotSaver
from replaycli.models.test import (
    ActionType,
    ElementLocator,
    LocatorType,
    PlatformType,
    TestAction,
    TestCase,
)

ONLINE = [
    {"id": "R58M12345", "name": "unknown", "status": "unauthorized"},
    {"id": "emulator-5554", "name": "Pixel 7", "status": "device"},
]


def action(kind, target=None, value=None, action_id="m1"):
    return TestAction(
        id=action_id, type=kind, platform=PlatformType.MOBILE, target=target, value=value
    )


@pytest.fixture
def device():
    """DeviceController stand-in."""
    device = MagicMock()
    device.find_element.return_value = (540, 1200)
    device.take_screenshot.return_value = b"\x89PNG"
    return device


@pytest.fixture
def factory(device):
    """Device factory recording which id was chosen."""
    return MagicMock(return_value=device)


def make_executor(factory, tmp_path, devices=ONLINE, wanted=None):
    return MobileActionExecutor(
        ReplayConfig(device=wanted),
        device_factory=factory,
        list_devices=lambda: devices,
        screenshots=ScreenshotSaver(tmp_path),
    )


class TestInitialize:
    """Device selection."""

    @pytest.mark.asyncio
    async def test_picks_first_online_device(self, factory, tmp_path):
        """Unauthorized devices are passed over."""
        executor = make_executor(factory, tmp_path)

        await executor.initialize()

        factory.assert_called_once_with("emulator-5554")

    @pytest.mark.asyncio
    async def test_configured_device(self, factory, tmp_path):
        """An explicitly configured device must be online."""
        executor = make_executor(factory, tmp_path, wanted="R58M12345")

        with pytest.raises(PlatformInitError, match="not attached or not online"):
            await executor.initialize()

    @pytest.mark.asyncio
    async def test_no_devices(self, factory, tmp_path):
        """No online device is an initialization failure."""
        executor = make_executor(factory, tmp_path, devices=[])

        with pytest.raises(PlatformInitError, match="No online Android device"):
            await executor.initialize()

    @pytest.mark.asyncio
    async def test_adb_missing(self, factory, tmp_path):
        """A failing device listing becomes PlatformInitError."""
        def no_adb():
            raise RuntimeError("adb not found on PATH")

        executor = MobileActionExecutor(ReplayConfig(), device_factory=factory, list_devices=no_adb)

        with pytest.raises(PlatformInitError, match="adb not found"):
            await executor.initialize()

    @pytest.mark.asyncio
    async def test_use_before_initialize(self, factory, tmp_path):
        """Handlers refuse to run without a device."""
        executor = make_executor(factory, tmp_path)

        with pytest.raises(PlatformInitError):
            await executor.execute(action(ActionType.PRESS_KEY, value="BACK"))


class TestActions:
    """Handlers on an attached device."""

    @pytest.mark.asyncio
    async def test_tap_by_id(self, factory, device, tmp_path):
        """Resource ids are looked up and tapped at their center."""
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        details = await executor.execute(
            action(ActionType.TAP, ElementLocator(LocatorType.ID, "digit_1"))
        )

        device.find_element.assert_called_once_with(LocatorType.ID, "digit_1")
        device.tap.assert_called_once_with(540, 1200)
        assert details["coordinates"] == {"x": 540, "y": 1200}

    @pytest.mark.asyncio
    async def test_tap_coordinates_skip_lookup(self, factory, device, tmp_path):
        """Coordinates are tapped directly."""
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        await executor.execute(
            action(ActionType.TAP, ElementLocator(LocatorType.COORDINATES, '{"x": 5, "y": 9}'))
        )

        device.find_element.assert_not_called()
        device.tap.assert_called_once_with(5, 9)

    @pytest.mark.asyncio
    async def test_tap_missing_element(self, factory, device, tmp_path):
        """No match is a resolution failure naming the locator."""
        device.find_element.return_value = None
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        with pytest.raises(ResolutionError, match="text=Login"):
            await executor.execute(
                action(ActionType.TAP, ElementLocator(LocatorType.TEXT, "Login"))
            )

    @pytest.mark.asyncio
    async def test_type_focuses_then_types(self, factory, device, tmp_path):
        """type taps the field before sending text."""
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        await executor.execute(action(
            ActionType.TYPE, ElementLocator(LocatorType.ACCESSIBILITY_ID, "Email"), "me@x.io"
        ))

        device.tap.assert_called_once_with(540, 1200)
        device.type_text.assert_called_once_with("me@x.io")

    @pytest.mark.asyncio
    async def test_swipe(self, factory, device, tmp_path):
        """Swipe runs from the target point to value.endX/endY."""
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        await executor.execute(action(
            ActionType.SWIPE,
            ElementLocator(LocatorType.COORDINATES, "100,800"),
            {"endX": 100, "endY": 200, "duration": 250},
        ))

        device.swipe.assert_called_once_with(100, 800, 100, 200, 250)

    @pytest.mark.asyncio
    async def test_swipe_needs_end_point(self, factory, tmp_path):
        """Swipe without an end point is invalid."""
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        with pytest.raises(ValueError, match="endX"):
            await executor.execute(action(
                ActionType.SWIPE, ElementLocator(LocatorType.COORDINATES, "1,2"), {}
            ))

    @pytest.mark.asyncio
    async def test_adb_error_is_interaction_error(self, factory, device, tmp_path):
        """adb failures surface as InteractionError."""
        device.press_key.side_effect = RuntimeError("adb command failed: device offline")
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        with pytest.raises(InteractionError, match="device offline"):
            await executor.execute(action(ActionType.PRESS_KEY, value="BACK"))

    @pytest.mark.asyncio
    async def test_screenshot_saved(self, factory, tmp_path):
        """Device screenshots go to the screenshot folder."""
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        details = await executor.execute(action(ActionType.SCREENSHOT))

        assert details["path"].startswith(str(tmp_path))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", [ActionType.CLICK, ActionType.NAVIGATE, ActionType.ASSERT])
    async def test_web_kinds_unsupported(self, factory, tmp_path, kind):
        """Web-only kinds raise UnsupportedActionError."""
        executor = make_executor(factory, tmp_path)
        await executor.initialize()

        with pytest.raises(UnsupportedActionError):
            await executor.execute(action(kind, ElementLocator(LocatorType.TEXT, "x")))


class TestMobileRun:
    """Mobile executor inside a full run."""

    @pytest.mark.asyncio
    async def test_unsupported_skipped_and_run_continues(
        self, factory, device, fast_config, tmp_path
    ):
        """An unsupported click is skipped; the following tap still runs."""
        mobile = make_executor(factory, tmp_path)
        case = TestCase(
            id="m",
            name="Mobile",
            platform=PlatformType.MOBILE,
            actions=(
                action(ActionType.CLICK, ElementLocator(LocatorType.TEXT, "A"), action_id="1"),
                action(ActionType.TAP, ElementLocator(LocatorType.TEXT, "B"), action_id="2"),
            ),
        )
        session = MagicMock()
        session.close = AsyncMock()
        runner = TestExecutor(
            config=fast_config,
            session=session,
            executors={PlatformType.MOBILE: mobile},
            output_dir=tmp_path,
        )

        result = await runner.execute_test_case(case)

        assert result.status == "passed"
        assert [s.status for s in result.steps] == ["skipped", "passed"]
        device.tap.assert_called_once()
