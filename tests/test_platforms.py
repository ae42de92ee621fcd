"""Tests for the platform executor contract."""

import pytest

from replaycli.core.errors import UnsupportedActionError
from replaycli.core.platforms import ActionExecutor, parse_point, value_field
from replaycli.models.test import ActionType, PlatformType, TestAction


def everything_but(*kinds):
    return frozenset(k for k in ActionType if k not in kinds)


class TestExhaustiveness:
    """Every action kind needs a decision per platform."""

    def test_missing_handler_rejected(self):
        """A kind neither handled nor listed fails at class definition."""
        with pytest.raises(TypeError, match="no handler for: wait"):

            class Incomplete(ActionExecutor):
                platform = PlatformType.DESKTOP
                UNSUPPORTED = everything_but(ActionType.CLICK, ActionType.WAIT)

                async def _action_click(self, action):
                    return {}

    def test_handled_and_unsupported_rejected(self):
        """Listing a handled kind as unsupported is contradictory."""
        with pytest.raises(TypeError, match="lists handled actions as unsupported: click"):

            class Contradictory(ActionExecutor):
                platform = PlatformType.DESKTOP
                UNSUPPORTED = frozenset(ActionType)

                async def _action_click(self, action):
                    return {}

    def test_intermediate_base_not_checked(self):
        """Classes without their own platform are not checked."""

        class Base(ActionExecutor):
            pass

        assert issubclass(Base, ActionExecutor)

    @pytest.mark.asyncio
    async def test_dispatch_and_unsupported(self):
        """Handled kinds dispatch; listed kinds raise UnsupportedActionError."""

        class ClickOnly(ActionExecutor):
            platform = PlatformType.DESKTOP
            UNSUPPORTED = everything_but(ActionType.CLICK)

            async def _action_click(self, action):
                return {"clicked": action.id}

        executor = ClickOnly()
        click = TestAction(id="c", type=ActionType.CLICK, platform=PlatformType.DESKTOP)
        wait = TestAction(id="w", type=ActionType.WAIT, platform=PlatformType.DESKTOP)

        assert await executor.execute(click) == {"clicked": "c"}
        with pytest.raises(UnsupportedActionError, match="Unsupported desktop action: wait"):
            await executor.execute(wait)

    @pytest.mark.asyncio
    async def test_none_details_become_empty(self):
        """Handlers may return nothing."""

        class Quiet(ActionExecutor):
            platform = PlatformType.WEB
            UNSUPPORTED = everything_but(ActionType.WAIT)

            async def _action_wait(self, action):
                return None

        wait = TestAction(id="w", type=ActionType.WAIT, platform=PlatformType.WEB)

        assert await Quiet().execute(wait) == {}
        assert await Quiet().capture() is None


class TestParsePoint:
    """Recorded screen points."""

    @pytest.mark.parametrize("value", [
        {"x": 10, "y": 20},
        '{"x": 10, "y": 20}',
        "10,20",
        " 10 , 20 ",
        [10, 20],
        "[10.4, 20.9]",
    ])
    def test_accepted_forms(self, value):
        """Objects, JSON text, pairs and lists all parse."""
        assert parse_point(value) == (10, 20)

    @pytest.mark.parametrize("value", ["10", "a,b", '{"x": 1}', "{broken", None, [1, 2, 3]])
    def test_rejected_forms(self, value):
        """Anything else is a ValueError."""
        with pytest.raises(ValueError, match="Invalid coordinates"):
            parse_point(value)


class TestValueField:
    """Dict-shaped action values."""

    def test_reads_dict_and_json(self):
        """Both dicts and JSON text are read."""
        assert value_field({"endX": 5}, "endX") == 5
        assert value_field('{"endX": 5}', "endX") == 5

    def test_defaults(self):
        """Plain strings and missing keys give the default."""
        assert value_field("Enter", "key", "x") == "x"
        assert value_field({"a": 1}, "b") is None
        assert value_field("{bad json", "a", 0) == 0
