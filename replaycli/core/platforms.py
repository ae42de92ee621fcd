"""Platform action executor contract."""

from __future__ import annotations

import json
import logging
from typing import Any, ClassVar

from replaycli.core.errors import UnsupportedActionError
from replaycli.models.test import ActionType, PlatformType, TestAction

logger = logging.getLogger("replay.platforms")


class ActionExecutor:
    """Base class for per-platform executors.

    Subclasses provide one ``_action_<kind>`` coroutine per ActionType they
    handle and list the rest in UNSUPPORTED. Defining a subclass that does
    neither for some kind raises TypeError, so adding an ActionType forces a
    decision in every platform.

    A handler returns an optional details dict (recorded on the StepResult) or
    raises a ReplayError subclass. UnsupportedActionError marks the step as
    skipped instead of failed.
    """

    platform: ClassVar[PlatformType]
    UNSUPPORTED: ClassVar[frozenset[ActionType]] = frozenset()

    def __init_subclass__(cls, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        if "platform" not in cls.__dict__:
            return  # Intermediate base class

        overlap = [kind.value for kind in cls.UNSUPPORTED if cls._handler_for(kind)]
        if overlap:
            raise TypeError(
                f"{cls.__name__} lists handled actions as unsupported: {', '.join(overlap)}"
            )

        missing = [
            kind.value
            for kind in ActionType
            if kind not in cls.UNSUPPORTED and cls._handler_for(kind) is None
        ]
        if missing:
            raise TypeError(
                f"{cls.__name__} has no handler for: {', '.join(missing)} "
                "(add _action_<kind> or list it in UNSUPPORTED)"
            )

    @classmethod
    def _handler_for(cls, kind: ActionType) -> Any:
        handler = getattr(cls, f"_action_{kind.value}", None)
        return handler if callable(handler) else None

    async def initialize(self) -> None:
        """Prepare the driver before the first step (may raise PlatformInitError)."""

    async def cleanup(self) -> None:
        """Release per-run resources; always called at the end of a run."""

    async def capture(self) -> bytes | None:
        """PNG of the current screen for failure reports, or None."""
        return None

    async def execute(self, action: TestAction) -> dict[str, Any]:
        """Perform one action.

        Args:
            action: Action to replay

        Returns:
            Details about how the action was performed

        Raises:
            UnsupportedActionError: No handler for this kind on this platform
            ReplayError: Resolution, interaction or assertion failure
        """
        if action.type in self.UNSUPPORTED:
            raise UnsupportedActionError(self.platform, action.type)

        handler = getattr(self, f"_action_{action.type.value}")
        logger.debug("%s executing %s (%s)", self.platform.value, action.type.value, action.id)
        details = await handler(action)
        return details or {}


def parse_point(value: Any) -> tuple[int, int]:
    """Parse a recorded screen point.

    Accepts ``{"x": 10, "y": 20}``, its JSON text, ``"10,20"`` or ``[10, 20]``.

    Raises:
        ValueError: If the value is not a point
    """
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("{", "[")):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid coordinates: {text!r}") from e
        else:
            parts = [p.strip() for p in text.split(",")]
            if len(parts) != 2:
                raise ValueError(f"Invalid coordinates: {text!r}")
            value = parts

    try:
        if isinstance(value, dict):
            return int(float(value["x"])), int(float(value["y"]))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return int(float(value[0])), int(float(value[1]))
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid coordinates: {value!r}") from e
    raise ValueError(f"Invalid coordinates: {value!r}")


def value_field(value: Any, key: str, default: Any = None) -> Any:
    """Read a key from a dict-shaped action value (or its JSON text)."""
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return default
    if isinstance(value, dict):
        return value.get(key, default)
    return default
