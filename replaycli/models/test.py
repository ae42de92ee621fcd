"""Test case data models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Upper bound on fallback nesting
MAX_LOCATOR_DEPTH = 16


class PlatformType(str, Enum):
    """Target platform of a test case or action."""

    WEB = "web"
    DESKTOP = "desktop"
    MOBILE = "mobile"


class ActionType(str, Enum):
    """Kinds of recorded actions."""

    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    HOVER = "hover"
    NAVIGATE = "navigate"
    WAIT = "wait"
    WAIT_FOR_ELEMENT = "wait_for_element"
    ASSERT = "assert"
    SCREENSHOT = "screenshot"
    DRAG_DROP = "drag_drop"
    SWIPE = "swipe"
    TAP = "tap"
    SCROLL = "scroll"
    PRESS_KEY = "press_key"
    CUSTOM = "custom"


class LocatorType(str, Enum):
    """How an ElementLocator value should be interpreted."""

    XPATH = "xpath"
    CSS = "css"
    ID = "id"
    NAME = "name"
    TEXT = "text"
    ACCESSIBILITY_ID = "accessibility_id"
    COORDINATES = "coordinates"
    PLACEHOLDER = "placeholder"
    ROLE = "role"


# Actions that address a UI element and therefore need a target
TARGETED_ACTIONS = frozenset({
    ActionType.CLICK,
    ActionType.TYPE,
    ActionType.HOVER,
    ActionType.SELECT,
    ActionType.TAP,
    ActionType.ASSERT,
})

# Pure control actions that never carry a target
CONTROL_ACTIONS = frozenset({ActionType.WAIT, ActionType.NAVIGATE})


@dataclass(frozen=True)
class ElementLocator:
    """A resolvable reference to a UI element with ordered fallbacks."""

    type: LocatorType
    value: str
    fallbacks: tuple[ElementLocator, ...] = ()

    def chain(self) -> list[ElementLocator]:
        """Primary followed by fallbacks, depth-first in declared order."""
        result = [self]
        for fallback in self.fallbacks:
            result.extend(fallback.chain())
        return result

    def describe(self) -> str:
        return f"{self.type.value}={self.value}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "value": self.value}
        if self.fallbacks:
            data["fallbacks"] = [f.to_dict() for f in self.fallbacks]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], _depth: int = 0) -> ElementLocator:
        """Build a locator chain, rejecting chains that are too deep.

        Dict input cannot express a reference cycle, so bounding the depth
        keeps the chain finite.
        """
        if _depth > MAX_LOCATOR_DEPTH:
            raise ValueError(f"Locator fallback chain deeper than {MAX_LOCATOR_DEPTH}")
        if not isinstance(data, dict):
            raise ValueError(f"Invalid locator: {data!r}")
        try:
            locator_type = LocatorType(data["type"])
        except KeyError:
            raise ValueError(f"Locator missing 'type': {data!r}")
        except ValueError:
            raise ValueError(f"Unknown locator type: {data.get('type')!r}")

        value = data.get("value")
        if value is None:
            raise ValueError(f"Locator missing 'value': {data!r}")
        if not isinstance(value, str):
            # Coordinates are sometimes recorded as an object
            value = _stringify(value)

        fallbacks = tuple(
            cls.from_dict(item, _depth + 1) for item in data.get("fallbacks") or []
        )
        return cls(type=locator_type, value=value, fallbacks=fallbacks)


@dataclass(frozen=True)
class TestAction:
    """One recorded operation."""

    __test__ = False

    id: str
    type: ActionType
    platform: PlatformType
    timestamp: int = 0
    target: ElementLocator | None = None
    value: Any = None
    object_id: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> list[str]:
        """Return a list of invariant violations (empty when valid)."""
        problems = []
        if self.type in TARGETED_ACTIONS and self.target is None:
            problems.append(f"Action {self.id} ({self.type.value}) requires a target")
        if self.type in CONTROL_ACTIONS and self.target is not None:
            problems.append(f"Action {self.id} ({self.type.value}) must not have a target")
        return problems

    def describe_target(self) -> str | None:
        """Human-readable description of what the action addresses."""
        if self.target is not None:
            return self.target.describe()
        if self.type == ActionType.NAVIGATE and self.value:
            return str(self.value)
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "platform": self.platform.value,
            "type": self.type.value,
        }
        if self.target is not None:
            data["target"] = self.target.to_dict()
        if self.value is not None:
            data["value"] = self.value
        if self.object_id is not None:
            data["objectId"] = self.object_id
        if self.description is not None:
            data["description"] = self.description
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], default_platform: PlatformType | None = None
    ) -> TestAction:
        if not isinstance(data, dict):
            raise ValueError(f"Invalid action: {data!r}")
        try:
            action_type = ActionType(data["type"])
        except KeyError:
            raise ValueError(f"Action missing 'type': {data!r}")
        except ValueError:
            raise ValueError(f"Unknown action type: {data.get('type')!r}")

        platform_value = data.get("platform")
        if platform_value is None:
            if default_platform is None:
                raise ValueError(f"Action missing 'platform': {data!r}")
            platform = default_platform
        else:
            platform = PlatformType(platform_value)

        target = data.get("target")
        return cls(
            id=str(data.get("id", "")),
            type=action_type,
            platform=platform,
            timestamp=int(data.get("timestamp") or 0),
            target=ElementLocator.from_dict(target) if target else None,
            value=data.get("value"),
            object_id=data.get("objectId"),
            description=data.get("description"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class TestCase:
    """An ordered, read-only sequence of actions."""

    # Tell pytest not to collect this as a test class
    __test__ = False

    id: str
    name: str
    platform: PlatformType
    actions: tuple[TestAction, ...] = ()
    description: str = ""
    tags: tuple[str, ...] = ()
    created_at: int = 0
    updated_at: int = 0
    path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "platform": self.platform.value,
            "actions": [a.to_dict() for a in self.actions],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: str | None = None) -> TestCase:
        try:
            platform = PlatformType(data["platform"])
        except KeyError:
            raise ValueError("Test case missing 'platform'")
        except ValueError:
            raise ValueError(f"Unknown platform: {data.get('platform')!r}")

        raw_actions = data.get("actions") or []
        if not isinstance(raw_actions, list):
            raise ValueError("'actions' must be a list")

        actions = tuple(
            TestAction.from_dict(item, default_platform=platform) for item in raw_actions
        )
        return cls(
            id=str(data.get("id") or data.get("name") or ""),
            name=str(data.get("name") or data.get("id") or "unnamed"),
            description=data.get("description") or "",
            platform=platform,
            actions=actions,
            tags=tuple(data.get("tags") or ()),
            created_at=int(data.get("createdAt") or 0),
            updated_at=int(data.get("updatedAt") or 0),
            path=path,
        )


def _stringify(value: Any) -> str:
    return json.dumps(value)
