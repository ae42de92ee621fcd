"""Record of locators healed during replay.

Every time the resolver succeeds on anything other than the primary locator,
the heal is logged with the step it happened in. Across a run or batch the
log shows which recorded locators have gone stale, and locators healed the
same way repeatedly are offered as suggested updates for the test cases.
"""

from __future__ import annotations

import json
import logging
import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from replaycli.models.test import ElementLocator, LocatorType

if TYPE_CHECKING:
    from replaycli.core.locator_resolver import Resolution

logger = logging.getLogger("replay.healing")

RECENT_LIMIT = 10
SUGGESTION_MIN_FREQUENCY = 2


def _locator_dict(locator: ElementLocator) -> dict[str, str]:
    return {"type": locator.type.value, "value": locator.value}


@dataclass(frozen=True)
class HealingEvent:
    """One successful resolution that did not use the primary locator."""

    original: ElementLocator
    healed: ElementLocator
    strategy: str
    timestamp: float
    object_name: str | None = None
    test_case_id: str | None = None
    step_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": int(round(self.timestamp * 1000)),
            "originalLocator": _locator_dict(self.original),
            "healedLocator": _locator_dict(self.healed),
            "strategy": self.strategy,
        }
        if self.object_name is not None:
            data["objectName"] = self.object_name
        if self.test_case_id is not None:
            data["testCaseId"] = self.test_case_id
        if self.step_number is not None:
            data["stepNumber"] = self.step_number
        return data


class HealingLog:
    """Heals collected over every run of one executor.

    Usage:
        log = HealingLog()
        log.begin_step("login", 3)
        log.record(primary, resolution, object_name='Click "Save"')
        log.export(run_folder / "healing.json")
    """

    def __init__(self) -> None:
        self.events: list[HealingEvent] = []
        self._test_case_id: str | None = None
        self._step_number: int | None = None

    def __len__(self) -> int:
        return len(self.events)

    def begin_step(self, test_case_id: str | None, step_number: int | None) -> None:
        """Attribute heals recorded from now on to this step."""
        self._test_case_id = test_case_id
        self._step_number = step_number

    def record(
        self,
        original: ElementLocator,
        resolution: Resolution,
        object_name: str | None = None,
    ) -> HealingEvent | None:
        """Log a resolution if it was a heal.

        Args:
            original: Primary locator the ladder started from
            resolution: What the ladder settled on
            object_name: Human label for the element (the action description)

        Returns:
            The logged event, or None when the primary locator worked
        """
        if not resolution.healed:
            return None
        healed = resolution.used
        if healed is None:
            healed = ElementLocator(LocatorType.TEXT, resolution.text or "")

        event = HealingEvent(
            original=ElementLocator(original.type, original.value),
            healed=ElementLocator(healed.type, healed.value),
            strategy=resolution.strategy,
            timestamp=time.time(),
            object_name=object_name,
            test_case_id=self._test_case_id,
            step_number=self._step_number,
        )
        self.events.append(event)
        logger.debug(
            "Heal #%d: %s -> %s (%s)",
            len(self.events), original.describe(), healed.describe(), resolution.strategy,
        )
        return event

    def statistics(self) -> dict[str, Any]:
        """Totals per strategy plus the most recent heals."""
        return {
            "totalHealings": len(self.events),
            "byStrategy": dict(Counter(event.strategy for event in self.events)),
            "recentHealings": [event.to_dict() for event in self.events[-RECENT_LIMIT:]],
        }

    def suggest_updates(
        self, min_frequency: int = SUGGESTION_MIN_FREQUENCY
    ) -> list[dict[str, Any]]:
        """Locators healed at least min_frequency times, most frequent first.

        Heals are grouped by element name and original locator; the first
        replacement seen for a group is the one suggested.
        """
        groups: dict[tuple[str, str, str], dict[str, Any]] = {}
        for event in self.events:
            key = (event.object_name or "", event.original.type.value, event.original.value)
            group = groups.get(key)
            if group is None:
                groups[key] = {
                    "objectName": event.object_name,
                    "oldLocator": _locator_dict(event.original),
                    "newLocator": _locator_dict(event.healed),
                    "strategy": event.strategy,
                    "frequency": 1,
                }
            else:
                group["frequency"] += 1

        suggestions = [g for g in groups.values() if g["frequency"] >= min_frequency]
        return sorted(suggestions, key=lambda g: g["frequency"], reverse=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "statistics": self.statistics(),
            "suggestedUpdates": self.suggest_updates(),
            "healings": [event.to_dict() for event in self.events],
        }

    def export(self, path: Path) -> Path:
        """Write the log as JSON.

        Returns:
            Path to the written file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info("Healing log exported to %s (%d heals)", path, len(self.events))
        return path
