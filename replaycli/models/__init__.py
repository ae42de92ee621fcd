"""Data models for replaycli."""

from replaycli.models.test import (
    ActionType,
    ElementLocator,
    LocatorType,
    PlatformType,
    TestAction,
    TestCase,
)

__all__ = [
    "ActionType",
    "ElementLocator",
    "LocatorType",
    "PlatformType",
    "TestAction",
    "TestCase",
]
