"""Core modules for replaycli."""

from replaycli.core.browser_session import BrowserSession
from replaycli.core.config import ConfigLoader, ReplayConfig, TimeoutConfig
from replaycli.core.errors import (
    AssertionMismatchError,
    InteractionError,
    PlatformInitError,
    ReplayError,
    ResolutionError,
    TestCaseLoadError,
    UnsupportedActionError,
)
from replaycli.core.executor import ExecutionResult, StepResult, TestExecutor
from replaycli.core.locator_resolver import LocatorResolver, Resolution
from replaycli.core.parser import TestCaseParser
from replaycli.core.platforms import ActionExecutor
from replaycli.core.report import ReportGenerator

__all__ = [
    "ActionExecutor",
    "AssertionMismatchError",
    "BrowserSession",
    "ConfigLoader",
    "ExecutionResult",
    "InteractionError",
    "LocatorResolver",
    "PlatformInitError",
    "ReplayConfig",
    "ReplayError",
    "ReportGenerator",
    "Resolution",
    "ResolutionError",
    "StepResult",
    "TestCaseLoadError",
    "TestCaseParser",
    "TestExecutor",
    "TimeoutConfig",
    "UnsupportedActionError",
]
