"""Failure kinds raised while replaying actions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from replaycli.models.test import ActionType, ElementLocator, PlatformType

# Playwright reports occlusion with this phrase in its error message
INTERCEPT_MARKER = "intercepts pointer events"


class ReplayError(Exception):
    """Base class for replay failures."""

    pass


class TestCaseLoadError(ReplayError):
    """Error loading a test case or suite file."""

    __test__ = False


class PlatformInitError(ReplayError):
    """Driver or session could not be established."""

    pass


class ResolutionError(ReplayError):
    """No rung of the locator ladder produced an element."""

    def __init__(
        self,
        message: str,
        attempted: list[ElementLocator] | None = None,
        last_error: BaseException | None = None,
    ):
        self.attempted = list(attempted or [])
        self.last_error = last_error
        if attempted:
            tried = ", ".join(loc.describe() for loc in self.attempted)
            message = f"{message} (tried: {tried})"
        if last_error is not None:
            message = f"{message}: {_first_line(last_error)}"
        super().__init__(message)


class InteractionError(ReplayError):
    """Element was found but the operation on it failed."""

    def __init__(self, message: str, intercepted: bool = False):
        self.intercepted = intercepted
        super().__init__(message)

    @classmethod
    def from_driver_error(cls, exc: BaseException) -> InteractionError:
        """Classify a driver exception, flagging pointer interception."""
        return cls(_first_line(exc), intercepted=is_interception(exc))


class AssertionMismatchError(ReplayError):
    """Resolved value differs from the expectation."""

    def __init__(self, expected: str | None, actual: str | None):
        self.expected = expected
        self.actual = actual
        super().__init__(f'Assertion failed: expected "{expected}", got "{actual}"')


class UnsupportedActionError(ReplayError):
    """No handler exists for this action kind on this platform."""

    def __init__(self, platform: PlatformType, action: ActionType | str, reason: str = ""):
        self.platform = platform
        self.action = action
        kind = getattr(action, "value", action)
        message = f"Unsupported {platform.value} action: {kind}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


def is_interception(exc: BaseException) -> bool:
    """True when the driver error says another element took the pointer event."""
    if isinstance(exc, InteractionError):
        return exc.intercepted
    return INTERCEPT_MARKER in str(exc)


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__
