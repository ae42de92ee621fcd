"""Test execution engine."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable
from urllib.parse import urlsplit

from replaycli.core.browser_session import BrowserSession
from replaycli.core.config import ConfigLoader, ReplayConfig
from replaycli.core.errors import ReplayError, TestCaseLoadError, UnsupportedActionError
from replaycli.core.healing import HealingLog
from replaycli.core.parser import TestCaseParser
from replaycli.core.platforms import ActionExecutor
from replaycli.core.screenshot_saver import ScreenshotSaver
from replaycli.models.test import PlatformType, TestAction, TestCase

if TYPE_CHECKING:
    from replaycli.core.console_reporter import ConsoleReporter
    from replaycli.core.web_executor import WebActionExecutor

logger = logging.getLogger("replay.executor")


def _ms(seconds: float) -> int:
    return int(round(seconds * 1000))


def _seconds(ms: Any) -> float:
    return (ms or 0) / 1000


@dataclass
class StepResult:
    """Result of executing one action."""

    step_number: int
    action_id: str
    status: str  # "passed", "failed", "skipped"
    duration: float = 0.0
    error: str | None = None
    action: str | None = None
    target: str | None = None  # Human-readable target description
    description: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stepNumber": self.step_number,
            "actionId": self.action_id,
            "status": self.status,
            "duration": _ms(self.duration),
        }
        if self.error is not None:
            data["error"] = self.error
        if self.action is not None:
            data["action"] = self.action
        if self.target is not None:
            data["target"] = self.target
        if self.description is not None:
            data["description"] = self.description
        if self.details:
            data["details"] = self.details
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepResult:
        return cls(
            step_number=int(data.get("stepNumber") or 0),
            action_id=str(data.get("actionId") or ""),
            status=str(data.get("status") or "failed"),
            duration=_seconds(data.get("duration")),
            error=data.get("error"),
            action=data.get("action"),
            target=data.get("target"),
            description=data.get("description"),
            details=dict(data.get("details") or {}),
        )


@dataclass
class ExecutionResult:
    """Result of one run of one test case."""

    test_case_id: str
    name: str
    status: str  # "passed", "failed"
    start_time: float
    end_time: float
    duration: float
    steps: list[StepResult] = field(default_factory=list)
    error: str | None = None
    iteration: int = 1

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    def count(self, status: str) -> int:
        """Number of steps with the given status."""
        return sum(1 for step in self.steps if step.status == status)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "testCaseId": self.test_case_id,
            "testCaseName": self.name,
            "status": self.status,
            "startTime": _ms(self.start_time),
            "endTime": _ms(self.end_time),
            "duration": _ms(self.duration),
            "iteration": self.iteration,
            "steps": [step.to_dict() for step in self.steps],
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionResult:
        return cls(
            test_case_id=str(data.get("testCaseId") or ""),
            name=str(data.get("testCaseName") or data.get("testCaseId") or ""),
            status=str(data.get("status") or "failed"),
            start_time=_seconds(data.get("startTime")),
            end_time=_seconds(data.get("endTime")),
            duration=_seconds(data.get("duration")),
            steps=[StepResult.from_dict(s) for s in data.get("steps") or []],
            error=data.get("error"),
            iteration=int(data.get("iteration") or 1),
        )


class TestExecutor:
    """Replay test cases, one action at a time, stopping at the first failure.

    The executor owns run state: results, step counters and the healing log
    that web runs record locator heals in. The BrowserSession is shared with
    the web executor and is never closed here; the caller that created it
    closes it.
    """

    # Tell pytest not to collect this as a test class
    __test__ = False

    def __init__(
        self,
        config: ReplayConfig | None = None,
        session: BrowserSession | None = None,
        executors: dict[PlatformType, ActionExecutor] | None = None,
        reporter: ConsoleReporter | None = None,
        output_dir: Path | None = None,
    ):
        """Initialize executor.

        Args:
            config: Configuration (loads from files if not provided)
            session: Live browser handle for web runs
            executors: Platform executors (built on first use if not provided)
            reporter: Optional ConsoleReporter for live CLI output
            output_dir: Run folder; failure screenshots go to its screenshots/
        """
        self._config = config or ConfigLoader.load()
        self._session = session or BrowserSession(self._config.browser)
        self._executors: dict[PlatformType, ActionExecutor] = dict(executors or {})
        self._reporter = reporter
        self._output_dir = output_dir
        screenshot_dir = (
            output_dir / "screenshots" if output_dir else Path(self._config.screenshot_dir)
        )
        self._screenshots = ScreenshotSaver(screenshot_dir)
        self.results: list[ExecutionResult] = []
        self.healing = HealingLog()

    @property
    def session(self) -> BrowserSession:
        return self._session

    def should_halt(self, step_result: StepResult) -> bool:
        """Whether a failed step ends the run. Always True (stop on failure)."""
        return step_result.status == "failed"

    async def execute_test_case(self, test_case: TestCase, iteration: int = 1) -> ExecutionResult:
        """Execute every action of a test case in order.

        Args:
            test_case: Loaded, read-only test case
            iteration: Loop iteration (1-based) recorded on the result

        Returns:
            ExecutionResult; steps stop at the first failure
        """
        start = time.time()
        steps: list[StepResult] = []
        status = "passed"
        error: str | None = None

        logger.info(
            "Starting test: %s (%s, %d actions, iteration %d)",
            test_case.name, test_case.platform.value, len(test_case.actions), iteration,
        )
        if self._reporter:
            self._reporter.start(test_case.name, len(test_case.actions), iteration)

        executor = self._executor_for(test_case.platform)
        try:
            try:
                await executor.initialize()
            except Exception as e:
                status = "failed"
                error = f"Platform initialization failed: {e}"
                logger.error("%s", error)
            else:
                for number, action in enumerate(test_case.actions, start=1):
                    self.healing.begin_step(test_case.id, number)
                    result = await self.execute_action(executor, action, number)
                    steps.append(result)
                    if result.status != "failed":
                        continue
                    status = "failed"
                    if error is None:
                        error = f"Step {number} failed: {result.error}"
                    if self.should_halt(result):
                        logger.error("Halting at step %d: %s", number, result.error)
                        break
        finally:
            try:
                await executor.cleanup()
            except Exception as e:
                logger.warning("Platform cleanup failed: %s", e)

        end = time.time()
        result = ExecutionResult(
            test_case_id=test_case.id,
            name=test_case.name,
            status=status,
            start_time=start,
            end_time=end,
            duration=end - start,
            steps=steps,
            error=error,
            iteration=iteration,
        )
        self.results.append(result)

        logger.info(
            "Test completed: %s - status=%s, duration=%.2fs, steps=%d",
            test_case.name, status, result.duration, len(steps),
        )
        if self._reporter:
            self._reporter.finish(status, result.duration)
        return result

    async def execute_action(
        self, executor: ActionExecutor, action: TestAction, step_number: int
    ) -> StepResult:
        """Execute a single action and classify the outcome.

        Args:
            executor: Platform executor for the action
            action: Action to execute
            step_number: 1-based position in the test case

        Returns:
            StepResult (never raises for step-level failures)
        """
        start = time.time()
        target = action.describe_target()
        logger.debug("Step %d: Starting %s %s", step_number, action.type.value, target or "")
        for problem in action.validate():
            logger.warning("Step %d: %s", step_number, problem)

        if self._reporter:
            self._reporter.step_started(step_number, action.type.value, target)

        status = "passed"
        error: str | None = None
        details: dict[str, Any] = {}
        try:
            details = await executor.execute(action)
        except UnsupportedActionError as e:
            status = "skipped"
            details = {"reason": str(e)}
            logger.warning("Step %d: %s, skipping", step_number, e)
        except ReplayError as e:
            status = "failed"
            error = str(e)
            logger.debug("Step %d: Failed %s - %s", step_number, action.type.value, e)
        except Exception as e:
            status = "failed"
            error = str(e) or type(e).__name__
            logger.exception("Step %d: Exception in %s", step_number, action.type.value)

        elapsed = time.time() - start
        if status == "failed":
            screenshot = await self._save_failure_screenshot(executor, action, step_number)
            if screenshot is not None:
                details["screenshot"] = str(screenshot)
        else:
            logger.debug(
                "Step %d: %s %s in %.2fs", step_number, status, action.type.value, elapsed
            )

        if self._reporter:
            self._reporter.step_completed(
                step_number, status, error=error, note=details.get("resolvedBy")
            )

        return StepResult(
            step_number=step_number,
            action_id=action.id,
            status=status,
            duration=elapsed,
            error=error,
            action=action.type.value,
            target=target,
            description=action.description,
            details=details,
        )

    async def execute_from_file(self, path: Path, loop_count: int = 1) -> ExecutionResult:
        """Load and run a test case file, optionally several times.

        Web cases are first pointed at the suite's start URL (when the suite
        config declares one). Looping stops after the first failing run.

        Args:
            path: Test case file
            loop_count: Maximum number of runs

        Returns:
            Result of the last run

        Raises:
            TestCaseLoadError: If the file cannot be loaded
        """
        if loop_count < 1:
            raise ValueError("loop_count must be at least 1")

        path = Path(path)
        test_case = TestCaseParser.parse(path)

        result: ExecutionResult | None = None
        for iteration in range(1, loop_count + 1):
            if loop_count > 1:
                logger.info("Iteration %d/%d of %s", iteration, loop_count, test_case.name)

            if test_case.platform == PlatformType.WEB:
                try:
                    await self._prepare_web(path)
                except ReplayError as e:
                    result = self._failed_result(
                        test_case.id, test_case.name,
                        f"Platform initialization failed: {e}", iteration,
                    )
                    break

            result = await self.execute_test_case(test_case, iteration=iteration)
            if not result.passed:
                if iteration < loop_count:
                    logger.info("Stopping loop after failure in iteration %d", iteration)
                break

        assert result is not None
        return result

    async def execute_batch(self, items: Iterable[TestCase | Path]) -> list[ExecutionResult]:
        """Run test cases (or files) sequentially; failures don't stop the batch.

        Args:
            items: TestCase objects or paths to test case files

        Returns:
            One ExecutionResult per item, in order
        """
        batch: list[ExecutionResult] = []
        for item in items:
            if isinstance(item, TestCase):
                batch.append(await self.execute_test_case(item))
                continue

            path = Path(item)
            try:
                batch.append(await self.execute_from_file(path))
            except TestCaseLoadError as e:
                logger.error("Could not load %s: %s", path, e)
                batch.append(self._failed_result(path.stem, path.name, str(e), 1))
        return batch

    async def _prepare_web(self, path: Path) -> None:
        """Open the suite start page unless the browser is already on that site."""
        base_url = TestCaseParser.suite_url(path)
        if not base_url:
            return

        web = self._web_executor()
        page = self._session.page
        if page is None:
            logger.info("No open page, starting browser at %s", base_url)
            page = await self._session.start()
            await web.navigate(page, base_url)
            return

        current = page.url or ""
        if current in ("", "about:blank") or _origin(current) != _origin(base_url):
            logger.info("Page is on %s, navigating to suite URL %s", current or "blank", base_url)
            await web.navigate(page, base_url)
        else:
            logger.debug("Page already on %s, leaving it as is", current)

    def _executor_for(self, platform: PlatformType) -> ActionExecutor:
        executor = self._executors.get(platform)
        if executor is not None:
            return executor

        if platform == PlatformType.WEB:
            from replaycli.core.web_executor import WebActionExecutor

            executor = WebActionExecutor(
                self._session, self._config, screenshots=self._screenshots, healing=self.healing
            )
        elif platform == PlatformType.DESKTOP:
            from replaycli.core.desktop_executor import DesktopActionExecutor

            executor = DesktopActionExecutor(config=self._config, screenshots=self._screenshots)
        else:
            from replaycli.core.mobile_executor import MobileActionExecutor

            executor = MobileActionExecutor(self._config, screenshots=self._screenshots)

        self._executors[platform] = executor
        return executor

    def _web_executor(self) -> WebActionExecutor:
        return self._executor_for(PlatformType.WEB)  # type: ignore[return-value]

    async def _save_failure_screenshot(
        self, executor: ActionExecutor, action: TestAction, step_number: int
    ) -> Path | None:
        data = await executor.capture()
        try:
            return self._screenshots.save(data, step_number, action.type.value, "failure")
        except OSError as e:
            logger.warning("Could not save failure screenshot: %s", e)
            return None

    def _failed_result(
        self, test_case_id: str, name: str, error: str, iteration: int
    ) -> ExecutionResult:
        now = time.time()
        result = ExecutionResult(
            test_case_id=test_case_id,
            name=name,
            status="failed",
            start_time=now,
            end_time=now,
            duration=0.0,
            error=error,
            iteration=iteration,
        )
        self.results.append(result)
        return result


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()
