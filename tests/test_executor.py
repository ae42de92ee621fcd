"""Tests for TestExecutor."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from replaycli.core.errors import (
    PlatformInitError,
    ResolutionError,
    UnsupportedActionError,
)
from replaycli.core.executor import ExecutionResult, StepResult, TestExecutor
from replaycli.core.locator_resolver import Resolution
from replaycli.models.test import (
    ActionType,
    ElementLocator,
    LocatorType,
    PlatformType,
    TestAction,
    TestCase,
)


def make_case(count, platform=PlatformType.DESKTOP, case_id="case"):
    actions = tuple(
        TestAction(
            id=str(n),
            type=ActionType.CLICK,
            platform=platform,
            target=ElementLocator(LocatorType.COORDINATES, f"{n},{n}"),
        )
        for n in range(1, count + 1)
    )
    return TestCase(id=case_id, name=case_id.title(), platform=platform, actions=actions)


def write_case_file(path, count=2, platform="desktop"):
    path.write_text(json.dumps({
        "id": path.stem,
        "name": path.stem,
        "platform": platform,
        "actions": [
            {"id": str(n), "type": "wait", "value": 1} for n in range(1, count + 1)
        ],
    }))
    return path


def fake_platform(outcomes=None):
    """Platform executor whose execute() follows a script of results."""
    executor = MagicMock()
    executor.initialize = AsyncMock()
    executor.cleanup = AsyncMock()
    executor.capture = AsyncMock(return_value=b"\x89PNG")
    if outcomes is None:
        executor.execute = AsyncMock(return_value={})
    else:
        executor.execute = AsyncMock(side_effect=outcomes)
    return executor


@pytest.fixture
def session():
    """Browser session stand-in."""
    session = MagicMock()
    session.page = None
    session.start = AsyncMock()
    return session


def build(fast_config, session, tmp_path, **executors):
    platforms = {PlatformType(name): executor for name, executor in executors.items()}
    return TestExecutor(
        config=fast_config, session=session, executors=platforms, output_dir=tmp_path
    )


class TestExecuteTestCase:
    """Single-run semantics."""

    @pytest.mark.asyncio
    async def test_empty_case_passes(self, fast_config, session, tmp_path):
        """Zero actions is a pass with no steps."""
        desktop = fake_platform()
        executor = build(fast_config, session, tmp_path, desktop=desktop)

        result = await executor.execute_test_case(make_case(0))

        assert result.status == "passed"
        assert result.steps == []
        desktop.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, fast_config, session, tmp_path):
        """Action 3 of 5 fails: three steps recorded, 4 and 5 never run."""
        desktop = fake_platform([{}, {}, ResolutionError("Element not found"), {}, {}])
        executor = build(fast_config, session, tmp_path, desktop=desktop)

        result = await executor.execute_test_case(make_case(5))

        assert result.status == "failed"
        assert [s.status for s in result.steps] == ["passed", "passed", "failed"]
        assert result.error == "Step 3 failed: Element not found"
        assert desktop.execute.await_count == 3

    @pytest.mark.asyncio
    async def test_failure_saves_screenshot(self, fast_config, session, tmp_path):
        """A failed step keeps a screenshot of the screen at failure."""
        desktop = fake_platform([ResolutionError("gone")])
        executor = build(fast_config, session, tmp_path, desktop=desktop)

        result = await executor.execute_test_case(make_case(1))

        screenshot = tmp_path / "screenshots" / "001_click_failure.png"
        assert screenshot.read_bytes() == b"\x89PNG"
        assert result.steps[0].details["screenshot"] == str(screenshot)

    @pytest.mark.asyncio
    async def test_unsupported_action_skipped(self, fast_config, session, tmp_path):
        """Unsupported kinds are skipped and the run continues."""
        desktop = fake_platform([
            UnsupportedActionError(PlatformType.DESKTOP, ActionType.CLICK), {},
        ])
        executor = build(fast_config, session, tmp_path, desktop=desktop)

        result = await executor.execute_test_case(make_case(2))

        assert result.status == "passed"
        assert [s.status for s in result.steps] == ["skipped", "passed"]
        assert "Unsupported desktop action" in result.steps[0].details["reason"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_step(self, fast_config, session, tmp_path):
        """Non-replay exceptions still produce a failed step, not a crash."""
        desktop = fake_platform([KeyError("x")])
        executor = build(fast_config, session, tmp_path, desktop=desktop)

        result = await executor.execute_test_case(make_case(1))

        assert result.steps[0].status == "failed"
        assert result.steps[0].error == "'x'"

    @pytest.mark.asyncio
    async def test_initialization_failure(self, fast_config, session, tmp_path):
        """A platform that cannot start fails the run with no steps."""
        mobile = fake_platform()
        mobile.initialize = AsyncMock(side_effect=PlatformInitError("No devices connected"))
        executor = build(fast_config, session, tmp_path, mobile=mobile)

        result = await executor.execute_test_case(make_case(3, PlatformType.MOBILE))

        assert result.status == "failed"
        assert result.steps == []
        assert result.error == "Platform initialization failed: No devices connected"
        mobile.execute.assert_not_awaited()
        mobile.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reporter_notified(self, fast_config, session, tmp_path):
        """Live reporter sees start, each step and the finish."""
        reporter = MagicMock()
        executor = TestExecutor(
            config=fast_config,
            session=session,
            executors={PlatformType.DESKTOP: fake_platform()},
            reporter=reporter,
            output_dir=tmp_path,
        )

        await executor.execute_test_case(make_case(2))

        reporter.start.assert_called_once_with("Case", 2, 1)
        assert reporter.step_completed.call_count == 2
        assert reporter.finish.call_args.args[0] == "passed"

    @pytest.mark.asyncio
    async def test_results_accumulate(self, fast_config, session, tmp_path):
        """Every run is kept on the executor."""
        executor = build(fast_config, session, tmp_path, desktop=fake_platform())

        await executor.execute_test_case(make_case(1))
        await executor.execute_test_case(make_case(1))

        assert len(executor.results) == 2

    @pytest.mark.asyncio
    async def test_heals_attributed_to_running_step(self, fast_config, session, tmp_path):
        """The shared healing log knows which case and step each heal came from."""
        desktop = fake_platform()
        executor = build(fast_config, session, tmp_path, desktop=desktop)
        original = ElementLocator(LocatorType.ID, "save")
        healed = Resolution(MagicMock(), "fallback", used=ElementLocator(LocatorType.CSS, ".save"))

        async def execute(action):
            if action.id == "2":
                executor.healing.record(original, healed)
            return {}

        desktop.execute = AsyncMock(side_effect=execute)

        await executor.execute_test_case(make_case(3, case_id="checkout"))

        assert len(executor.healing) == 1
        assert executor.healing.events[0].test_case_id == "checkout"
        assert executor.healing.events[0].step_number == 2


class TestLoopAndBatch:
    """Repeated and batched runs."""

    @pytest.mark.asyncio
    async def test_loop_stops_after_failing_iteration(self, fast_config, session, tmp_path):
        """Loop of 3 failing in the 2nd run yields exactly two runs."""
        desktop = fake_platform([{}, {}, {}, ResolutionError("gone")])
        executor = build(fast_config, session, tmp_path, desktop=desktop)
        path = write_case_file(tmp_path / "loop.json", count=2)

        result = await executor.execute_from_file(path, loop_count=3)

        assert result.iteration == 2
        assert result.status == "failed"
        assert [r.iteration for r in executor.results] == [1, 2]

    @pytest.mark.asyncio
    async def test_loop_count_must_be_positive(self, fast_config, session, tmp_path):
        """Zero iterations is rejected."""
        executor = build(fast_config, session, tmp_path)

        with pytest.raises(ValueError):
            await executor.execute_from_file(tmp_path / "any.json", loop_count=0)

    @pytest.mark.asyncio
    async def test_batch_continues_after_load_error(self, fast_config, session, tmp_path):
        """An unreadable file becomes a failed result and the batch goes on."""
        desktop = fake_platform()
        executor = build(fast_config, session, tmp_path, desktop=desktop)
        broken = tmp_path / "broken.json"
        broken.write_text("{")
        good = write_case_file(tmp_path / "good.json", count=1)

        results = await executor.execute_batch([broken, good, make_case(1)])

        assert [r.status for r in results] == ["failed", "passed", "passed"]
        assert "Invalid JSON" in results[0].error
        assert results[0].test_case_id == "broken"

    @pytest.mark.asyncio
    async def test_batch_continues_after_undecodable_file(self, fast_config, session, tmp_path):
        """A file in the wrong encoding fails alone; the next case still runs."""
        desktop = fake_platform()
        executor = build(fast_config, session, tmp_path, desktop=desktop)
        latin = tmp_path / "latin.json"
        latin.write_bytes(b'{"name": "\xff\xfe"}')
        good = write_case_file(tmp_path / "good.json", count=1)

        results = await executor.execute_batch([latin, good])

        assert [r.status for r in results] == ["failed", "passed"]
        assert "not valid UTF-8" in results[0].error

    @pytest.mark.asyncio
    async def test_batch_continues_after_failed_case(self, fast_config, session, tmp_path):
        """A failing case does not stop the cases after it."""
        desktop = fake_platform([ResolutionError("gone"), {}])
        executor = build(fast_config, session, tmp_path, desktop=desktop)

        cases = [make_case(1, case_id="a"), make_case(1, case_id="b")]

        results = await executor.execute_batch(cases)

        assert [r.status for r in results] == ["failed", "passed"]


class TestWebPreflight:
    """Suite start page handling before web runs."""

    def suite_case(self, tmp_path, url="https://shop.dev/home"):
        suite = tmp_path / "suite"
        (suite / "tests").mkdir(parents=True)
        (suite / "suite-config.json").write_text(json.dumps({"url": url}))
        return write_case_file(suite / "tests" / "buy.json", count=1, platform="web")

    @pytest.mark.asyncio
    async def test_navigates_when_on_other_origin(self, fast_config, session, tmp_path):
        """A page on another site is moved to the suite URL."""
        session.page = MagicMock(url="https://elsewhere.dev/")
        web = fake_platform()
        web.navigate = AsyncMock()
        executor = build(fast_config, session, tmp_path, web=web)

        await executor.execute_from_file(self.suite_case(tmp_path))

        web.navigate.assert_awaited_once_with(session.page, "https://shop.dev/home")

    @pytest.mark.asyncio
    async def test_same_origin_left_alone(self, fast_config, session, tmp_path):
        """Continuing on the suite's site does not reload."""
        session.page = MagicMock(url="https://shop.dev/cart")
        web = fake_platform()
        web.navigate = AsyncMock()
        executor = build(fast_config, session, tmp_path, web=web)

        await executor.execute_from_file(self.suite_case(tmp_path))

        web.navigate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_starts_browser_without_page(self, fast_config, session, tmp_path):
        """No open page: start the browser, then open the suite URL."""
        page = MagicMock(url="about:blank")
        session.start = AsyncMock(return_value=page)
        web = fake_platform()
        web.navigate = AsyncMock()
        executor = build(fast_config, session, tmp_path, web=web)

        await executor.execute_from_file(self.suite_case(tmp_path))

        session.start.assert_awaited_once()
        web.navigate.assert_awaited_once_with(page, "https://shop.dev/home")

    @pytest.mark.asyncio
    async def test_preflight_failure_fails_run(self, fast_config, session, tmp_path):
        """A browser that cannot start fails the run without executing steps."""
        session.start = AsyncMock(side_effect=PlatformInitError("no browser"))
        web = fake_platform()
        executor = build(fast_config, session, tmp_path, web=web)

        result = await executor.execute_from_file(self.suite_case(tmp_path))

        assert result.status == "failed"
        assert result.error == "Platform initialization failed: no browser"
        web.execute.assert_not_awaited()


class TestResultSerialization:
    """Result dictionaries use camelCase and milliseconds."""

    def test_step_result_to_dict(self):
        """Durations become integer milliseconds."""
        step = StepResult(1, "a1", "passed", duration=0.25, action="click", target="id=go")

        data = step.to_dict()

        assert data == {
            "stepNumber": 1,
            "actionId": "a1",
            "status": "passed",
            "duration": 250,
            "action": "click",
            "target": "id=go",
        }

    def test_execution_result_from_dict(self):
        """Saved results load back with seconds."""
        result = ExecutionResult.from_dict({
            "testCaseId": "login",
            "testCaseName": "Login",
            "status": "failed",
            "startTime": 1000,
            "endTime": 3500,
            "duration": 2500,
            "error": "Step 1 failed: x",
            "steps": [{"stepNumber": 1, "actionId": "1", "status": "failed", "duration": 40}],
        })

        assert result.duration == 2.5
        assert result.count("failed") == 1
        assert not result.passed
