"""CLI commands for replaycli."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Coroutine, TypeVar

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from replaycli import __version__

if TYPE_CHECKING:
    from replaycli.core.browser_session import BrowserSession
    from replaycli.core.config import ReplayConfig
    from replaycli.core.executor import ExecutionResult, TestExecutor
    from replaycli.core.healing import HealingLog

T = TypeVar("T")

# Load .env file from current directory or parent directories
load_dotenv()

app = typer.Typer(
    name="replay",
    help="Replay recorded web, desktop and mobile UI tests",
    no_args_is_help=True,
)
console = Console()


def _create_run_folder(base_dir: Path) -> Path:
    """Create timestamped run folder for test execution.

    Args:
        base_dir: Directory holding the test (e.g., test-suites/login/tests/)

    Returns:
        Path to created run folder (e.g., test-suites/login/tests/runs/2026-01-17_14-30-25/)
    """
    runs_dir = base_dir / "runs"
    runs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    run_folder = runs_dir / timestamp
    run_folder.mkdir(exist_ok=True)

    return run_folder


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"replay version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """replay - cross-platform UI test replay."""
    pass


@app.command()
def run(
    test_file: Path = typer.Argument(..., help="Test case file (.json or .yaml)"),
    loop: int = typer.Option(1, "--loop", "-n", min=1, help="Run up to N times, stop on failure"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output directory"),
    junit: Path | None = typer.Option(None, "--junit", help="JUnit XML output path"),
    headless: bool | None = typer.Option(
        None, "--headless/--headed", help="Override browser headless mode"
    ),
    device: str | None = typer.Option(None, "--device", "-d", help="Android device ID"),
    verbose: bool = typer.Option(False, "--verbose", help="Write debug.log to the run folder"),
) -> None:
    """Replay a recorded test case."""
    from replaycli.core.config import setup_logging
    from replaycli.core.errors import TestCaseLoadError
    from replaycli.core.parser import TestCaseParser

    if not test_file.exists():
        console.print(f"[red]Error:[/red] Test file not found: {test_file}")
        raise typer.Exit(2)

    config = _load_config(headless=headless, device=device, verbose=verbose)

    try:
        test_case = TestCaseParser.parse(test_file)
    except TestCaseLoadError as e:
        console.print(f"[red]Load error:[/red] {e}")
        raise typer.Exit(2)

    run_folder = _prepare_output(output, test_file.parent)
    if config.verbose:
        log_file = setup_logging(verbose=True, log_dir=run_folder)
        if log_file:
            console.print(f"[dim]Verbose logging → {log_file}[/dim]")

    panel_content = f"[dim]Test:[/dim]     {test_case.name}\n"
    panel_content += f"[dim]Platform:[/dim] {test_case.platform.value}\n"
    panel_content += f"[dim]Actions:[/dim]  {len(test_case.actions)}"
    if loop > 1:
        panel_content += f"\n[dim]Loop:[/dim]     up to {loop} runs"
    console.print(Panel(panel_content, border_style="blue", padding=(0, 1)))
    console.print()

    executor, session = _build_executor(config, run_folder)
    try:
        _run_with_session(session, executor.execute_from_file(test_file, loop_count=loop))
    except TestCaseLoadError as e:
        console.print(f"[red]Load error:[/red] {e}")
        raise typer.Exit(2)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        raise typer.Exit(1)

    results = executor.results
    _write_reports(
        results, run_folder, junit,
        metadata={"testFile": str(test_file), "loopCount": loop},
        healing=executor.healing,
    )

    if len(results) > 1:
        _print_summary(results)

    raise typer.Exit(0 if results and all(r.passed for r in results) else 1)


@app.command()
def batch(
    test_files: list[Path] | None = typer.Argument(None, help="Test case files, run in order"),
    suite: Path | None = typer.Option(
        None, "--suite", "-s", help="Suite folder (suite-config.json + tests/)"
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output directory"),
    junit: Path | None = typer.Option(None, "--junit", help="JUnit XML output path"),
    headless: bool | None = typer.Option(
        None, "--headless/--headed", help="Override browser headless mode"
    ),
    device: str | None = typer.Option(None, "--device", "-d", help="Android device ID"),
    verbose: bool = typer.Option(False, "--verbose", help="Write debug.log to the run folder"),
) -> None:
    """Run several test cases sequentially; failures don't stop the batch."""
    from replaycli.core.config import setup_logging
    from replaycli.core.errors import TestCaseLoadError
    from replaycli.core.parser import TestCaseParser

    paths: list[Path] = list(test_files or [])
    if suite is not None:
        try:
            paths.extend(TestCaseParser.suite_test_paths(suite))
        except TestCaseLoadError as e:
            console.print(f"[red]Load error:[/red] {e}")
            raise typer.Exit(2)

    if not paths:
        console.print("[red]Error:[/red] No test cases given (pass files or --suite)")
        raise typer.Exit(2)

    config = _load_config(headless=headless, device=device, verbose=verbose)
    run_folder = _prepare_output(output, suite if suite is not None else paths[0].parent)
    if config.verbose:
        log_file = setup_logging(verbose=True, log_dir=run_folder)
        if log_file:
            console.print(f"[dim]Verbose logging → {log_file}[/dim]")

    console.print(Panel(
        f"[dim]Batch:[/dim] {len(paths)} test case(s)"
        + (f"\n[dim]Suite:[/dim] {suite}" if suite is not None else ""),
        border_style="blue",
        padding=(0, 1),
    ))
    console.print()

    executor, session = _build_executor(config, run_folder)
    try:
        results = _run_with_session(session, executor.execute_batch(paths))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        raise typer.Exit(1)

    _write_reports(
        executor.results, run_folder, junit,
        metadata={"suite": str(suite) if suite else None, "testFiles": [str(p) for p in paths]},
        healing=executor.healing,
    )
    _print_summary(results)

    raise typer.Exit(0 if all(r.passed for r in results) else 1)


@app.command()
def validate(
    test_files: list[Path] = typer.Argument(..., help="Test case files to check"),
) -> None:
    """Check test case files without running them."""
    from replaycli.core.errors import TestCaseLoadError
    from replaycli.core.parser import TestCaseParser

    table = Table(title="Validation")
    table.add_column("File", style="cyan")
    table.add_column("Platform")
    table.add_column("Actions", justify="right")
    table.add_column("Result")

    load_failed = False
    invalid = False
    for path in test_files:
        try:
            test_case = TestCaseParser.parse(path)
        except TestCaseLoadError as e:
            load_failed = True
            table.add_row(str(path), "-", "-", f"[red]{e}[/red]")
            continue

        problems = TestCaseParser.validate(test_case)
        if problems:
            invalid = True
            result = "[yellow]" + "\n".join(problems) + "[/yellow]"
        else:
            result = "[green]valid[/green]"
        table.add_row(str(path), test_case.platform.value, str(len(test_case.actions)), result)

    console.print(table)

    if load_failed:
        raise typer.Exit(2)
    raise typer.Exit(1 if invalid else 0)


@app.command()
def report(
    results_dir: Path = typer.Argument(..., help="Run folder with report.json"),
    junit: Path | None = typer.Option(None, "--junit", help="Also write JUnit XML"),
) -> None:
    """Regenerate the HTML report from report.json."""
    from replaycli.core.report import ReportGenerator, ReportLoadError

    if not results_dir.exists():
        console.print(f"[red]Error:[/red] Directory not found: {results_dir}")
        raise typer.Exit(1)

    json_file = results_dir / "report.json"
    console.print(f"Generating report from: {json_file}")

    try:
        results, _ = ReportGenerator.load_report(json_file)
    except ReportLoadError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    generator = ReportGenerator(results_dir)
    html_path = generator.generate_html(results)
    console.print(f"[green]Generated:[/green] {html_path}")

    if junit:
        generator.generate_junit(results, junit)
        console.print(f"[dim]JUnit: {junit}[/dim]")


@app.command()
def devices() -> None:
    """List connected Android devices."""
    from replaycli.core.device_controller import DeviceController

    try:
        devices_list = DeviceController.list_devices()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not devices_list:
        console.print("[yellow]No devices found[/yellow]")
        console.print("\nEnsure your device is connected:")
        console.print("  Android: adb devices")
        raise typer.Exit(1)

    table = Table(title="Connected Devices")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Status", style="yellow")

    for device in devices_list:
        table.add_row(
            device.get("id", "unknown"),
            device.get("name", "unknown"),
            device.get("status", "unknown"),
        )

    console.print(table)


def _load_config(
    headless: bool | None, device: str | None, verbose: bool
) -> ReplayConfig:
    """Load layered config and apply command-line overrides."""
    from replaycli.core.config import ConfigLoader

    config = ConfigLoader.load()
    if headless is not None:
        config.browser.headless = headless
    if device:
        config.device = device
    if verbose:
        config.verbose = True
    return config


def _prepare_output(output: Path | None, base_dir: Path) -> Path:
    if output is not None:
        output.mkdir(parents=True, exist_ok=True)
        return output
    return _create_run_folder(base_dir)


def _build_executor(
    config: ReplayConfig, run_folder: Path
) -> tuple[TestExecutor, BrowserSession]:
    from replaycli.core.browser_session import BrowserSession
    from replaycli.core.console_reporter import ConsoleReporter
    from replaycli.core.executor import TestExecutor

    session = BrowserSession(config.browser)
    executor = TestExecutor(
        config=config,
        session=session,
        reporter=ConsoleReporter(console=console),
        output_dir=run_folder,
    )
    return executor, session


def _run_with_session(session: BrowserSession, work: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, then close the browser this command opened."""

    async def runner() -> T:
        try:
            return await work
        finally:
            await session.close()

    return asyncio.run(runner())


def _write_reports(
    results: list[ExecutionResult],
    run_folder: Path,
    junit: Path | None,
    metadata: dict[str, Any],
    healing: HealingLog | None = None,
) -> None:
    from replaycli.core.report import ReportGenerator

    generator = ReportGenerator(run_folder)
    generator.generate_json(results, metadata=metadata)
    html_path = generator.generate_html(results)

    console.print()
    console.print(f"[dim]Report: {html_path}[/dim]")

    if junit:
        generator.generate_junit(results, junit)
        console.print(f"[dim]JUnit: {junit}[/dim]")

    if healing is not None and len(healing) > 0:
        healing_path = healing.export(run_folder / "healing.json")
        suggested = len(healing.suggest_updates())
        console.print(
            f"[dim]Healing log: {healing_path} ({len(healing)} heal(s), "
            f"{suggested} suggested locator update(s))[/dim]"
        )


def _print_summary(results: list[ExecutionResult]) -> None:
    """Print one row per run."""
    table = Table(title="Summary")
    table.add_column("Test", style="cyan")
    table.add_column("Run", justify="right")
    table.add_column("Status")
    table.add_column("Steps", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Error")

    for result in results:
        status = "[green]passed[/green]" if result.passed else "[red]failed[/red]"
        table.add_row(
            result.name,
            str(result.iteration),
            status,
            str(len(result.steps)),
            f"{result.duration:.1f}s",
            result.error or "",
        )

    passed = sum(1 for r in results if r.passed)
    console.print()
    console.print(table)
    console.print(f"{passed}/{len(results)} passed")


if __name__ == "__main__":
    app()
