"""Live console output for replay runs."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.live import Live
from rich.text import Text

WIDTH = 48
TARGET_LIMIT = 40
ERROR_LIMIT = 70

ICONS = {
    "running": "⏳",
    "passed": "✅",
    "failed": "❌",
    "skipped": "⏭️",
}


@dataclass
class StepLine:
    """What the console shows for one step."""

    number: int
    action: str
    target: str | None
    status: str = "running"
    error: str | None = None
    note: str | None = None


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


class ConsoleReporter:
    """Step-by-step progress of a run, redrawn in place with rich's Live.

    The same reporter serves every run of a loop or batch; start() clears the
    previous run. When a run finishes the live view is dropped and the final
    state is printed once, so scrollback keeps one block per run::

        ┌─ Login ─────────────────────────────────────
        │ ✅ navigate "https://app.dev"
        │ ✅ click "css=#go"  (fallback)
        └─ ✓ PASSED (1.4s) ───────────────────────────
    """

    def __init__(self, console: Console | None = None):
        self._console = console or Console()
        self._title = ""
        self._planned = 0
        self._lines: list[StepLine] = []
        self._live: Live | None = None
        self._outcome: tuple[str, float] | None = None

    def start(self, test_name: str, total_steps: int, iteration: int | None = None) -> None:
        """Begin showing a new run.

        Args:
            test_name: Test case name for the header
            total_steps: Number of actions in the case
            iteration: Loop iteration; numbers after the first are shown
        """
        self._stop_live()
        self._title = test_name if not iteration or iteration == 1 else f"{test_name} #{iteration}"
        self._planned = total_steps
        self._lines = []
        self._outcome = None
        self._live = Live(
            self._render(), console=self._console, refresh_per_second=10, transient=True
        )
        self._live.start()

    def step_started(self, step_num: int, action: str, target: str | None) -> None:
        self._lines.append(StepLine(step_num, action, target))
        self._refresh()

    def step_completed(
        self,
        step_num: int,
        status: str,
        error: str | None = None,
        note: str | None = None,
    ) -> None:
        """Record how a step ended.

        Args:
            step_num: Step number (1-indexed)
            status: passed, failed or skipped
            error: Failure message
            note: Short extra info, such as the rung that resolved the element
        """
        line = next((line for line in self._lines if line.number == step_num), None)
        if line is not None:
            line.status, line.error, line.note = status, error, note
        self._refresh()

    def finish(self, status: str, duration: float) -> None:
        self._outcome = (status, duration)
        self._stop_live()
        self._console.print(self._render())

    def _refresh(self) -> None:
        if self._live:
            self._live.update(self._render())

    def _stop_live(self) -> None:
        if self._live:
            self._live.stop()
            self._live = None

    def _render(self) -> Text:
        text = Text()
        self._rule(text, f"┌─ {self._title} ")

        for line in self._lines:
            text.append(f"│ {ICONS.get(line.status, '🔲')} {line.action}")
            if line.target:
                text.append(f' "{_clip(line.target, TARGET_LIMIT)}"')
            if line.status == "skipped":
                text.append("  (skipped)", style="dim")
            elif line.note:
                text.append(f"  ({line.note})", style="dim")
            text.append("\n")
            if line.error:
                text.append("│    ")
                text.append(_clip(line.error, ERROR_LIMIT), style="red")
                text.append("\n")

        if self._outcome is None:
            self._rule(text, f"└─ {len(self._lines)}/{self._planned} ", newline=False)
            return text

        status, duration = self._outcome
        text.append("└─ ")
        label = "✓ PASSED" if status == "passed" else "✗ FAILED"
        text.append(label, style="green" if status == "passed" else "red")
        self._rule(text, f" ({duration:.1f}s) ", used=3 + len(label), newline=False)
        return text

    @staticmethod
    def _rule(text: Text, head: str, used: int = 0, newline: bool = True) -> None:
        text.append(head + "─" * max(0, WIDTH - used - len(head)))
        if newline:
            text.append("\n")
