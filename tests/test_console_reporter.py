"""Tests for ConsoleReporter."""

import io

from rich.console import Console

from replaycli.core.console_reporter import ConsoleReporter


def reporter():
    output = io.StringIO()
    console = Console(file=output, width=120, force_terminal=False)
    return ConsoleReporter(console=console), output


class TestConsoleReporter:
    """Rendering of live step status."""

    def test_final_output_lists_steps(self):
        """The finished run is printed with every step and a footer."""
        rep, output = reporter()

        rep.start("Login", total_steps=2)
        rep.step_started(1, "navigate", "https://app.dev")
        rep.step_completed(1, "passed")
        rep.step_started(2, "click", "css=#go")
        rep.step_completed(2, "failed", error="Element not found")
        rep.finish("failed", 1.5)

        text = output.getvalue()
        assert "Login" in text
        assert '"https://app.dev"' in text
        assert "Element not found" in text
        assert "FAILED" in text

    def test_skipped_and_note(self):
        """Skipped steps and fallback notes are marked."""
        rep, output = reporter()

        rep.start("Mobile", total_steps=2)
        rep.step_started(1, "click", None)
        rep.step_completed(1, "skipped")
        rep.step_started(2, "click", "xpath=//a")
        rep.step_completed(2, "passed", note="fallback")
        rep.finish("passed", 0.4)

        text = output.getvalue()
        assert "(skipped)" in text
        assert "(fallback)" in text
        assert "PASSED" in text

    def test_markup_in_targets_escaped(self):
        """Brackets in selectors are printed literally."""
        rep, output = reporter()

        rep.start("Escape", total_steps=1)
        rep.step_started(1, "click", "css=[data-test=save]")
        rep.step_completed(1, "passed")
        rep.finish("passed", 0.1)

        assert "[data-test=save]" in output.getvalue()

    def test_iteration_in_header(self):
        """Loop iterations after the first are numbered."""
        rep, output = reporter()

        rep.start("Loop", total_steps=0, iteration=2)
        rep.finish("passed", 0.0)

        assert "Loop #2" in output.getvalue()

    def test_restart_resets_steps(self):
        """A reporter reused for the next run starts empty."""
        rep, output = reporter()

        rep.start("First", total_steps=1)
        rep.step_started(1, "click", "css=.first-only")
        rep.step_completed(1, "passed")
        rep.finish("passed", 0.1)
        rep.start("Second", total_steps=0)
        rep.finish("passed", 0.0)

        second = output.getvalue().split("Second", 1)[1]
        assert ".first-only" not in second
