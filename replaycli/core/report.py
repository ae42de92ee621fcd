"""Test report generation."""

from __future__ import annotations

import html
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable
from xml.etree.ElementTree import Element, SubElement, tostring

from replaycli import __version__
from replaycli.core.errors import ReplayError
from replaycli.core.executor import ExecutionResult, StepResult


class ReportLoadError(ReplayError):
    """report.json is missing or malformed."""

    pass


class ReportGenerator:
    """Generate JSON, HTML and JUnit reports for a set of runs."""

    # Status icons
    STATUS_ICONS = {
        "passed": "&#10003;",  # checkmark
        "failed": "&#10007;",  # X mark
        "skipped": "&#8212;",
    }

    def __init__(self, output_dir: Path):
        """Initialize generator.

        Args:
            output_dir: Directory to write reports
        """
        self._output_dir = Path(output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)

    def build_report(
        self,
        results: Iterable[ExecutionResult],
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Report document: summary, per-run results, metadata."""
        results = list(results)
        return {
            "summary": self.summarize(results),
            "results": [r.to_dict() for r in results],
            "metadata": {"generator": "replaycli", "version": __version__, **(metadata or {})},
        }

    @staticmethod
    def summarize(results: list[ExecutionResult]) -> dict[str, Any]:
        """Counts, total duration (ms) and pass rate (percent)."""
        total = len(results)
        passed = sum(1 for r in results if r.status == "passed")
        failed = sum(1 for r in results if r.status == "failed")
        skipped = sum(1 for r in results if r.status == "skipped")
        return {
            "totalTests": total,
            "passed": passed,
            "failed": failed,
            "skipped": skipped,
            "totalDuration": sum(r.to_dict()["duration"] for r in results),
            "passRate": round(passed / total * 100, 2) if total else 0.0,
            "timestamp": datetime.now().isoformat(),
        }

    def generate_json(
        self,
        results: Iterable[ExecutionResult],
        metadata: dict[str, Any] | None = None,
    ) -> Path:
        """Generate JSON report.

        Args:
            results: Runs to report
            metadata: Extra metadata (test file, loop count, ...)

        Returns:
            Path to generated report.json
        """
        data = self.build_report(results, metadata)

        path = self._output_dir / "report.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

        return path

    @staticmethod
    def load_report(path: Path) -> tuple[list[ExecutionResult], dict[str, Any]]:
        """Read a report.json back into results.

        Args:
            path: report.json, or the run folder containing it

        Returns:
            (results, metadata)

        Raises:
            ReportLoadError: If the file is missing or malformed
        """
        path = Path(path)
        if path.is_dir():
            path = path / "report.json"
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ReportLoadError(f"Report not found: {path}")
        except json.JSONDecodeError as e:
            raise ReportLoadError(f"Invalid report JSON: {e}")

        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise ReportLoadError(f"Not a replay report: {path}")
        try:
            results = [ExecutionResult.from_dict(r) for r in data["results"]]
        except (TypeError, ValueError, AttributeError) as e:
            raise ReportLoadError(f"Malformed result in report: {e}")
        return results, dict(data.get("metadata") or {})

    def generate_html(self, results: Iterable[ExecutionResult]) -> Path:
        """Generate a self-contained HTML report.

        Args:
            results: Runs to report

        Returns:
            Path to generated report.html
        """
        results = list(results)
        summary = self.summarize(results)
        runs_html = "\n".join(self._run_html(r) for r in results)

        html_content = HTML_TEMPLATE
        html_content = html_content.replace("{{title}}", html.escape(self._title(results)))
        html_content = html_content.replace("{{timestamp}}", html.escape(summary["timestamp"]))
        html_content = html_content.replace("{{summary_total}}", str(summary["totalTests"]))
        html_content = html_content.replace("{{summary_passed}}", str(summary["passed"]))
        html_content = html_content.replace("{{summary_failed}}", str(summary["failed"]))
        html_content = html_content.replace("{{pass_rate}}", f"{summary['passRate']:.0f}")
        html_content = html_content.replace(
            "{{total_duration}}", f"{summary['totalDuration'] / 1000:.1f}s"
        )
        html_content = html_content.replace("{{runs_html}}", runs_html)

        path = self._output_dir / "report.html"
        path.write_text(html_content, encoding="utf-8")
        return path

    def generate_junit(self, results: Iterable[ExecutionResult], path: Path) -> Path:
        """Generate JUnit XML report, one testcase per run.

        Args:
            results: Runs to report
            path: Output path for JUnit XML

        Returns:
            The path written
        """
        results = list(results)
        testsuite = Element(
            "testsuite",
            {
                "name": "replay",
                "tests": str(len(results)),
                "failures": str(sum(1 for r in results if r.status == "failed")),
                "skipped": str(sum(1 for r in results if r.status == "skipped")),
                "time": f"{sum(r.duration for r in results):.3f}",
            },
        )

        for result in results:
            name = result.name
            if result.iteration > 1:
                name = f"{name} (iteration {result.iteration})"
            testcase = SubElement(
                testsuite,
                "testcase",
                {
                    "classname": result.test_case_id or result.name,
                    "name": name,
                    "time": f"{result.duration:.3f}",
                },
            )

            if result.status == "failed":
                failure = SubElement(testcase, "failure", {"message": result.error or "Failed"})
                failure.text = "\n".join(self._step_line(s) for s in result.steps)
            elif result.status == "skipped":
                SubElement(testcase, "skipped")

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(b'<?xml version="1.0" encoding="UTF-8"?>\n')
            f.write(tostring(testsuite))
        return path

    def _title(self, results: list[ExecutionResult]) -> str:
        if len(results) == 1:
            return results[0].name
        return f"{len(results)} test runs"

    def _step_line(self, step: StepResult) -> str:
        line = f"Step {step.step_number} [{step.status}] {step.action or ''}"
        if step.target:
            line += f" {step.target}"
        if step.error:
            line += f": {step.error}"
        return line

    def _run_html(self, result: ExecutionResult) -> str:
        """Generate HTML for one run and its steps."""
        status = html.escape(result.status)
        icon = self.STATUS_ICONS.get(result.status, "")
        title = html.escape(result.name)
        if result.iteration > 1:
            title += f" <span class=\"iteration\">#{result.iteration}</span>"

        error_html = ""
        if result.error:
            error_html = f'<div class="run-error">{html.escape(result.error)}</div>'

        steps_html = "\n".join(self._step_html(s) for s in result.steps)
        return f"""<section class="run {status}">
    <div class="run-header">
        <span class="status-icon {status}">{icon}</span>
        <h2>{title}</h2>
        <span class="run-duration">{result.duration:.1f}s</span>
    </div>
    {error_html}
    <table class="steps">
        <thead><tr><th>#</th><th>Action</th><th>Target</th><th>Status</th>\
<th>Duration</th><th>Details</th></tr></thead>
        <tbody>
{steps_html}
        </tbody>
    </table>
</section>"""

    def _step_html(self, step: StepResult) -> str:
        """Generate HTML for a single step row."""
        status = html.escape(step.status)
        details = step.details.get("resolvedBy") or step.details.get("reason") or ""
        if step.error:
            details = step.error
        return (
            f'<tr class="step {status}"><td>{step.step_number}</td>'
            f"<td>{html.escape(step.action or '')}</td>"
            f"<td>{html.escape(step.target or '')}</td>"
            f'<td class="status {status}">{self.STATUS_ICONS.get(step.status, "")} {status}</td>'
            f"<td>{step.duration:.2f}s</td>"
            f"<td>{html.escape(str(details))}</td></tr>"
        )


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Replay report: {{title}}</title>
<style>
body { font-family: -apple-system, "Segoe UI", sans-serif; margin: 2rem; color: #222; }
.summary { display: flex; gap: 1.5rem; margin-bottom: 2rem; }
.summary div { padding: 0.75rem 1.25rem; border-radius: 6px; background: #f3f4f6; }
.run { border: 1px solid #ddd; border-radius: 6px; margin-bottom: 1.5rem; padding: 1rem; }
.run.failed { border-color: #e11d48; }
.run-header { display: flex; align-items: center; gap: 0.75rem; }
.run-header h2 { font-size: 1.1rem; margin: 0; flex: 1; }
.run-error { color: #e11d48; margin: 0.5rem 0; font-family: monospace; }
.steps { width: 100%; border-collapse: collapse; margin-top: 0.75rem; }
.steps th, .steps td { text-align: left; padding: 0.35rem 0.5rem; border-bottom: 1px solid #eee; }
.status.passed, .status-icon.passed { color: #16a34a; }
.status.failed, .status-icon.failed { color: #e11d48; }
.status.skipped { color: #6b7280; }
.iteration { color: #6b7280; font-weight: normal; }
</style>
</head>
<body>
<h1>{{title}}</h1>
<p>Generated {{timestamp}}</p>
<div class="summary">
    <div>Total: <strong>{{summary_total}}</strong></div>
    <div>Passed: <strong>{{summary_passed}}</strong></div>
    <div>Failed: <strong>{{summary_failed}}</strong></div>
    <div>Pass rate: <strong>{{pass_rate}}%</strong></div>
    <div>Duration: <strong>{{total_duration}}</strong></div>
</div>
{{runs_html}}
</body>
</html>
"""
