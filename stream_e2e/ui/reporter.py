"""
Summary reporting for scenario runs.

This module provides rich console output for scenario results: a line per
scenario as it finishes, and a summary table with failure details at the end.
"""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..scenarios import Scenario, ScenarioReport, ScenarioStatus
from ..utils import format_duration, get_logger

logger = get_logger(__name__)

STATUS_STYLES = {
    ScenarioStatus.PASSED: ("✓ PASSED", "green"),
    ScenarioStatus.FAILED: ("✗ FAILED", "red"),
    ScenarioStatus.SKIPPED: ("- SKIPPED", "yellow"),
}


class ScenarioReporter:
    """
    Reporter for displaying scenario results.

    This class creates formatted console output for:
    - Progress lines while scenarios run
    - The results table
    - Failure details with the raw probe output tail
    """

    def __init__(self, console: Optional[Console] = None):
        """
        Initialize scenario reporter.

        Args:
            console: Rich console instance (creates new if not provided)
        """
        self.console = console or Console()

    def report_progress(self, report: ScenarioReport) -> None:
        """Print one line for a finished scenario."""
        label, style = STATUS_STYLES[report.status]
        line = Text.assemble(
            (f"{label:<10}", f"bold {style}"),
            (f" {report.name}", "cyan"),
            (f"  {report.duration:.2f}s", "dim"),
        )
        self.console.print(line)

    def display_summary(self, reports: list[ScenarioReport]) -> None:
        """
        Display the results table and failure details.

        Args:
            reports: Reports in run order
        """
        self.console.print()
        self.console.rule("[bold cyan]Scenario Results", style="cyan")
        self.console.print()

        self.console.print(create_results_table(reports))
        self.console.print()

        failures = [r for r in reports if r.failed]
        for report in failures:
            self._display_failure(report)

        passed = sum(1 for r in reports if r.passed)
        skipped = sum(1 for r in reports if r.status == ScenarioStatus.SKIPPED)
        total = sum(r.duration for r in reports)
        summary = (
            f"{passed} passed, {len(failures)} failed, {skipped} skipped "
            f"in {format_duration(total)}"
        )
        if failures:
            self.console.print(Text(f"✗ {summary}", style="bold red"))
        else:
            self.console.print(Text(f"✓ {summary}", style="bold green"))
        self.console.print()

    def _display_failure(self, report: ScenarioReport) -> None:
        details = [Text(str(report.error), style="red")]

        outcome = report.outcome
        if outcome is not None and outcome.raw:
            tail = "\n".join(outcome.raw.strip().split("\n")[-10:])
            details.append(Text())
            details.append(Text("Probe output:", style="bold"))
            details.append(Text(tail, style="dim"))

        panel = Panel(Text("\n").join(details), title=report.name, border_style="red")
        self.console.print(panel)

    def display_catalog(self, scenarios: list[Scenario], skip_reasons: dict[str, str]) -> None:
        """
        Display the scenario catalog.

        Args:
            scenarios: Registered scenarios
            skip_reasons: Scenario name mapped to why it would be skipped
        """
        table = Table(title="Scenarios", show_header=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Media", style="magenta", width=6)
        table.add_column("Description", style="white")
        table.add_column("Skipped", style="yellow")

        for scenario in scenarios:
            table.add_row(
                scenario.name,
                "yes" if scenario.media else "",
                scenario.description,
                skip_reasons.get(scenario.name, ""),
            )

        self.console.print(table)

    def display_error(self, message: str, error: Optional[Exception] = None) -> None:
        """
        Display error message.

        Args:
            message: Error message
            error: Optional exception object
        """
        error_text = Text(f"✗ {message}", style="bold red")
        if error:
            error_text.append(Text(f"\n{error}", style="red"))

        self.console.print()
        self.console.print(Panel(error_text, title="Error", border_style="red"))
        self.console.print()


def create_results_table(reports: list[ScenarioReport]) -> Table:
    """
    Create a table with one row per scenario.

    Args:
        reports: Scenario reports

    Returns:
        Rich table
    """
    table = Table(title="Results", show_header=True)
    table.add_column("Scenario", style="cyan", no_wrap=True)
    table.add_column("Status", width=10)
    table.add_column("Duration", style="green", justify="right")
    table.add_column("Detail", style="white", overflow="fold")

    for report in reports:
        label, style = STATUS_STYLES[report.status]
        table.add_row(
            report.name,
            Text(label, style=style),
            f"{report.duration:.2f}s",
            report.detail,
        )

    return table
