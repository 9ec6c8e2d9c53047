"""
CLI interface for the stream end-to-end harness.

This module provides the command-line interface using Typer and Rich.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from ..config import ConfigManager, HarnessConfig
from ..scenarios import SCENARIOS, ScenarioRunner, select_scenarios
from ..ui import ScenarioReporter
from ..utils import HarnessError, get_logger, setup_logger

# Initialize Typer app
app = typer.Typer(
    name="stream-e2e",
    help="End-to-end checks for a live streaming server and its management API",
    add_completion=False,
)

# Console for rich output
console = Console()

# Logger
logger = get_logger(__name__)


def _load_config(
    config_file: Optional[Path],
    api: Optional[str] = None,
    rtmp: Optional[str] = None,
    http: Optional[str] = None,
    srt: Optional[str] = None,
    input_file: Optional[Path] = None,
    no_media: bool = False,
) -> HarnessConfig:
    config = ConfigManager(config_file).load()
    return config.with_overrides(
        endpoints={"api": api, "rtmp": rtmp, "http": http, "srt": srt},
        media={"input_file": input_file},
        scenario={"no_media_test": True if no_media else None},
    )


@app.command()
def run(
    names: Optional[list[str]] = typer.Argument(
        None,
        help="Scenarios to run (default: all)",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        exists=True,
        dir_okay=False,
        help="Custom configuration file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log",
        help="Log file path",
    ),
    api: Optional[str] = typer.Option(None, "--api", help="Management API base URL"),
    rtmp: Optional[str] = typer.Option(None, "--rtmp", help="RTMP base URL"),
    http: Optional[str] = typer.Option(None, "--http", help="HTTP streaming base URL"),
    srt: Optional[str] = typer.Option(None, "--srt", help="SRT base URL"),
    input_file: Optional[Path] = typer.Option(
        None,
        "--input",
        "-i",
        help="Sample media file to publish",
    ),
    no_media: bool = typer.Option(
        False,
        "--no-media",
        help="Skip scenarios that publish or probe media",
    ),
) -> None:
    """
    Run end-to-end scenarios against a server.

    Scenarios run one after another; the exit code is 1 if any failed.
    """
    setup_logger(
        level="DEBUG" if verbose else "INFO",
        log_file=log_file,
        verbose=verbose,
        console=console,
    )
    reporter = ScenarioReporter(console)

    try:
        config = _load_config(config_file, api, rtmp, http, srt, input_file, no_media)
        scenarios = select_scenarios(names)
    except (HarnessError, ValueError) as e:
        reporter.display_error("Invalid configuration", e)
        sys.exit(1)

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Stream E2E[/bold cyan]\n"
            f"[dim]{len(scenarios)} scenario(s) against {config.endpoints.api}[/dim]",
            border_style="cyan",
        )
    )
    console.print()

    runner = ScenarioRunner(config)
    try:
        reports = asyncio.run(runner.run(scenarios, on_report=reporter.report_progress))
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Run cancelled by user[/yellow]")
        sys.exit(130)

    reporter.display_summary(reports)
    if any(report.failed for report in reports):
        sys.exit(1)


@app.command("list")
def list_command(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        exists=True,
        dir_okay=False,
        help="Custom configuration file",
    ),
) -> None:
    """
    List the available scenarios and which would be skipped.
    """
    reporter = ScenarioReporter(console)
    try:
        config = _load_config(config_file)
    except (HarnessError, ValueError) as e:
        reporter.display_error("Invalid configuration", e)
        sys.exit(1)

    skip_reasons = {}
    for name, scenario in SCENARIOS.items():
        reason = scenario.skip_reason(config)
        if reason is not None:
            skip_reasons[name] = reason

    reporter.display_catalog(list(SCENARIOS.values()), skip_reasons)


@app.command("init-config")
def init_config_command(
    output: Path = typer.Option(
        Path(".stream-e2e.yaml"),
        "--output",
        "-o",
        help="Configuration file to create",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite an existing file",
    ),
) -> None:
    """
    Create a default configuration file.
    """
    try:
        ConfigManager().init_default_config(output, force=force)
    except HarnessError as e:
        console.print(f"[red]✗ Error:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Created config file: {output}")


@app.command("version")
def version_command() -> None:
    """
    Display version information.
    """
    from .. import __version__

    console.print(f"stream-e2e {__version__}")


def main() -> None:
    """
    Main entry point for CLI.
    """
    app()


if __name__ == "__main__":
    main()
