"""``shipwright run`` — run the pipeline for one trigger event.

A tag push matching a release pattern runs the full graph (checks, build,
sign, release, replicate). Any other event runs the checks only. Exits
with status 1 if any job failed or the run was aborted.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from shipwright.config import Settings
from shipwright.core.errors import PipelineFailed, ShipwrightError
from shipwright.core.pipeline import ReleasePipeline, load_pipeline_config
from shipwright.core.trigger import TriggerEvent
from shipwright.monitor.renderer import ReportRenderer

console = Console()


def run_cmd(
    ref: str = typer.Option(
        ...,
        "--ref",
        help="Git ref that triggered the run, e.g. refs/tags/v1.2.0.",
    ),
    event: str = typer.Option(
        "push",
        "--event",
        help="Event kind: push, pull_request, ...",
    ),
    source: Path = typer.Option(
        Path("."),
        "--source",
        "-s",
        help="Source tree checked out at the ref.",
    ),
    config_path: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="shipwright.toml or pyproject.toml to read the pipeline from.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Publish into the local release directory and push nothing.",
    ),
    timeout: float = typer.Option(
        None,
        "--timeout",
        help="Abort the run after this many seconds.",
    ),
) -> None:
    """Run the release pipeline."""
    settings = Settings()
    renderer = ReportRenderer(console=console)

    try:
        config = load_pipeline_config(config_path)
        pipeline = ReleasePipeline.from_settings(
            config, source, settings=settings, dry_run=dry_run
        )
        trigger = TriggerEvent(event=event, ref=ref)
        report = pipeline.run(
            trigger, timeout=timeout or settings.pipeline_timeout_seconds
        )
    except PipelineFailed as exc:
        renderer.print_report(exc.report)
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc
    except ShipwrightError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    renderer.print_report(report)
    console.print(f"[dim]Ledger: {settings.ledger_path}  run: {report.run_id}[/dim]")
