"""``shipwright graph`` — print the job graph a trigger would run."""

from __future__ import annotations

import tempfile
from pathlib import Path

import typer
from rich.console import Console

from shipwright.bridge.release_host import DirectoryReleaseHost
from shipwright.bridge.secret_store import StaticSecretStore
from shipwright.core.artifact_store import ArtifactStore
from shipwright.core.context import ExecutionContext
from shipwright.core.errors import ShipwrightError
from shipwright.core.pipeline import ReleasePipeline, load_pipeline_config
from shipwright.core.trigger import TriggerEvent
from shipwright.monitor.renderer import ReportRenderer

console = Console()


def graph_cmd(
    ref: str = typer.Option(
        "refs/tags/v0.0.0",
        "--ref",
        help="Git ref to plan for.",
    ),
    event: str = typer.Option("push", "--event", help="Event kind."),
    config_path: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="shipwright.toml or pyproject.toml to read the pipeline from.",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Plan a dry run (no replication jobs)."
    ),
) -> None:
    """Show the jobs a trigger would run, in execution order."""
    renderer = ReportRenderer(console=console)
    try:
        config = load_pipeline_config(config_path)
        with tempfile.TemporaryDirectory(prefix="shipwright-plan-") as tmp:
            scratch = Path(tmp)
            pipeline = ReleasePipeline(
                config,
                ExecutionContext(
                    source_tree=Path("."), work_dir=scratch, secrets=StaticSecretStore()
                ),
                store=ArtifactStore(scratch / "artifacts"),
                host=DirectoryReleaseHost(scratch / "releases"),
                replicate=not dry_run,
            )
            graph = pipeline.graph(TriggerEvent(event=event, ref=ref))
    except ShipwrightError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    renderer.print_graph(graph)
