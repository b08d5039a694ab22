"""``shipwright history [RUN_ID]`` — show the ledger for a pipeline run.

Without a run id, lists the most recent runs. With one, prints every job
transition and verifies the hash chain.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from shipwright.config import Settings
from shipwright.core.run_ledger import LedgerIntegrityError, RunLedger
from shipwright.monitor.renderer import ReportRenderer

console = Console()


def history_cmd(
    run_id: str = typer.Argument(
        None,
        help="The pipeline run ID to show. Lists recent runs when omitted.",
    ),
    ledger_db: Path = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (default: SHIPWRIGHT_LEDGER_PATH).",
    ),
) -> None:
    """Show ledger history for a run."""
    db_path = ledger_db or Settings().ledger_path
    if not Path(db_path).exists():
        console.print(f"[bold red]Ledger not found:[/bold red] {db_path}")
        raise typer.Exit(code=1)

    ledger = RunLedger(Path(db_path))
    renderer = ReportRenderer(console=console)

    if run_id is None:
        runs = ledger.get_all_run_ids()
        if not runs:
            console.print("[dim]No runs recorded.[/dim]")
            return
        console.print("[bold]Recent runs:[/bold]")
        for rid in runs[:10]:
            console.print(f"  [cyan]{rid}[/cyan]")
        if len(runs) > 10:
            console.print(f"  [dim]... and {len(runs) - 10} more[/dim]")
        return

    entries = ledger.get_run_entries(run_id)
    if not entries:
        console.print(f"[bold red]Run not found:[/bold red] {run_id}")
        raise typer.Exit(code=1)

    renderer.print_history(run_id, entries)
    try:
        valid = ledger.verify_chain(run_id)
    except LedgerIntegrityError as exc:
        console.print(f"[bold red]Chain verification failed:[/bold red] {exc}")
        valid = False
    renderer.print_chain_verification(run_id, valid)
    if not valid:
        raise typer.Exit(code=1)
