"""Rich terminal renderer for pipeline reports and ledger history.

Color scheme
------------
- green   : SUCCEEDED
- red     : FAILED
- yellow  : RUNNING
- dim     : PENDING
- magenta : SKIPPED
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shipwright.core.job_graph import JobGraph
from shipwright.models.jobs import JobState, PipelineReport
from shipwright.models.ledger import LedgerEntry

# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[JobState, str] = {
    JobState.SUCCEEDED: "bold green",
    JobState.FAILED: "bold red",
    JobState.RUNNING: "bold yellow",
    JobState.PENDING: "dim",
    JobState.SKIPPED: "magenta",
}

_STATE_LABELS: dict[JobState, str] = {
    JobState.SUCCEEDED: "[green]SUCCEEDED[/green]",
    JobState.FAILED: "[bold red]FAILED[/bold red]",
    JobState.RUNNING: "[yellow]RUNNING[/yellow]",
    JobState.PENDING: "[dim]PENDING[/dim]",
    JobState.SKIPPED: "[magenta]SKIPPED[/magenta]",
}


class ReportRenderer:
    """Renders pipeline reports, job graphs and ledger history.

    Parameters
    ----------
    console:
        Rich Console instance. A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Pipeline report
    # ------------------------------------------------------------------

    def render_report(self, report: PipelineReport) -> Panel:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Job", min_width=18)
        table.add_column("State", min_width=10, justify="center")
        table.add_column("Time", justify="right", width=8)
        table.add_column("Details", min_width=20)

        for job in report.jobs:
            style = _STATE_STYLES.get(job.state, "")
            if job.error_kind:
                details = f"[red]{job.error_kind}: {escape(job.error_message or '')}[/red]"
            elif job.skip_reason:
                details = f"[dim]{escape(job.skip_reason)}[/dim]"
            else:
                details = "[dim]-[/dim]"
            duration = job.duration_seconds
            table.add_row(
                f"[{style}]{escape(job.display_name)}[/{style}]",
                _STATE_LABELS.get(job.state, job.state.value),
                f"{duration:.1f}s" if duration is not None else "[dim]-[/dim]",
                details,
            )

        succeeded = sum(1 for j in report.jobs if j.state == JobState.SUCCEEDED)
        summary = [
            f"[bold]Run:[/bold] {report.run_id}",
            f"[bold]Succeeded:[/bold] {succeeded}/{len(report.jobs)}",
        ]
        if report.aborted:
            summary.append(f"[bold red]Aborted:[/bold red] {escape(report.abort_reason or '')}")
        status = "[green]passed[/green]" if report.succeeded else "[bold red]FAILED[/bold red]"
        summary.append(f"[bold]Result:[/bold] {status}")

        return Panel(
            Group(table, Text(""), Text.from_markup("  |  ".join(summary))),
            title="[bold]Shipwright[/bold]",
            border_style="blue" if report.succeeded else "red",
            padding=(1, 2),
        )

    def print_report(self, report: PipelineReport) -> None:
        self.console.print(self.render_report(report))

    # ------------------------------------------------------------------
    # Job graph
    # ------------------------------------------------------------------

    def render_graph(self, graph: JobGraph) -> Table:
        table = Table(show_header=True, header_style="bold cyan", title="Job graph")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Job", style="cyan", min_width=18)
        table.add_column("Needs")
        table.add_column("After", style="dim")
        for i, job_id in enumerate(graph.job_ids):
            jd = graph.get(job_id)
            table.add_row(
                str(i),
                escape(jd.label),
                ", ".join(jd.needs) or "[dim]-[/dim]",
                ", ".join(jd.after) or "-",
            )
        return table

    def print_graph(self, graph: JobGraph) -> None:
        self.console.print(self.render_graph(graph))

    # ------------------------------------------------------------------
    # Ledger history
    # ------------------------------------------------------------------

    def render_history(self, run_id: str, entries: Sequence[LedgerEntry]) -> Table:
        table = Table(
            show_header=True, header_style="bold cyan", title=f"Run {run_id}"
        )
        table.add_column("Time (UTC)", style="dim")
        table.add_column("Job", style="cyan", min_width=18)
        table.add_column("Transition")
        table.add_column("Detail")
        table.add_column("Hash", style="dim")
        for entry in entries:
            detail = escape(entry.detail)
            if entry.error_kind:
                detail = f"[red]{entry.error_kind}[/red] {detail}"
            table.add_row(
                entry.timestamp_utc.strftime("%H:%M:%S"),
                entry.job_id,
                entry.state_transition,
                detail or "[dim]-[/dim]",
                entry.entry_hash[:12],
            )
        return table

    def print_history(self, run_id: str, entries: Sequence[LedgerEntry]) -> None:
        self.console.print(self.render_history(run_id, entries))

    def print_chain_verification(self, run_id: str, valid: bool) -> None:
        if valid:
            self.console.print(f"[green]Hash chain for run {run_id} is valid.[/green]")
        else:
            self.console.print(
                f"[bold red]Hash chain for run {run_id} is BROKEN![/bold red]"
            )
