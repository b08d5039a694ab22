"""Main Typer application — imports and registers all CLI commands.

Entry point: ``shipwright`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from shipwright import __version__
from shipwright.cli.commands.graph import graph_cmd
from shipwright.cli.commands.history import history_cmd
from shipwright.cli.commands.run import run_cmd
from shipwright.config import Settings

app = typer.Typer(
    name="shipwright",
    help="Shipwright: build, sign, release and replicate distribution packages.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="run", help="Run the pipeline for a trigger event.")(run_cmd)
app.command(name="graph", help="Show the job graph for a trigger event.")(graph_cmd)
app.command(name="history", help="Show ledger history for a run.")(history_cmd)


def configure_logging(level: str) -> None:
    """Route all library logging through a RichHandler on stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                rich_tracebacks=True,
                show_path=False,
            )
        ],
        force=True,
    )


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"shipwright {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Log level (default: SHIPWRIGHT_LOG_LEVEL or INFO).",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_show_version,
        is_eager=True,
    ),
) -> None:
    """Shipwright release pipeline."""
    configure_logging(log_level or Settings().log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
