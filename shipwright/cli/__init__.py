"""Shipwright CLI — Typer-based command-line interface.

Provides the ``shipwright`` command with subcommands for running the
release pipeline, printing its job graph, and reading run history.

All output uses Rich for formatted terminal display.
"""
