"""Thin plumbum wrapper for invoking external tools.

Every toolchain, signing, and git invocation goes through
:func:`run_command`, which echoes the command line to the log and turns
non-zero exits and missing executables into :class:`CommandFailed`.
Callers translate that into their own error kind (BuildError, SignError,
ReplicationError).
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping, Sequence
from pathlib import Path

from plumbum import local
from plumbum.commands import CommandNotFound, ProcessExecutionError, ProcessTimedOut

from shipwright.core.errors import ShipwrightError

logger = logging.getLogger(__name__)


class CommandFailed(ShipwrightError):
    """Raised when an external command cannot run or exits non-zero."""

    def __init__(
        self,
        argv: Sequence[str],
        message: str,
        *,
        retcode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.argv = list(argv)
        self.retcode = retcode
        self.stderr = stderr


def _resolve_executable(exe: str, cwd: Path | None) -> str:
    """Resolve ``./script`` style executables against the command's cwd."""
    if "/" in exe and not Path(exe).is_absolute() and cwd is not None:
        return str((cwd / exe).resolve())
    return exe


def format_command(argv: Sequence[str]) -> str:
    return shlex.join(str(a) for a in argv)


def run_command(
    argv: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> str:
    """Run *argv* and return its stdout.

    Raises
    ------
    CommandFailed
        If the executable is missing, the command times out, or it exits
        with a non-zero status.
    """
    if not argv:
        msg = "Cannot run an empty command"
        raise ValueError(msg)
    argv = [str(a) for a in argv]
    cwd = Path(cwd) if cwd is not None else None
    logger.info("$ %s", format_command(argv))

    try:
        cmd = local[_resolve_executable(argv[0], cwd)][argv[1:]]
    except CommandNotFound as exc:
        msg = f"Command not found: {argv[0]}"
        raise CommandFailed(argv, msg) from exc

    if env:
        cmd = cmd.with_env(**env)

    try:
        retcode, stdout, stderr = cmd.run(
            retcode=None,
            timeout=timeout,
            cwd=str(cwd) if cwd is not None else None,
        )
    except ProcessTimedOut as exc:
        msg = f"Command timed out after {timeout}s: {format_command(argv)}"
        raise CommandFailed(argv, msg) from exc
    except (ProcessExecutionError, OSError) as exc:
        msg = f"Command could not run: {format_command(argv)}: {exc}"
        raise CommandFailed(argv, msg) from exc

    if retcode != 0:
        detail = (stderr or stdout or "").strip().splitlines()
        tail = detail[-1] if detail else "no output"
        msg = f"Command exited with status {retcode}: {format_command(argv)}: {tail}"
        raise CommandFailed(argv, msg, retcode=retcode, stderr=stderr)

    if stderr:
        logger.debug("stderr from %s: %s", argv[0], stderr.strip())
    return stdout
