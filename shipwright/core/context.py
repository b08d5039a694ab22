"""Explicit execution context handed to builder, signer, and replicator actions.

Each CI job used to get its own container; here every job instead receives
the source tree, a private work directory, and the secret store it may use.
"""

from __future__ import annotations

import dataclasses as dc
import re
from collections.abc import Mapping
from pathlib import Path

from shipwright.bridge.secret_store import SecretStore


@dc.dataclass(frozen=True)
class ExecutionContext:
    """Inputs shared by every job of one pipeline run.

    Attributes
    ----------
    source_tree:
        Checked-out sources at the release tag. Never modified by jobs.
    work_dir:
        Root under which each job gets its own directory.
    secrets:
        Secret store for signing keys and push credentials.
    env:
        Extra environment variables for external tools.
    command_timeout:
        Upper bound in seconds for any single external command.
    """

    source_tree: Path
    work_dir: Path
    secrets: SecretStore
    env: Mapping[str, str] = dc.field(default_factory=dict)
    command_timeout: float | None = None

    def __post_init__(self) -> None:
        # Tools run with their own cwd, so every path handed to them is absolute.
        object.__setattr__(self, "source_tree", Path(self.source_tree).resolve())
        object.__setattr__(self, "work_dir", Path(self.work_dir).resolve())

    def job_dir(self, job_id: str) -> Path:
        """Return (and create) the private directory for *job_id*."""
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", job_id)
        path = Path(self.work_dir) / safe
        path.mkdir(parents=True, exist_ok=True)
        return path
