"""Package builders — turn the source tree into one format's ArtifactSet.

Each target format is a ``TargetConfig``: which toolchain command to run,
where, which packaging manifest it needs, and which files it leaves
behind. ``PackageBuilder`` executes any of them the same way:

    check manifest -> copy source tree -> run toolchain
        -> collect outputs -> store ArtifactSet

The copy gives every build job a private tree, so concurrent builders
never see each other's intermediate files or outputs.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from shipwright.core.artifact_store import ArtifactStore
from shipwright.core.commands import CommandFailed, run_command
from shipwright.core.context import ExecutionContext
from shipwright.core.errors import ArtifactConflictError, BuildError, VerificationError
from shipwright.models.artifacts import ArtifactSet
from shipwright.models.config import CheckConfig, TargetConfig

logger = logging.getLogger(__name__)

_IGNORED = shutil.ignore_patterns(".shipwright")


def build_job_id(target: TargetConfig) -> str:
    return f"build-{target.name}"


def expand_command(command: list[str], *, source: Path, manifest: Path | None) -> list[str]:
    """Substitute ``{source}`` and ``{manifest}`` placeholders in *command*."""
    argv = []
    for part in command:
        part = part.replace("{source}", str(source))
        if "{manifest}" in part:
            if manifest is None:
                msg = f"Command {command!r} references {{manifest}} but none is configured"
                raise BuildError(msg)
            part = part.replace("{manifest}", str(manifest))
        argv.append(part)
    return argv


def collect_outputs(tree: Path, patterns: list[str]) -> list[Path]:
    """Return the files under *tree* matching any of *patterns*, sorted."""
    found: dict[str, Path] = {}
    for pattern in patterns:
        for path in tree.glob(pattern):
            if path.is_file():
                found[str(path)] = path
    return [found[k] for k in sorted(found)]


class PackageBuilder:
    """Runs a target's toolchain and stores what it produced.

    Parameters
    ----------
    store:
        Artifact store receiving the built set.
    isolate:
        Copy the source tree into the job directory before building.
        Disable only when a single builder runs against a throwaway tree.
    """

    def __init__(self, store: ArtifactStore, *, isolate: bool = True) -> None:
        self._store = store
        self._isolate = isolate

    def prepare_tree(self, context: ExecutionContext, job_id: str) -> Path:
        source = Path(context.source_tree)
        if not source.is_dir():
            msg = f"Source tree {source} does not exist"
            raise BuildError(msg)
        if not self._isolate:
            return source
        tree = context.job_dir(job_id) / "src"
        if tree.exists():
            shutil.rmtree(tree)
        shutil.copytree(source, tree, symlinks=True, ignore=_IGNORED)
        return tree

    def build(
        self,
        context: ExecutionContext,
        target: TargetConfig,
        *,
        job_id: str | None = None,
    ) -> ArtifactSet:
        """Build *target* and store its ArtifactSet.

        Raises
        ------
        BuildError
            Missing manifest, toolchain failure, or no output files.
        """
        job_id = job_id or build_job_id(target)

        manifest: Path | None = None
        if target.manifest is not None:
            if not (Path(context.source_tree) / target.manifest).is_file():
                msg = f"{target.label}: packaging manifest {target.manifest} not found"
                raise BuildError(msg)

        tree = self.prepare_tree(context, job_id)
        if target.manifest is not None:
            manifest = tree / target.manifest
        workdir = tree / target.workdir
        if not workdir.is_dir():
            msg = f"{target.label}: working directory {target.workdir} not found"
            raise BuildError(msg)

        argv = expand_command(target.command, source=tree, manifest=manifest)
        logger.info("Building %s in %s", target.label, workdir)
        try:
            run_command(
                argv,
                cwd=workdir,
                env={**context.env, **target.env},
                timeout=context.command_timeout,
            )
        except CommandFailed as exc:
            msg = f"{target.label}: toolchain failed: {exc}"
            raise BuildError(msg) from exc

        outputs = collect_outputs(tree, target.outputs)
        if not outputs:
            msg = (
                f"{target.label}: build produced no files matching "
                f"{', '.join(target.outputs)}"
            )
            raise BuildError(msg)

        try:
            artifact_set = self._store.put_set(
                target.namespace, target=target.name, source_job=job_id, files=outputs
            )
        except ArtifactConflictError as exc:
            msg = f"{target.label}: {exc}"
            raise BuildError(msg) from exc
        logger.info(
            "Built %s: %s", target.label, ", ".join(artifact_set.filenames)
        )
        return artifact_set


def run_check(context: ExecutionContext, check: CheckConfig) -> None:
    """Run a verification command (lint, test) against the source tree.

    Checks only read the tree, so they run in place.
    """
    label = check.display_name or check.job_id
    try:
        run_command(
            expand_command(check.command, source=Path(context.source_tree), manifest=None),
            cwd=Path(context.source_tree),
            env=context.env,
            timeout=context.command_timeout,
        )
    except CommandFailed as exc:
        msg = f"{label} failed: {exc}"
        raise VerificationError(msg) from exc
    logger.info("%s passed", label)
