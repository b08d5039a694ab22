"""Release pipeline — wires configuration, components and scheduler.

The job graph is data: one ``JobDefinition`` per job, each action a
closure over the explicit ``ExecutionContext``. For a release tag::

    lint, test
      -> build-<target>            (needs every check)
        -> sign-<target>           (needs its build)
          -> release               (needs every check, after every signer)
            -> replicate-<repo>    (needs release and its target's signer)

``release`` waits for the signers without requiring them to succeed, so
a failed build surfaces as a ``ReleaseError`` naming the missing set
rather than a silent skip. Any other trigger runs the checks only.
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from shipwright.bridge.release_host import (
    DirectoryReleaseHost,
    GitHubReleaseHost,
    ReleaseHost,
)
from shipwright.bridge.secret_store import EnvironmentSecretStore, SecretStore
from shipwright.builders.builder import PackageBuilder, build_job_id, run_check
from shipwright.config import Settings
from shipwright.core.artifact_store import ArtifactStore
from shipwright.core.context import ExecutionContext
from shipwright.core.errors import ConfigError
from shipwright.core.job_graph import JobGraph
from shipwright.core.run_ledger import RunLedger
from shipwright.core.scheduler import JobContext, Scheduler, new_run_id
from shipwright.core.trigger import TriggerEvent, release_tag
from shipwright.models.config import PipelineConfig, RepositoryConfig, TargetConfig
from shipwright.models.jobs import JobDefinition, PipelineReport
from shipwright.release.aggregator import RELEASE_JOB_ID, ReleaseAggregator
from shipwright.replication.replicator import RepositoryReplicator, replicate_job_id
from shipwright.signing.signer import PackageSigner, sign_job_id

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "shipwright.toml"


# ---------------------------------------------------------------------------
# Configuration loading
# ---------------------------------------------------------------------------


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"Cannot read pipeline config {path}: {exc}"
        raise ConfigError(msg) from exc


def load_pipeline_config(path: Path | None = None) -> PipelineConfig:
    """Load the pipeline configuration.

    *path* may name a ``shipwright.toml`` (whole file is the config) or a
    ``pyproject.toml`` (the ``[tool.shipwright]`` table is). Without a
    path, ``shipwright.toml`` then ``pyproject.toml`` in the current
    directory are tried; if neither provides a config the defaults are
    used.

    Raises
    ------
    ConfigError
        Unreadable file, invalid TOML, or data that fails validation.
    """
    if path is None:
        for candidate in (Path(CONFIG_FILENAME), Path("pyproject.toml")):
            if candidate.is_file():
                data = _section(candidate, _read_toml(candidate))
                if data is not None:
                    return _validate(candidate, data)
        return PipelineConfig()

    path = Path(path)
    if not path.is_file():
        msg = f"Pipeline config {path} does not exist"
        raise ConfigError(msg)
    data = _section(path, _read_toml(path))
    if data is None:
        msg = f"{path} has no [tool.shipwright] table"
        raise ConfigError(msg)
    return _validate(path, data)


def _section(path: Path, data: dict[str, Any]) -> dict[str, Any] | None:
    if path.name == "pyproject.toml":
        return data.get("tool", {}).get("shipwright")
    return data


def _validate(path: Path, data: Mapping[str, Any]) -> PipelineConfig:
    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid pipeline config in {path}: {exc}"
        raise ConfigError(msg) from exc


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ReleasePipeline:
    """Builds and runs the job graph for one trigger.

    Parameters
    ----------
    config:
        Pipeline layout (targets, repositories, signing key).
    context:
        Source tree, work directory and secret store shared by all jobs.
    store:
        Artifact store for this run. Namespaces are write-once, so each
        run needs its own store.
    host:
        Release hosting platform.
    replicate:
        Include replication jobs. Disabled for dry runs.
    """

    def __init__(
        self,
        config: PipelineConfig,
        context: ExecutionContext,
        *,
        store: ArtifactStore,
        host: ReleaseHost,
        builder: PackageBuilder | None = None,
        signer: PackageSigner | None = None,
        replicator: RepositoryReplicator | None = None,
        aggregator: ReleaseAggregator | None = None,
        ledger: RunLedger | None = None,
        max_workers: int = 4,
        replicate: bool = True,
        run_id: str | None = None,
    ) -> None:
        self.config = config
        self.run_id = run_id
        self.context = context
        self.store = store
        self.ledger = ledger
        self.max_workers = max_workers
        self.replicate = replicate
        self.builder = builder or PackageBuilder(store)
        self.signer = signer or PackageSigner(store)
        self.aggregator = aggregator or ReleaseAggregator(store, host)
        self.replicator = replicator or RepositoryReplicator(
            config.package_name, identity=config.git_identity
        )
        self.results: dict[str, Any] = {}
        self.scheduler: Scheduler | None = None

    @classmethod
    def from_settings(
        cls,
        config: PipelineConfig,
        source_tree: Path,
        *,
        settings: Settings | None = None,
        secrets: SecretStore | None = None,
        run_id: str | None = None,
        dry_run: bool = False,
    ) -> ReleasePipeline:
        """Assemble a pipeline from runtime settings.

        Every run gets ``<work_dir>/<run_id>`` and
        ``<artifact_store_path>/<run_id>``. A dry run publishes into the
        configured release directory and pushes nothing.
        """
        settings = settings or Settings()
        run_id = run_id or new_run_id()
        store = ArtifactStore(Path(settings.artifact_store_path) / run_id)
        context = ExecutionContext(
            source_tree=Path(source_tree),
            work_dir=Path(settings.work_dir) / run_id,
            secrets=secrets or EnvironmentSecretStore(),
            command_timeout=settings.command_timeout_seconds,
        )

        host: ReleaseHost
        if dry_run or config.release.host == "directory":
            host = DirectoryReleaseHost(config.release.directory)
        elif config.release.host == "github":
            host = GitHubReleaseHost(
                config.release.github_repository,
                settings.github_token,
                api_url=settings.github_api_url,
                uploads_url=settings.github_uploads_url,
            )
        else:
            msg = f"Unknown release host {config.release.host!r}"
            raise ConfigError(msg)

        aggregator = ReleaseAggregator(
            store,
            host,
            max_attempts=settings.release_max_attempts,
            backoff_seconds=settings.release_backoff_seconds,
        )
        return cls(
            config,
            context,
            store=store,
            host=host,
            aggregator=aggregator,
            ledger=RunLedger(Path(settings.ledger_path)),
            max_workers=settings.max_workers,
            replicate=not dry_run,
            run_id=run_id,
        )

    # ------------------------------------------------------------------
    # Job actions
    # ------------------------------------------------------------------

    def _build(self, target: TargetConfig, job: JobContext) -> None:
        job.raise_if_cancelled()
        self.results[job.job_id] = self.builder.build(
            self.context, target, job_id=job.job_id
        )

    def _sign(self, target: TargetConfig, job: JobContext) -> None:
        job.raise_if_cancelled()
        self.results[job.job_id] = self.signer.sign(
            self.context, target, self.config.signing.key_id, job_id=job.job_id
        )

    def _release(self, tag: str, job: JobContext) -> None:
        self.results[job.job_id] = self.aggregator.publish(
            tag, self.config.targets, checkpoint=job.raise_if_cancelled
        )

    def _replicate(self, tag: str, repository: RepositoryConfig, job: JobContext) -> None:
        job.raise_if_cancelled()
        release = self.store.load_release(tag)
        logger.info("Replicating %s (%s) to %s", tag, release.url, repository.label)
        target = self.config.get_target(repository.target)
        artifact_set = self.store.load_set(target.namespace)
        self.results[job.job_id] = self.replicator.replicate(
            self.context, tag, artifact_set, repository, job_id=job.job_id
        )

    # ------------------------------------------------------------------
    # Graph construction
    # ------------------------------------------------------------------

    def jobs(self, trigger: TriggerEvent) -> list[JobDefinition]:
        """Job definitions for *trigger*."""
        checks = [
            JobDefinition(
                job_id=check.job_id,
                display_name=check.display_name,
                action=lambda job, check=check: run_check(self.context, check),
            )
            for check in self.config.checks
        ]
        check_ids = tuple(c.job_id for c in self.config.checks)

        tag = release_tag(trigger, self.config.tag_patterns)
        if tag is None:
            logger.info(
                "%s %s is not a release tag: verification only",
                trigger.event, trigger.ref,
            )
            return checks

        definitions = list(checks)
        sign_ids: dict[str, str] = {}
        for target in self.config.targets:
            build_id = build_job_id(target)
            sign_id = sign_job_id(target)
            sign_ids[target.name] = sign_id
            definitions.append(
                JobDefinition(
                    job_id=build_id,
                    display_name=f"Build {target.label}",
                    needs=check_ids,
                    action=lambda job, target=target: self._build(target, job),
                )
            )
            definitions.append(
                JobDefinition(
                    job_id=sign_id,
                    display_name=f"Sign {target.label}",
                    needs=(build_id,),
                    action=lambda job, target=target: self._sign(target, job),
                )
            )

        definitions.append(
            JobDefinition(
                job_id=RELEASE_JOB_ID,
                display_name=f"Release {tag}",
                needs=check_ids,
                after=tuple(sign_ids.values()),
                action=lambda job: self._release(tag, job),
            )
        )

        if self.replicate:
            for repository in self.config.repositories:
                definitions.append(
                    JobDefinition(
                        job_id=replicate_job_id(repository),
                        display_name=f"Replicate to {repository.label}",
                        needs=(RELEASE_JOB_ID, sign_ids[repository.target]),
                        action=lambda job, repository=repository: self._replicate(
                            tag, repository, job
                        ),
                    )
                )
        return definitions

    def graph(self, trigger: TriggerEvent) -> JobGraph:
        return JobGraph(self.jobs(trigger))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self, trigger: TriggerEvent, *, timeout: float | None = None) -> PipelineReport:
        """Run the graph for *trigger*.

        Returns the report on success; raises ``PipelineFailed`` (or
        ``PipelineAborted``) carrying the report otherwise.
        """
        self.scheduler = Scheduler(
            max_workers=self.max_workers, ledger=self.ledger, run_id=self.run_id
        )
        self.run_id = self.scheduler.run_id
        self.scheduler.submit(self.graph(trigger))
        logger.info("Run %s: %s %s", self.run_id, trigger.event, trigger.ref)
        return self.scheduler.run(timeout=timeout)
