"""Repository replicator — pushes blob references to a package repository.

For one downstream repository:

1. clone its staging branch;
2. fork a uniquely-named update branch off the staging head;
3. write one ``<package>.blob`` reference per matching package and drop
   the binary itself from the tree;
4. commit under the bot identity and push the update branch.

Nothing is ever force-pushed, merged or deleted: the repository's own
automation picks up update branches. Branch names carry 32 random
characters, so concurrent replicators never collide.
"""

from __future__ import annotations

import base64
import fnmatch
import logging
import secrets
import shutil
import string
from collections.abc import Mapping
from pathlib import Path

from shipwright.bridge.secret_store import RepoCredential
from shipwright.core.commands import CommandFailed, run_command
from shipwright.core.context import ExecutionContext
from shipwright.core.errors import ReplicationError, SecretUnavailable
from shipwright.models.artifacts import ArtifactSet, BlobReference
from shipwright.models.config import GitIdentity, RepositoryConfig
from shipwright.models.release import ReplicationResult

logger = logging.getLogger(__name__)

BRANCH_SUFFIX_LENGTH = 32
_ALPHABET = string.ascii_letters + string.digits


def replicate_job_id(repository: RepositoryConfig) -> str:
    return f"replicate-{repository.name}"


def update_branch_name(staging_branch: str, *, length: int = BRANCH_SUFFIX_LENGTH) -> str:
    """Return ``<staging>-<length random alphanumerics>``."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{staging_branch}-{suffix}"


def commit_message(repository: RepositoryConfig, package_name: str, tag: str) -> str:
    return f"Update {repository.label} {package_name} to {tag}"


def credential_env(credential: RepoCredential) -> dict[str, str]:
    """Git environment sending *credential* as an HTTP basic auth header.

    Passed through ``GIT_CONFIG_*`` so the token never appears on a
    command line, in the log, or in the clone's ``.git/config``.
    """
    raw = f"{credential.username}:{credential.token}".encode()
    header = "Authorization: Basic " + base64.b64encode(raw).decode("ascii")
    return {
        "GIT_CONFIG_COUNT": "1",
        "GIT_CONFIG_KEY_0": "http.extraHeader",
        "GIT_CONFIG_VALUE_0": header,
    }


class RepositoryReplicator:
    """Replicates one artifact set into one downstream repository.

    Parameters
    ----------
    package_name:
        Name written into every blob reference.
    identity:
        Bot identity for the replication commit.
    git:
        Git executable.
    """

    def __init__(
        self,
        package_name: str,
        *,
        identity: GitIdentity | None = None,
        git: str = "git",
    ) -> None:
        self.package_name = package_name
        self.identity = identity or GitIdentity()
        self._git_exe = git

    def _git(
        self,
        args: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout: float | None,
    ) -> str:
        try:
            return run_command([self._git_exe, *args], cwd=cwd, env=env, timeout=timeout)
        except CommandFailed as exc:
            msg = f"git {args[0]} failed: {exc}"
            raise ReplicationError(msg) from exc

    def _auth_env(
        self, context: ExecutionContext, repository: RepositoryConfig
    ) -> dict[str, str]:
        env = {**context.env, "GIT_TERMINAL_PROMPT": "0"}
        if repository.credential_id is None:
            return env
        try:
            credential = context.secrets.fetch_repo_credential(repository.credential_id)
        except SecretUnavailable as exc:
            msg = f"{repository.label}: push credential unavailable: {exc}"
            raise ReplicationError(msg) from exc
        env.update(credential_env(credential))
        return env

    def write_blobs(
        self,
        checkout: Path,
        tag: str,
        artifact_set: ArtifactSet,
        repository: RepositoryConfig,
    ) -> list[str]:
        """Write blob references into *checkout*; return their repo paths."""
        target_dir = checkout / repository.path
        target_dir.mkdir(parents=True, exist_ok=True)
        written: list[str] = []
        for artifact in artifact_set.package_artifacts():
            if not fnmatch.fnmatch(artifact.filename, repository.package_glob):
                continue
            ref = BlobReference(
                package_name=self.package_name, tag=tag, filename=artifact.filename
            )
            (target_dir / ref.blob_filename).write_text(ref.render(), encoding="utf-8")
            (target_dir / artifact.filename).unlink(missing_ok=True)
            written.append(f"{repository.path.rstrip('/')}/{ref.blob_filename}")
        return written

    def replicate(
        self,
        context: ExecutionContext,
        tag: str,
        artifact_set: ArtifactSet,
        repository: RepositoryConfig,
        *,
        job_id: str | None = None,
    ) -> ReplicationResult:
        """Push blob references for *artifact_set* on a fresh update branch.

        Raises
        ------
        ReplicationError
            Credential unavailable, no matching packages, or any git step
            failed. Nothing is retried.
        """
        job_id = job_id or replicate_job_id(repository)
        timeout = context.command_timeout
        env = self._auth_env(context, repository)

        job_dir = context.job_dir(job_id)
        checkout = job_dir / "repo"
        if checkout.exists():
            shutil.rmtree(checkout)

        self._git(
            ["clone", "--branch", repository.staging_branch, "--single-branch",
             repository.url, str(checkout)],
            cwd=job_dir, env=env, timeout=timeout,
        )

        branch = update_branch_name(repository.staging_branch)
        self._git(["checkout", "-b", branch], cwd=checkout, env=env, timeout=timeout)

        blob_paths = self.write_blobs(checkout, tag, artifact_set, repository)
        if not blob_paths:
            msg = (
                f"{repository.label}: no packages in {artifact_set.target} "
                f"match {repository.package_glob}"
            )
            raise ReplicationError(msg)

        message = commit_message(repository, self.package_name, tag)
        for args in (
            ["config", "user.name", self.identity.name],
            ["config", "user.email", self.identity.email],
            ["add", "-A", "--", repository.path],
            ["commit", "-m", message],
        ):
            self._git(args, cwd=checkout, env=env, timeout=timeout)
        commit = self._git(
            ["rev-parse", "HEAD"], cwd=checkout, env=env, timeout=timeout
        ).strip()

        self._git(
            ["push", "--set-upstream", "origin", branch],
            cwd=checkout, env=env, timeout=timeout,
        )
        logger.info(
            "Pushed %s to %s (%d blob(s), commit %s)",
            branch, repository.label, len(blob_paths), commit[:12],
        )
        return ReplicationResult(
            repository=repository.name,
            staging_branch=repository.staging_branch,
            branch=branch,
            commit=commit,
            blob_paths=blob_paths,
        )
