"""Release aggregator — bundles every signed set into one release per tag.

The aggregator is the single writer of the release. It waits (through the
job graph) for every signer, refuses to publish unless every required set
is present and signed, and retries transient host failures with
exponential backoff.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from shipwright.bridge.release_host import ReleaseHost
from shipwright.core.artifact_store import ArtifactStore
from shipwright.core.errors import (
    ArtifactIntegrityError,
    ArtifactNotFoundError,
    ReleaseError,
    TransientUploadError,
)
from shipwright.models.config import TargetConfig
from shipwright.models.release import Release

logger = logging.getLogger(__name__)

RELEASE_JOB_ID = "release"


def _backoff_delay(attempt: int, base_seconds: float) -> float:
    """Delay before retry number *attempt* (1-based)."""
    return base_seconds * (2 ** (attempt - 1))


class ReleaseAggregator:
    """Publishes the unified release for a tag.

    Parameters
    ----------
    store:
        Artifact store holding the signed sets.
    host:
        Release hosting platform.
    max_attempts:
        Upload attempts before giving up on transient failures.
    backoff_seconds:
        Base delay; attempt *n* waits ``backoff_seconds * 2**(n-1)``.
    sleep:
        Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        store: ArtifactStore,
        host: ReleaseHost,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            msg = f"max_attempts must be >= 1, got {max_attempts}"
            raise ValueError(msg)
        self._store = store
        self._host = host
        self._max_attempts = max_attempts
        self._backoff = backoff_seconds
        self._sleep = sleep

    @property
    def host(self) -> ReleaseHost:
        return self._host

    def collect_assets(self, targets: Sequence[TargetConfig]) -> tuple[list[Path], list[str]]:
        """Return the files to publish and the targets they come from.

        Raises ``ReleaseError`` when a required set is missing, unsigned or
        corrupt, or when two sets contribute the same asset name.
        """
        problems: list[str] = []
        files: list[Path] = []
        included: list[str] = []
        owners: dict[str, str] = {}

        for target in targets:
            try:
                artifact_set = self._store.load_set(target.namespace)
            except ArtifactNotFoundError:
                if target.required:
                    problems.append(f"{target.name}: no artifact set")
                else:
                    logger.warning("Optional target %s has no artifacts", target.name)
                continue
            except ArtifactIntegrityError as exc:
                problems.append(f"{target.name}: {exc}")
                continue

            if not artifact_set.signed:
                if target.required:
                    problems.append(f"{target.name}: artifact set is not signed")
                else:
                    logger.warning("Optional target %s is unsigned", target.name)
                continue

            for name in artifact_set.filenames:
                if name in owners:
                    problems.append(
                        f"asset name {name} produced by both {owners[name]} and {target.name}"
                    )
                    continue
                owners[name] = target.name
                files.append(self._store.path_for(target.namespace, name))
            included.append(target.name)

        if problems:
            msg = "Cannot publish release: " + "; ".join(problems)
            raise ReleaseError(msg)
        if not files:
            msg = "Cannot publish release: no artifacts"
            raise ReleaseError(msg)
        return files, included

    def publish(
        self,
        tag: str,
        targets: Sequence[TargetConfig],
        *,
        checkpoint: Callable[[], None] | None = None,
    ) -> Release:
        """Publish all signed sets of *targets* under *tag*.

        ``checkpoint`` is called before each upload and before each retry;
        it raises to stop the publish (pipeline abort).
        """
        files, included = self.collect_assets(targets)
        names = sorted(f.name for f in files)
        logger.info("Publishing %s with %d asset(s): %s", tag, len(files), ", ".join(names))

        url = self._upload(tag, files, checkpoint)
        release = Release(tag=tag, url=url, assets=names, targets=included)
        self._store.record_release(release)
        logger.info("Published release %s at %s", tag, url)
        return release

    def _upload(
        self,
        tag: str,
        files: list[Path],
        checkpoint: Callable[[], None] | None,
    ) -> str:
        last_error: TransientUploadError | None = None
        for attempt in range(1, self._max_attempts + 1):
            if checkpoint is not None:
                checkpoint()
            try:
                return self._host.create_or_update_release(
                    tag, files, checkpoint=checkpoint
                )
            except TransientUploadError as exc:
                last_error = exc
                if attempt == self._max_attempts:
                    break
                delay = _backoff_delay(attempt, self._backoff)
                logger.warning(
                    "Upload of %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    tag, attempt, self._max_attempts, exc, delay,
                )
                self._sleep(delay)

        msg = f"Upload of release {tag} failed after {self._max_attempts} attempt(s): {last_error}"
        raise ReleaseError(msg) from last_error
