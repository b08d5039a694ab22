"""Path-addressed, append-only artifact store.

Storage layout::

    {base_path}/{namespace}/{filename}
    {base_path}/{namespace}/manifest.json
    {base_path}/_release/{tag}.json

Each namespace is written once, by the job that owns it. The only later
mutation is the signer's in-place commit of signed files, which graph
edges order before every reader of that namespace.
"""

from __future__ import annotations

import dataclasses as dc
import logging
import os
import shutil
import threading
from collections.abc import Iterable, Sequence
from pathlib import Path

from shipwright.core.errors import (
    ArtifactConflictError,
    ArtifactIntegrityError,
    ArtifactNotFoundError,
)
from shipwright.core.hasher import file_sha256
from shipwright.models.artifacts import Artifact, ArtifactSet
from shipwright.models.release import Release

logger = logging.getLogger(__name__)

_MANIFEST = "manifest.json"
_RELEASES = "_release"


@dc.dataclass(frozen=True)
class SignedFile:
    """A signed package staged by the signer for commit into the store.

    ``path`` holds the package bytes after signing (unchanged for detached
    conventions); ``detached_path`` holds the detached signature, if any.
    """

    filename: str
    path: Path
    signature: str  # "embedded" or the detached signature filename
    detached_path: Path | None = None


def _atomic_write_text(path: Path, text: str) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


class ArtifactStore:
    """Namespace-per-job artifact store.

    Parameters
    ----------
    base_path:
        Root directory for artifact storage.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def base_path(self) -> Path:
        return self._base

    def _namespace_dir(self, namespace: str) -> Path:
        if not namespace or "/" in namespace or namespace.startswith((".", "_")):
            msg = f"Invalid artifact namespace {namespace!r}"
            raise ValueError(msg)
        return self._base / namespace

    def path_for(self, namespace: str, filename: str) -> Path:
        """Return the stored path of one artifact file."""
        return self._namespace_dir(namespace) / filename

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def put_set(
        self,
        namespace: str,
        *,
        target: str,
        source_job: str,
        files: Iterable[Path],
    ) -> ArtifactSet:
        """Copy build outputs into *namespace* and record their checksums.

        Raises ``ArtifactConflictError`` if the namespace was already
        written or two files share a name.
        """
        ns_dir = self._namespace_dir(namespace)
        files = [Path(f) for f in files]
        names = [f.name for f in files]
        if len(set(names)) != len(names):
            msg = f"Duplicate filenames for {namespace}: {sorted(names)}"
            raise ArtifactConflictError(msg)

        with self._lock:
            manifest = ns_dir / _MANIFEST
            if manifest.exists():
                existing = ArtifactSet.model_validate_json(manifest.read_text("utf-8"))
                msg = (
                    f"Namespace {namespace!r} already written by {existing.source_job}; "
                    f"{source_job} may not overwrite it"
                )
                raise ArtifactConflictError(msg)

            ns_dir.mkdir(parents=True, exist_ok=True)
            artifacts: list[Artifact] = []
            for src in files:
                dest = ns_dir / src.name
                shutil.copy2(src, dest)
                artifacts.append(
                    Artifact(
                        target=target,
                        source_job=source_job,
                        filename=src.name,
                        sha256=file_sha256(dest),
                        size_bytes=dest.stat().st_size,
                    )
                )

            artifact_set = ArtifactSet(
                target=target, source_job=source_job, artifacts=artifacts
            )
            _atomic_write_text(manifest, artifact_set.model_dump_json(indent=2))

        logger.info(
            "Stored %d artifact(s) for %s in %s", len(artifacts), target, ns_dir
        )
        return artifact_set

    def commit_signed(
        self,
        namespace: str,
        signed: Sequence[SignedFile],
        *,
        signed_by: str,
        key_id: str,
    ) -> ArtifactSet:
        """Swap signed files into *namespace* and mark the set signed.

        Every package of the set must be present in *signed*; a partial
        commit is refused so a set is never half-signed.
        """
        ns_dir = self._namespace_dir(namespace)
        with self._lock:
            current = self._read_manifest(namespace)
            if current.signed:
                msg = f"Artifact set {namespace!r} is already signed by {current.signed_by}"
                raise ArtifactConflictError(msg)

            by_name = {s.filename: s for s in signed}
            expected = set(current.filenames)
            if set(by_name) != expected:
                msg = (
                    f"Signed files for {namespace!r} do not match the set: "
                    f"expected {sorted(expected)}, got {sorted(by_name)}"
                )
                raise ArtifactConflictError(msg)

            artifacts: list[Artifact] = []
            for artifact in current.artifacts:
                staged = by_name[artifact.filename]
                dest = ns_dir / artifact.filename
                if staged.path.resolve() != dest.resolve():
                    shutil.move(str(staged.path), str(dest))
                artifacts.append(
                    artifact.model_copy(
                        update={
                            "sha256": file_sha256(dest),
                            "size_bytes": dest.stat().st_size,
                            "signature": staged.signature,
                        }
                    )
                )
                if staged.detached_path is not None:
                    sig_dest = ns_dir / staged.signature
                    shutil.move(str(staged.detached_path), str(sig_dest))
                    artifacts.append(
                        Artifact(
                            target=current.target,
                            source_job=signed_by,
                            filename=staged.signature,
                            sha256=file_sha256(sig_dest),
                            size_bytes=sig_dest.stat().st_size,
                        )
                    )

            signed_set = current.model_copy(
                update={
                    "artifacts": artifacts,
                    "signed": True,
                    "signed_by": signed_by,
                    "signing_key_id": key_id,
                }
            )
            _atomic_write_text(ns_dir / _MANIFEST, signed_set.model_dump_json(indent=2))

        logger.info("Committed signed set %s (%d files)", namespace, len(artifacts))
        return signed_set

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def has_set(self, namespace: str) -> bool:
        return (self._namespace_dir(namespace) / _MANIFEST).exists()

    def _read_manifest(self, namespace: str) -> ArtifactSet:
        manifest = self._namespace_dir(namespace) / _MANIFEST
        if not manifest.exists():
            msg = f"No artifact set stored under {namespace!r}"
            raise ArtifactNotFoundError(msg)
        return ArtifactSet.model_validate_json(manifest.read_text("utf-8"))

    def load_set(self, namespace: str, *, verify: bool = True) -> ArtifactSet:
        """Load an artifact set, re-hashing every file when *verify* is set."""
        with self._lock:
            artifact_set = self._read_manifest(namespace)
        if verify:
            for artifact in artifact_set.artifacts:
                self._verify(namespace, artifact)
        return artifact_set

    def _verify(self, namespace: str, artifact: Artifact) -> None:
        path = self.path_for(namespace, artifact.filename)
        if not path.exists():
            msg = f"Artifact {artifact.filename} missing from {namespace!r}"
            raise ArtifactIntegrityError(msg)
        actual = file_sha256(path)
        if actual != artifact.sha256:
            msg = (
                f"Artifact {artifact.filename} in {namespace!r} failed integrity check: "
                f"expected {artifact.sha256}, got {actual}"
            )
            raise ArtifactIntegrityError(msg)

    # ------------------------------------------------------------------
    # Release records
    # ------------------------------------------------------------------

    def _release_path(self, tag: str) -> Path:
        return self._base / _RELEASES / f"{tag.replace('/', '__')}.json"

    def record_release(self, release: Release) -> None:
        """Persist the published release so later jobs can see it."""
        rel_dir = self._base / _RELEASES
        rel_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            _atomic_write_text(
                self._release_path(release.tag), release.model_dump_json(indent=2)
            )

    def load_release(self, tag: str) -> Release:
        path = self._release_path(tag)
        if not path.exists():
            msg = f"Release {tag!r} has not been published"
            raise ArtifactNotFoundError(msg)
        return Release.model_validate_json(path.read_text("utf-8"))
