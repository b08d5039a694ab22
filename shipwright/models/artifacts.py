"""Artifact models — package files, per-format sets, blob references."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Artifact(BaseModel):
    """One produced package file.

    ``sha256`` always describes the bytes currently in the store: the
    signer re-hashes after embedding a signature.
    """

    model_config = ConfigDict(frozen=True)

    target: str  # target format name, e.g. "debian"
    source_job: str  # job that produced the file
    filename: str
    sha256: str
    size_bytes: int = 0
    signature: str | None = None  # "embedded", a detached filename, or None

    @property
    def is_signed(self) -> bool:
        return self.signature is not None


class ArtifactSet(BaseModel):
    """All package files produced for one target format by one build.

    A set is released atomically: it is either fully present and signed,
    or it is absent from the release.
    """

    model_config = ConfigDict(frozen=True)

    target: str
    source_job: str
    artifacts: list[Artifact] = []
    signed: bool = False
    signed_by: str | None = None  # job that signed the set
    signing_key_id: str | None = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def filenames(self) -> list[str]:
        return [a.filename for a in self.artifacts]

    def package_artifacts(self) -> list[Artifact]:
        """Artifacts that are packages rather than detached signatures."""
        detached = {
            a.signature for a in self.artifacts
            if a.signature not in (None, "embedded")
        }
        return [a for a in self.artifacts if a.filename not in detached]


class BlobReference(BaseModel):
    """A text placeholder committed to a downstream repository.

    Stands in for a binary package; the binary itself lives only in the
    published release.
    """

    model_config = ConfigDict(frozen=True)

    package_name: str
    tag: str
    filename: str

    @property
    def content(self) -> str:
        """Deterministic reference string: ``<package>:<tag>/<filename>``."""
        return f"{self.package_name}:{self.tag}/{self.filename}"

    @property
    def blob_filename(self) -> str:
        return f"{self.filename}.blob"

    def render(self) -> str:
        """File body as written to the repository (newline-terminated)."""
        return f"{self.content}\n"
