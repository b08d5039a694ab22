"""Outcome models for the publish and replicate steps."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Release(BaseModel):
    """One externally-visible release bundling every signed artifact set."""

    model_config = ConfigDict(frozen=True)

    tag: str
    url: str
    assets: list[str] = []  # sorted asset names
    targets: list[str] = []
    published_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class ReplicationResult(BaseModel):
    """What a replicator pushed to one downstream repository."""

    model_config = ConfigDict(frozen=True)

    repository: str
    staging_branch: str
    branch: str
    commit: str
    blob_paths: list[str] = []
