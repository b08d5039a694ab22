"""Shipwright data models — all Pydantic v2, all frozen (immutable)."""

from shipwright.models.artifacts import Artifact, ArtifactSet, BlobReference
from shipwright.models.config import (
    CheckConfig,
    GitIdentity,
    PipelineConfig,
    ReleaseConfig,
    RepositoryConfig,
    SigningConfig,
    SigningConvention,
    TargetConfig,
)
from shipwright.models.jobs import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    JobDefinition,
    JobReport,
    JobState,
    JobTransition,
    PipelineReport,
)
from shipwright.models.ledger import LedgerEntry
from shipwright.models.release import Release, ReplicationResult

__all__ = [
    # jobs
    "JobState",
    "JobDefinition",
    "JobTransition",
    "JobReport",
    "PipelineReport",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    # artifacts
    "Artifact",
    "ArtifactSet",
    "BlobReference",
    # release
    "Release",
    "ReplicationResult",
    # ledger
    "LedgerEntry",
    # config
    "CheckConfig",
    "GitIdentity",
    "PipelineConfig",
    "ReleaseConfig",
    "RepositoryConfig",
    "SigningConfig",
    "SigningConvention",
    "TargetConfig",
]
