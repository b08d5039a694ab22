"""Repository replication — blob references pushed on update branches."""

from shipwright.replication.replicator import (
    RepositoryReplicator,
    commit_message,
    replicate_job_id,
    update_branch_name,
)

__all__ = [
    "RepositoryReplicator",
    "commit_message",
    "replicate_job_id",
    "update_branch_name",
]
