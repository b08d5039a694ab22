"""Error taxonomy shared by every pipeline component.

Library code raises these; the scheduler records the class name of whatever
an action raised as the job's ``error_kind``; only the CLI turns them into
exit codes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shipwright.models.jobs import PipelineReport


class ShipwrightError(RuntimeError):
    """Base class for all pipeline errors."""


class ConfigError(ShipwrightError):
    """Raised when pipeline configuration cannot be loaded or is invalid."""


# ---------------------------------------------------------------------------
# Graph and scheduling
# ---------------------------------------------------------------------------


class CycleError(ShipwrightError):
    """Raised when the job graph contains a cycle."""


class MissingDependencyError(ShipwrightError):
    """Raised when a job depends on a job that is not in the graph."""


class DuplicateJobError(ShipwrightError):
    """Raised when two jobs in a graph share an id."""


class InvalidTransitionError(ShipwrightError):
    """Raised when a requested job state transition is not valid."""


class PipelineFailed(ShipwrightError):
    """Raised by ``Scheduler.run()`` when any job ended FAILED."""

    def __init__(self, message: str, report: PipelineReport) -> None:
        super().__init__(message)
        self.report = report


class PipelineAborted(PipelineFailed):
    """Raised when the pipeline was aborted (timeout or explicit abort)."""


class JobCancelledError(ShipwrightError):
    """Raised inside an action that observes a pipeline abort."""


# ---------------------------------------------------------------------------
# Stage failures
# ---------------------------------------------------------------------------


class BuildError(ShipwrightError):
    """Raised when a package toolchain fails or produces nothing."""


class SignError(ShipwrightError):
    """Raised when key import or signing of any artifact fails."""


class ReleaseError(ShipwrightError):
    """Raised when a required set is missing or upload retries are exhausted."""


class TransientUploadError(ShipwrightError):
    """Raised by a release host for failures worth retrying."""


class ReplicationError(ShipwrightError):
    """Raised when clone, write, commit, or push fails for one repository."""


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------


class SecretUnavailable(ShipwrightError):
    """Raised when a secret identifier is unknown or access is denied."""


class ArtifactNotFoundError(ShipwrightError):
    """Raised when an artifact set has not been written to the store."""


class ArtifactIntegrityError(ShipwrightError):
    """Raised when a stored artifact no longer matches its checksum."""


class ArtifactConflictError(ShipwrightError):
    """Raised when a job writes into a namespace it does not own."""


class VerificationError(ShipwrightError):
    """Raised when a lint or test check fails."""
