"""Job state machine models — statuses, transitions, definitions, reports."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class JobState(str, Enum):
    """Execution status of a single pipeline job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATES: frozenset[JobState] = frozenset(
    {JobState.SUCCEEDED, JobState.FAILED, JobState.SKIPPED}
)

# Valid state transitions, enforced by the Scheduler.
# RUNNING -> SKIPPED only happens when the whole pipeline is aborted.
VALID_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.PENDING: {JobState.RUNNING, JobState.SKIPPED},
    JobState.RUNNING: {JobState.SUCCEEDED, JobState.FAILED, JobState.SKIPPED},
    JobState.SUCCEEDED: set(),  # terminal
    JobState.FAILED: set(),  # terminal
    JobState.SKIPPED: set(),  # terminal
}


class JobDefinition(BaseModel):
    """A named pipeline job and its place in the DAG.

    ``needs`` are hard dependencies: every one must be SUCCEEDED before the
    job may run, and a failed or skipped need skips this job.  ``after``
    are ordering-only edges: the job waits for them to reach a terminal
    state but does not require them to succeed.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    display_name: str = ""
    needs: tuple[str, ...] = ()
    after: tuple[str, ...] = ()
    action: Callable[..., Any] | None = None  # receives a JobContext

    @property
    def label(self) -> str:
        return self.display_name or self.job_id

    @property
    def upstream(self) -> tuple[str, ...]:
        """Every job this one waits on, hard or ordering-only."""
        return self.needs + tuple(j for j in self.after if j not in self.needs)


class JobTransition(BaseModel):
    """Records a single job state transition."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    from_state: JobState
    to_state: JobState
    error_kind: str | None = None
    detail: str | None = None


class JobReport(BaseModel):
    """Terminal outcome of one job, as reported to the user."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    display_name: str
    state: JobState
    error_kind: str | None = None  # exception class name for failures
    error_message: str | None = None
    skip_reason: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


class PipelineReport(BaseModel):
    """Final status of every job in a pipeline run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    jobs: list[JobReport] = []
    aborted: bool = False
    abort_reason: str | None = None

    def get(self, job_id: str) -> JobReport:
        for job in self.jobs:
            if job.job_id == job_id:
                return job
        raise KeyError(job_id)

    def state_of(self, job_id: str) -> JobState:
        return self.get(job_id).state

    @property
    def states(self) -> dict[str, JobState]:
        return {job.job_id: job.state for job in self.jobs}

    @property
    def failed_jobs(self) -> list[JobReport]:
        return [j for j in self.jobs if j.state == JobState.FAILED]

    @property
    def skipped_jobs(self) -> list[JobReport]:
        return [j for j in self.jobs if j.state == JobState.SKIPPED]

    @property
    def succeeded(self) -> bool:
        """Whether every job succeeded and the run was not aborted."""
        return not self.aborted and all(
            j.state == JobState.SUCCEEDED for j in self.jobs
        )
