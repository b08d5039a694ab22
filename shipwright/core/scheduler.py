"""Concurrent job scheduler over a validated JobGraph.

The scheduler is the single coordinator deciding readiness. It holds no
business state beyond job status: artifacts move between jobs through the
ArtifactStore, never through the scheduler.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- A job starts only when its dependencies allow it (JobGraph.is_ready)
- Fail-fast cascade: a failure skips every transitive dependent at once
- Abort/timeout: every non-terminal job becomes SKIPPED
- Every transition recorded in the Run Ledger, when one is attached
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone

from shipwright.core.errors import (
    InvalidTransitionError,
    JobCancelledError,
    PipelineAborted,
    PipelineFailed,
    ShipwrightError,
)
from shipwright.core.job_graph import JobGraph
from shipwright.core.run_ledger import RunLedger
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

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"sw-{ts}-{uuid.uuid4().hex[:6]}"


class JobContext:
    """Handed to every job action.

    Carries the job's identity and the pipeline's cancellation signal.
    Long-running actions call ``raise_if_cancelled()`` between steps.
    """

    def __init__(self, job_id: str, run_id: str, cancel_event: threading.Event) -> None:
        self.job_id = job_id
        self.run_id = run_id
        self._cancel_event = cancel_event

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            msg = f"Job {self.job_id} cancelled: pipeline aborted"
            raise JobCancelledError(msg)


class Scheduler:
    """Runs every job of a DAG exactly once, maximizing concurrency.

    Parameters
    ----------
    max_workers:
        Upper bound on concurrently executing jobs.
    ledger:
        Optional Run Ledger receiving every transition.
    run_id:
        Identifier for this run. Generated if not given.
    poll_interval:
        Seconds between checks for abort requests while jobs run.
    """

    def __init__(
        self,
        *,
        max_workers: int = 4,
        ledger: RunLedger | None = None,
        run_id: str | None = None,
        poll_interval: float = 0.05,
    ) -> None:
        if max_workers < 1:
            msg = f"max_workers must be >= 1, got {max_workers}"
            raise ValueError(msg)
        self.max_workers = max_workers
        self.run_id = run_id or new_run_id()
        self._ledger = ledger
        self._poll_interval = poll_interval

        self._graph: JobGraph | None = None
        self._lock = threading.RLock()
        self._cancel = threading.Event()
        self._abort_reason: str | None = None

        self._states: dict[str, JobState] = {}
        self._errors: dict[str, BaseException] = {}
        self._skip_reasons: dict[str, str] = {}
        self._started: dict[str, datetime] = {}
        self._finished: dict[str, datetime] = {}
        self.transitions: list[JobTransition] = []

    # ------------------------------------------------------------------
    # Graph submission
    # ------------------------------------------------------------------

    def submit(self, jobs: JobGraph | Iterable[JobDefinition]) -> JobGraph:
        """Validate and load a job graph.

        Raises ``CycleError`` or ``MissingDependencyError`` before any job
        executes.
        """
        graph = jobs if isinstance(jobs, JobGraph) else JobGraph(jobs)
        with self._lock:
            if self._graph is not None:
                msg = f"Run {self.run_id} already has a submitted graph"
                raise ShipwrightError(msg)
            self._graph = graph
            self._states = {job_id: JobState.PENDING for job_id in graph.job_ids}
        logger.info("Run %s: submitted %d jobs", self.run_id, len(graph))
        return graph

    @property
    def graph(self) -> JobGraph:
        if self._graph is None:
            msg = "No job graph submitted"
            raise ShipwrightError(msg)
        return self._graph

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    @property
    def states(self) -> dict[str, JobState]:
        """Return a snapshot of all job states."""
        with self._lock:
            return dict(self._states)

    @property
    def errors(self) -> dict[str, BaseException]:
        with self._lock:
            return dict(self._errors)

    def _transition(
        self,
        job_id: str,
        target: JobState,
        *,
        error_kind: str | None = None,
        detail: str | None = None,
    ) -> None:
        with self._lock:
            current = self._states[job_id]
            allowed = VALID_TRANSITIONS[current]
            if target not in allowed:
                msg = (
                    f"Cannot transition {job_id} from {current.value} to {target.value}. "
                    f"Allowed: {sorted(s.value for s in allowed)}"
                )
                raise InvalidTransitionError(msg)
            self._states[job_id] = target
            self._record(job_id, current, target, error_kind, detail)

    def _record(
        self,
        job_id: str,
        current: JobState,
        target: JobState,
        error_kind: str | None,
        detail: str | None,
    ) -> None:
        now = datetime.now(timezone.utc)
        if target == JobState.RUNNING:
            self._started[job_id] = now
        elif target in TERMINAL_STATES:
            self._finished[job_id] = now
        if target == JobState.SKIPPED and detail:
            self._skip_reasons[job_id] = detail

        self.transitions.append(
            JobTransition(
                job_id=job_id,
                from_state=current,
                to_state=target,
                error_kind=error_kind,
                detail=detail,
            )
        )
        if self._ledger is not None:
            self._ledger.append(
                LedgerEntry(
                    run_id=self.run_id,
                    job_id=job_id,
                    state_transition=f"{current.value}->{target.value}",
                    error_kind=error_kind or "",
                    detail=detail or "",
                )
            )

    def _cascade(self, job_id: str, reason: str) -> None:
        """Skip every pending transitive dependent of *job_id*."""
        with self._lock:
            snapshot = dict(self._states)
            skipped = self.graph.cascade_skip(job_id, snapshot)
            for dependent in skipped:
                self._states[dependent] = JobState.SKIPPED
                self._record(
                    dependent, JobState.PENDING, JobState.SKIPPED, None,
                    f"dependency {job_id} {reason}",
                )
        if skipped:
            logger.warning(
                "Run %s: %s %s, skipped %s",
                self.run_id, job_id, reason, ", ".join(skipped),
            )

    # ------------------------------------------------------------------
    # Abort
    # ------------------------------------------------------------------

    def abort(self, reason: str = "aborted") -> None:
        """Request pipeline abort; non-terminal jobs end SKIPPED."""
        with self._lock:
            if self._abort_reason is None:
                self._abort_reason = reason
        self._cancel.set()
        logger.warning("Run %s: abort requested (%s)", self.run_id, reason)

    @property
    def aborted(self) -> bool:
        return self._cancel.is_set()

    def _skip_remaining(self) -> None:
        with self._lock:
            reason = f"pipeline aborted: {self._abort_reason}"
            for job_id, state in list(self._states.items()):
                if state not in TERMINAL_STATES:
                    self._transition(job_id, JobState.SKIPPED, detail=reason)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _execute(self, job_id: str) -> None:
        jd = self.graph.get(job_id)
        if jd.action is None:
            return
        context = JobContext(job_id, self.run_id, self._cancel)
        jd.action(context)

    def _start(self, pool: ThreadPoolExecutor, job_id: str) -> Future[None]:
        self._transition(job_id, JobState.RUNNING)
        logger.info("Run %s: starting %s", self.run_id, self.graph.get(job_id).label)
        return pool.submit(self._execute, job_id)

    def _complete(self, job_id: str, future: Future[None]) -> None:
        exc = future.exception()
        with self._lock:
            if self._states[job_id] != JobState.RUNNING:
                # Aborted while running; the late result is discarded.
                return
            if exc is None:
                self._transition(job_id, JobState.SUCCEEDED)
                logger.info("Run %s: %s succeeded", self.run_id, job_id)
                return
            if self._cancel.is_set() or isinstance(exc, JobCancelledError):
                # Stopped by the abort, not a failure of its own.
                self._transition(
                    job_id, JobState.SKIPPED,
                    detail=f"pipeline aborted: {self._abort_reason}",
                )
                return
            self._errors[job_id] = exc
            self._transition(
                job_id, JobState.FAILED,
                error_kind=type(exc).__name__, detail=str(exc),
            )
        logger.error("Run %s: %s failed: %s: %s", self.run_id, job_id, type(exc).__name__, exc)
        self._cascade(job_id, "failed")

    def run(self, timeout: float | None = None) -> PipelineReport:
        """Execute the submitted graph to completion.

        Returns the PipelineReport. Raises ``PipelineFailed`` if any job
        ended FAILED, ``PipelineAborted`` if the run was aborted.
        """
        graph = self.graph
        deadline = time.monotonic() + timeout if timeout is not None else None
        running: dict[Future[None], str] = {}
        pool = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="shipwright-job"
        )
        try:
            while True:
                if self._cancel.is_set():
                    self._skip_remaining()
                    break

                for job_id in graph.ready_jobs(self.states):
                    running[self._start(pool, job_id)] = job_id

                if not running:
                    break

                wait_for = self._poll_interval
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        self.abort(f"timed out after {timeout}s")
                        continue
                    wait_for = min(wait_for, remaining)

                done, _ = wait(running, timeout=wait_for, return_when=FIRST_COMPLETED)
                for future in done:
                    self._complete(running.pop(future), future)

            # Anything still pending here can never become ready.
            for job_id, state in self.states.items():
                if state == JobState.PENDING:
                    self._transition(
                        job_id, JobState.SKIPPED,
                        detail="dependencies can never be satisfied",
                    )
        finally:
            pool.shutdown(wait=not self._cancel.is_set(), cancel_futures=True)

        report = self.report()
        if report.aborted:
            msg = f"Run {self.run_id} aborted: {report.abort_reason}"
            raise PipelineAborted(msg, report)
        if report.failed_jobs:
            failed = ", ".join(
                f"{j.job_id} ({j.error_kind})" for j in report.failed_jobs
            )
            msg = f"Run {self.run_id} failed: {failed}"
            raise PipelineFailed(msg, report)
        logger.info("Run %s: all %d jobs succeeded", self.run_id, len(graph))
        return report

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def report(self) -> PipelineReport:
        """Return the per-job status report in topological order."""
        graph = self.graph
        with self._lock:
            jobs = []
            for job_id in graph.job_ids:
                exc = self._errors.get(job_id)
                jobs.append(
                    JobReport(
                        job_id=job_id,
                        display_name=graph.get(job_id).label,
                        state=self._states[job_id],
                        error_kind=type(exc).__name__ if exc else None,
                        error_message=str(exc) if exc else None,
                        skip_reason=self._skip_reasons.get(job_id),
                        started_at=self._started.get(job_id),
                        finished_at=self._finished.get(job_id),
                    )
                )
            return PipelineReport(
                run_id=self.run_id,
                jobs=jobs,
                aborted=self._cancel.is_set(),
                abort_reason=self._abort_reason,
            )
