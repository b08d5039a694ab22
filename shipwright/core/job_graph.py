"""Job DAG with cycle detection and fail-fast cascade.

The graph enforces:
- Every dependency names a job in the graph.
- No cycles across ``needs`` and ``after`` edges.
- A job is ready only when every ``needs`` job SUCCEEDED and every
  ``after`` job is terminal.
- When a job fails, every transitive ``needs``-dependent is SKIPPED.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from shipwright.core.errors import CycleError, DuplicateJobError, MissingDependencyError
from shipwright.models.jobs import TERMINAL_STATES, JobDefinition, JobState


class JobGraph:
    """Directed acyclic graph of pipeline jobs.

    Built from ``JobDefinition.needs`` / ``after`` at pipeline construction
    time and immutable afterwards.
    """

    def __init__(self, definitions: Iterable[JobDefinition]) -> None:
        definitions = list(definitions)
        self._jobs: dict[str, JobDefinition] = {}
        for jd in definitions:
            if jd.job_id in self._jobs:
                msg = f"Duplicate job id {jd.job_id!r}"
                raise DuplicateJobError(msg)
            self._jobs[jd.job_id] = jd
        self._order = [jd.job_id for jd in definitions]

        for jd in definitions:
            for dep in jd.upstream:
                if dep not in self._jobs:
                    msg = f"Job {jd.job_id!r} depends on unknown job {dep!r}"
                    raise MissingDependencyError(msg)
                if dep == jd.job_id:
                    msg = f"Job {jd.job_id!r} depends on itself"
                    raise CycleError(msg)

        # Reverse edges: job_id -> jobs that wait on it
        self._hard_dependents: dict[str, list[str]] = {j: [] for j in self._order}
        self._all_dependents: dict[str, list[str]] = {j: [] for j in self._order}
        for jd in definitions:
            for dep in jd.needs:
                self._hard_dependents[dep].append(jd.job_id)
            for dep in jd.upstream:
                self._all_dependents[dep].append(jd.job_id)

        self._topological = self._sort()

    def _sort(self) -> list[str]:
        """Topologically order jobs (Kahn's algorithm), raising on cycles."""
        in_degree = {j: len(self._jobs[j].upstream) for j in self._order}
        queue = deque(j for j in self._order if in_degree[j] == 0)
        result: list[str] = []

        while queue:
            node = queue.popleft()
            result.append(node)
            for dep in self._all_dependents[node]:
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)

        if len(result) != len(self._order):
            stuck = sorted(j for j, deg in in_degree.items() if deg > 0)
            msg = f"Job graph has a cycle involving: {', '.join(stuck)}"
            raise CycleError(msg)
        return result

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def job_ids(self) -> list[str]:
        """Return all job ids in topological order."""
        return list(self._topological)

    def get(self, job_id: str) -> JobDefinition:
        return self._jobs[job_id]

    def get_dependents(self, job_id: str) -> list[str]:
        """Return every transitive ``needs``-dependent (BFS)."""
        result: list[str] = []
        queue = deque(self._hard_dependents.get(job_id, []))
        visited: set[str] = set()
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            result.append(node)
            queue.extend(self._hard_dependents.get(node, []))
        return result

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def is_ready(self, job_id: str, states: dict[str, JobState]) -> bool:
        """Check if a pending job may start now."""
        jd = self._jobs[job_id]
        if states.get(job_id) != JobState.PENDING:
            return False
        if any(states.get(dep) != JobState.SUCCEEDED for dep in jd.needs):
            return False
        return all(states.get(dep) in TERMINAL_STATES for dep in jd.after)

    def ready_jobs(self, states: dict[str, JobState]) -> list[str]:
        """Return every job that may start now, in topological order."""
        return [j for j in self._topological if self.is_ready(j, states)]

    def blocking_need(self, job_id: str, states: dict[str, JobState]) -> str | None:
        """Return the first ``needs`` job that failed or was skipped."""
        for dep in self._jobs[job_id].needs:
            if states.get(dep) in (JobState.FAILED, JobState.SKIPPED):
                return dep
        return None

    # ------------------------------------------------------------------
    # Cascade
    # ------------------------------------------------------------------

    def cascade_skip(
        self, failed_job_id: str, states: dict[str, JobState]
    ) -> list[str]:
        """When a job fails or is skipped, skip every pending dependent.

        Mutates *states* and returns the newly skipped job ids.
        """
        skipped: list[str] = []
        for job_id in self.get_dependents(failed_job_id):
            if states.get(job_id) == JobState.PENDING:
                states[job_id] = JobState.SKIPPED
                skipped.append(job_id)
        return skipped
