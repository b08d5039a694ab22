"""Tests for the JobGraph — validation, ordering, readiness, cascade."""

from __future__ import annotations

import pytest

from shipwright.core.errors import (
    CycleError,
    DuplicateJobError,
    MissingDependencyError,
    ShipwrightError,
)
from shipwright.core.job_graph import JobGraph
from shipwright.models.jobs import JobDefinition, JobState


def _release_graph() -> JobGraph:
    return JobGraph([
        JobDefinition(job_id="lint"),
        JobDefinition(job_id="test"),
        JobDefinition(job_id="build-deb", needs=("lint", "test")),
        JobDefinition(job_id="build-rpm", needs=("lint", "test")),
        JobDefinition(job_id="sign-deb", needs=("build-deb",)),
        JobDefinition(job_id="sign-rpm", needs=("build-rpm",)),
        JobDefinition(job_id="release", needs=("lint", "test"), after=("sign-deb", "sign-rpm")),
        JobDefinition(job_id="replicate-deb", needs=("release", "sign-deb")),
        JobDefinition(job_id="replicate-rpm", needs=("release", "sign-rpm")),
    ])


def _pending(graph: JobGraph) -> dict[str, JobState]:
    return {j: JobState.PENDING for j in graph.job_ids}


class TestJobGraphValidation:
    def test_unknown_dependency_rejected(self):
        with pytest.raises(MissingDependencyError, match="ghost"):
            JobGraph([JobDefinition(job_id="a", needs=("ghost",))])

    def test_unknown_after_dependency_rejected(self):
        with pytest.raises(MissingDependencyError):
            JobGraph([JobDefinition(job_id="a", after=("ghost",))])

    def test_duplicate_ids_rejected(self):
        with pytest.raises(DuplicateJobError, match="Duplicate job id 'a'"):
            JobGraph([JobDefinition(job_id="a"), JobDefinition(job_id="a")])

    def test_duplicate_ids_are_a_pipeline_error(self):
        jobs = [JobDefinition(job_id="lint"), JobDefinition(job_id="test")]
        with pytest.raises(ShipwrightError):
            JobGraph([*jobs, JobDefinition(job_id="lint", needs=("test",))])

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(CycleError):
            JobGraph([JobDefinition(job_id="a", needs=("a",))])

    def test_cycle_rejected_and_named(self):
        with pytest.raises(CycleError) as exc_info:
            JobGraph([
                JobDefinition(job_id="a", needs=("c",)),
                JobDefinition(job_id="b", needs=("a",)),
                JobDefinition(job_id="c", needs=("b",)),
                JobDefinition(job_id="free"),
            ])
        message = str(exc_info.value)
        assert "a" in message and "b" in message and "c" in message
        assert "free" not in message

    def test_cycle_through_after_edge_rejected(self):
        with pytest.raises(CycleError):
            JobGraph([
                JobDefinition(job_id="a", after=("b",)),
                JobDefinition(job_id="b", needs=("a",)),
            ])


class TestJobGraphOrdering:
    def test_topological_order(self):
        graph = _release_graph()
        ids = graph.job_ids
        assert ids.index("lint") < ids.index("build-deb")
        assert ids.index("build-deb") < ids.index("sign-deb")
        assert ids.index("sign-rpm") < ids.index("release")
        assert ids.index("release") < ids.index("replicate-rpm")

    def test_len_and_contains(self):
        graph = _release_graph()
        assert len(graph) == 9
        assert "release" in graph
        assert "deploy" not in graph

    def test_dependents_follow_needs_only(self):
        graph = _release_graph()
        deps = graph.get_dependents("build-deb")
        assert set(deps) == {"sign-deb", "replicate-deb"}
        # release only orders after the signer, it does not need it
        assert "release" not in deps


class TestJobGraphReadiness:
    def test_roots_ready_initially(self):
        graph = _release_graph()
        assert graph.ready_jobs(_pending(graph)) == ["lint", "test"]

    def test_needs_must_succeed(self):
        graph = _release_graph()
        states = _pending(graph)
        states["lint"] = JobState.SUCCEEDED
        states["test"] = JobState.RUNNING
        assert not graph.is_ready("build-deb", states)
        states["test"] = JobState.SUCCEEDED
        assert graph.ready_jobs(states) == ["build-deb", "build-rpm"]

    def test_after_waits_for_terminal_state(self):
        graph = _release_graph()
        states = {j: JobState.SUCCEEDED for j in graph.job_ids}
        states.update(
            {
                "release": JobState.PENDING,
                "sign-deb": JobState.RUNNING,
                "replicate-deb": JobState.PENDING,
                "replicate-rpm": JobState.PENDING,
            }
        )
        assert not graph.is_ready("release", states)
        states["sign-deb"] = JobState.SKIPPED
        assert graph.is_ready("release", states)

    def test_blocking_need(self):
        graph = _release_graph()
        states = _pending(graph)
        states["release"] = JobState.FAILED
        assert graph.blocking_need("replicate-deb", states) == "release"
        assert graph.blocking_need("sign-deb", states) is None


class TestJobGraphCascade:
    def test_build_failure_skips_only_its_chain(self):
        graph = _release_graph()
        states = _pending(graph)
        states.update({"lint": JobState.SUCCEEDED, "test": JobState.SUCCEEDED})
        states["build-deb"] = JobState.FAILED

        skipped = graph.cascade_skip("build-deb", states)

        assert set(skipped) == {"sign-deb", "replicate-deb"}
        assert states["sign-deb"] == JobState.SKIPPED
        assert states["build-rpm"] == JobState.PENDING
        assert states["release"] == JobState.PENDING

    def test_cascade_leaves_non_pending_jobs_alone(self):
        graph = _release_graph()
        states = _pending(graph)
        states["sign-deb"] = JobState.RUNNING
        skipped = graph.cascade_skip("build-deb", states)
        assert "sign-deb" not in skipped
        assert states["sign-deb"] == JobState.RUNNING
