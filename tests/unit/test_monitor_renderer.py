"""Unit tests for the ReportRenderer — Rich output for reports, graphs, history."""

from __future__ import annotations

from io import StringIO

import pytest
from rich.console import Console
from rich.panel import Panel

from shipwright.core.job_graph import JobGraph
from shipwright.core.run_ledger import RunLedger
from shipwright.models.jobs import JobDefinition, JobReport, JobState, PipelineReport
from shipwright.models.ledger import LedgerEntry
from shipwright.monitor.renderer import _STATE_STYLES, ReportRenderer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _renderer() -> tuple[ReportRenderer, StringIO]:
    buf = StringIO()
    console = Console(file=buf, width=160, force_terminal=False, color_system=None)
    return ReportRenderer(console=console), buf


def _report(failed: bool = False) -> PipelineReport:
    jobs = [
        JobReport(job_id="lint", display_name="Clippy", state=JobState.SUCCEEDED),
    ]
    if failed:
        jobs.append(
            JobReport(
                job_id="build-debian",
                display_name="Build Debian package",
                state=JobState.FAILED,
                error_kind="BuildError",
                error_message="makedeb exited [1]",
            )
        )
        jobs.append(
            JobReport(
                job_id="sign-debian",
                display_name="Sign Debian package",
                state=JobState.SKIPPED,
                skip_reason="build-debian failed",
            )
        )
    return PipelineReport(run_id="sw-render-1", jobs=jobs)


class TestStateStyles:
    def test_every_state_has_a_style(self):
        for state in JobState:
            assert state in _STATE_STYLES


class TestReport:
    def test_render_returns_panel(self):
        renderer, _ = _renderer()
        assert isinstance(renderer.render_report(_report()), Panel)

    def test_success_summary(self):
        renderer, buf = _renderer()
        renderer.print_report(_report())
        out = buf.getvalue()
        assert "sw-render-1" in out
        assert "1/1" in out
        assert "passed" in out

    def test_failure_details(self):
        renderer, buf = _renderer()
        renderer.print_report(_report(failed=True))
        out = buf.getvalue()
        assert "BuildError" in out
        # Brackets in messages are printed literally, not parsed as markup.
        assert "makedeb exited [1]" in out
        assert "build-debian failed" in out
        assert "FAILED" in out

    def test_aborted(self):
        renderer, buf = _renderer()
        report = PipelineReport(run_id="r", aborted=True, abort_reason="timed out")
        renderer.print_report(report)
        assert "timed out" in buf.getvalue()


class TestGraph:
    def test_graph_lists_edges(self):
        graph = JobGraph(
            [
                JobDefinition(job_id="lint"),
                JobDefinition(job_id="build-debian", needs=("lint",)),
                JobDefinition(job_id="release", needs=("lint",), after=("build-debian",)),
            ]
        )
        renderer, buf = _renderer()
        renderer.print_graph(graph)
        out = buf.getvalue()
        assert "Job graph" in out
        assert out.index("build-debian") < out.index("release")


class TestHistory:
    @pytest.fixture
    def entries(self, ledger: RunLedger) -> list[LedgerEntry]:
        ledger.append(
            LedgerEntry(run_id="r1", job_id="lint", state_transition="pending->running")
        )
        ledger.append(
            LedgerEntry(
                run_id="r1",
                job_id="lint",
                state_transition="running->failed",
                error_kind="VerificationError",
                detail="clippy failed",
            )
        )
        return ledger.get_run_entries("r1")

    def test_history_table(self, entries: list[LedgerEntry]):
        renderer, buf = _renderer()
        renderer.print_history("r1", entries)
        out = buf.getvalue()
        assert "Run r1" in out
        assert "running->failed" in out
        assert "VerificationError" in out
        assert entries[-1].entry_hash[:12] in out

    def test_chain_verification(self):
        renderer, buf = _renderer()
        renderer.print_chain_verification("r1", True)
        renderer.print_chain_verification("r1", False)
        out = buf.getvalue()
        assert "valid" in out
        assert "BROKEN" in out
