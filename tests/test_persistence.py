"""
Tests for the run history ledger.
"""

import json

from llmaura.core.models.run import RunReport
from llmaura.core.models.step import StepOutcome, StepResult
from llmaura.core.persistence.audit import HistoryEntry, HistoryWriter


def _report(aborted: bool = False) -> RunReport:
    report = RunReport(step_names=["install-ollama", "pull-model:phi", "start-webui"])
    report.add(StepResult(step="install-ollama", outcome=StepOutcome.SKIPPED))
    if aborted:
        report.add(StepResult(step="pull-model:phi", outcome=StepOutcome.FAILED_FATAL, diagnostic="boom"))
        report.abort("pull-model:phi", "boom")
    else:
        report.add(StepResult(step="pull-model:phi", outcome=StepOutcome.FAILED_RECOVERABLE))
        report.add(StepResult(step="start-webui", outcome=StepOutcome.SUCCEEDED))
        report.complete()
    return report


class TestHistoryEntry:
    def test_from_completed_report(self):
        entry = HistoryEntry.from_report(_report(), platform="debian 12", duration_ms=1500)
        assert entry.status == "degraded"
        assert entry.steps_total == 3
        assert entry.steps_succeeded == 1
        assert entry.steps_skipped == 1
        assert entry.steps_failed == 1
        assert entry.failed_steps == ["pull-model:phi"]
        assert entry.aborted_step is None
        assert entry.duration_ms == 1500

    def test_from_aborted_report(self):
        entry = HistoryEntry.from_report(_report(aborted=True))
        assert entry.status == "aborted"
        assert entry.aborted_step == "pull-model:phi"
        assert entry.abort_reason == "boom"
        assert entry.context["not_started"] == ["start-webui"]


class TestHistoryWriter:
    def test_write_and_read(self, tmp_state_dir):
        writer = HistoryWriter(state_dir=tmp_state_dir)
        assert writer.write(HistoryEntry(run_id="run-1", status="ok"))
        assert writer.write(HistoryEntry(run_id="run-2", status="aborted"))

        entries = writer.read_all()
        assert [e.run_id for e in entries] == ["run-1", "run-2"]
        assert writer.entry_count() == 2

    def test_ndjson_format(self, tmp_state_dir):
        writer = HistoryWriter(state_dir=tmp_state_dir)
        writer.write(HistoryEntry(run_id="run-1", status="ok"))
        lines = writer.path.read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["run_id"] == "run-1"

    def test_append_only(self, tmp_state_dir):
        writer = HistoryWriter(state_dir=tmp_state_dir)
        writer.write(HistoryEntry(run_id="run-1"))
        before = writer.path.read_text()
        writer.write(HistoryEntry(run_id="run-2"))
        assert writer.path.read_text().startswith(before)

    def test_creates_parent_directory(self, tmp_path):
        writer = HistoryWriter(tmp_path / "var" / "lib" / "llmaura" / "history.ndjson")
        assert writer.write(HistoryEntry(run_id="run-1"))
        assert writer.path.is_file()

    def test_write_failure_is_reported_not_raised(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        writer = HistoryWriter(blocker / "history.ndjson")
        assert writer.write(HistoryEntry(run_id="run-1")) is False

    def test_corrupt_lines_skipped(self, tmp_state_dir):
        writer = HistoryWriter(state_dir=tmp_state_dir)
        writer.write(HistoryEntry(run_id="run-1"))
        with writer.path.open("a") as f:
            f.write("{not json\n\n")
        writer.write(HistoryEntry(run_id="run-2"))

        assert [e.run_id for e in writer.read_all()] == ["run-1", "run-2"]

    def test_read_recent(self, tmp_state_dir):
        writer = HistoryWriter(state_dir=tmp_state_dir)
        for i in range(5):
            writer.write(HistoryEntry(run_id=f"run-{i}"))
        assert [e.run_id for e in writer.read_recent(2)] == ["run-3", "run-4"]
        assert writer.read_recent(0) == []

    def test_missing_ledger(self, tmp_path):
        writer = HistoryWriter(tmp_path / "none.ndjson")
        assert writer.read_all() == []
        assert writer.entry_count() == 0
