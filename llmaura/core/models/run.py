"""
Run models — the run log and the report a workflow run produces.

RunLog is append-only: entries are never modified or removed while the
process lives. Each entry is forwarded to Python logging as it is
recorded, so console/file output and the in-memory log never disagree.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from llmaura.core.models.step import StepOutcome, StepResult, StepStatus

_run_logger = logging.getLogger("llmaura.run")


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class LogLevel(StrEnum):
    """Message classes an operator sees."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def numeric(self) -> int:
        return logging.getLevelName(self.value)


class LogEntry(BaseModel):
    """One timestamped, leveled message."""

    timestamp: str = Field(default_factory=_now_iso)
    level: LogLevel
    message: str
    step: str | None = None


class RunLog:
    """Append-only, ordered record of everything observable in a run."""

    def __init__(self, forward: bool = True):
        self._entries: list[LogEntry] = []
        self._forward = forward

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, level: LogLevel, message: str, step: str | None = None) -> LogEntry:
        entry = LogEntry(level=level, message=message, step=step)
        self._entries.append(entry)
        if self._forward:
            prefix = f"[{step}] " if step else ""
            _run_logger.log(level.numeric, "%s%s", prefix, message)
        return entry

    def info(self, message: str, step: str | None = None) -> LogEntry:
        return self.record(LogLevel.INFO, message, step)

    def warning(self, message: str, step: str | None = None) -> LogEntry:
        return self.record(LogLevel.WARNING, message, step)

    def error(self, message: str, step: str | None = None) -> LogEntry:
        return self.record(LogLevel.ERROR, message, step)

    def critical(self, message: str, step: str | None = None) -> LogEntry:
        return self.record(LogLevel.CRITICAL, message, step)

    def for_step(self, step: str) -> list[LogEntry]:
        return [e for e in self._entries if e.step == step]

    def at_least(self, level: LogLevel) -> list[LogEntry]:
        return [e for e in self._entries if e.level.numeric >= level.numeric]

    def to_list(self) -> list[dict[str, Any]]:
        return [e.model_dump(mode="json") for e in self._entries]


class RunState(StrEnum):
    """Terminal (and in-flight) states of a whole run."""

    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


class RunReport(BaseModel):
    """Result of running a workflow.

    ``results`` only holds steps the sequencer reached; anything after
    an abort is absent and reports ``not_started`` through
    ``status_of()``.
    """

    run_id: str = Field(default_factory=generate_run_id)
    state: RunState = RunState.RUNNING
    dry_run: bool = False

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""

    step_names: list[str] = Field(default_factory=list)
    results: list[StepResult] = Field(default_factory=list)

    aborted_step: str | None = None
    abort_reason: str | None = None

    def add(self, result: StepResult) -> None:
        self.results.append(result)

    def result_for(self, step: str) -> StepResult | None:
        for r in self.results:
            if r.step == step:
                return r
        return None

    def status_of(self, step: str) -> StepStatus:
        result = self.result_for(step)
        if result is None:
            return StepStatus.NOT_STARTED
        return result.status

    def complete(self) -> None:
        self.state = RunState.COMPLETED
        self.ended_at = _now_iso()

    def abort(self, step: str, reason: str) -> None:
        self.state = RunState.ABORTED
        self.aborted_step = step
        self.abort_reason = reason
        self.ended_at = _now_iso()

    # ── Summary ──────────────────────────────────────────────────

    @property
    def aborted(self) -> bool:
        return self.state == RunState.ABORTED

    @property
    def exit_code(self) -> int:
        return 1 if self.aborted else 0

    def count(self, *outcomes: StepOutcome) -> int:
        return sum(1 for r in self.results if r.outcome in outcomes)

    @property
    def skipped(self) -> int:
        return self.count(StepOutcome.SKIPPED)

    @property
    def succeeded(self) -> int:
        return self.count(StepOutcome.SUCCEEDED, StepOutcome.SUCCEEDED_VIA_FALLBACK)

    @property
    def failed(self) -> int:
        return self.count(StepOutcome.FAILED_RECOVERABLE, StepOutcome.FAILED_FATAL)

    @property
    def not_started(self) -> list[str]:
        reached = {r.step for r in self.results}
        return [name for name in self.step_names if name not in reached]

    @property
    def last_diagnostic(self) -> str:
        """Diagnostic text of the step that ended the run (or the last failure)."""
        for r in reversed(self.results):
            if r.failed and r.diagnostic:
                return r.diagnostic
        return ""

    @property
    def status(self) -> str:
        if self.aborted:
            return "aborted"
        if self.failed:
            return "degraded"
        return "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "status": self.status,
            "dry_run": self.dry_run,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "total": len(self.step_names),
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "not_started": self.not_started,
            "aborted_step": self.aborted_step,
            "abort_reason": self.abort_reason,
            "results": [r.model_dump(mode="json") for r in self.results],
        }
