"""
Step models — the unit of provisioning work and its outcome.

A Step is defined once, when the workflow is built, and never changes
during a run. The sequencer produces exactly one StepResult per step
that it reaches.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from llmaura.core.models.result import CommandResult
from llmaura.core.reliability.error_patterns import Classification, classify_failure

if TYPE_CHECKING:
    from llmaura.core.engine.context import StepContext


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Criticality(StrEnum):
    """What a failed step does to the rest of the run."""

    ABORT = "abort"    # stop the whole run
    WARN = "warn"      # log a warning and continue


class StepStatus(StrEnum):
    """Lifecycle of a step within one run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StepOutcome(StrEnum):
    """Final outcome recorded for a step."""

    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    SUCCEEDED_VIA_FALLBACK = "succeeded_via_fallback"
    FAILED_RECOVERABLE = "failed_recoverable"
    FAILED_FATAL = "failed_fatal"

    @property
    def status(self) -> StepStatus:
        """Collapse the outcome into the lifecycle state machine."""
        if self is StepOutcome.SKIPPED:
            return StepStatus.SKIPPED
        if self in (StepOutcome.SUCCEEDED, StepOutcome.SUCCEEDED_VIA_FALLBACK):
            return StepStatus.SUCCEEDED
        return StepStatus.FAILED


Classifier = Callable[[CommandResult], Classification]
Predicate = Callable[["StepContext"], bool]
StepAction = Callable[["StepContext"], CommandResult]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with a fixed delay between attempts.

    Args:
        max_attempts: Total attempts, including the first one.
        delay: Seconds to wait before each retry.
        classifier: Maps a failed result to RETRYABLE or TERMINAL.
    """

    max_attempts: int = 1
    delay: float = 0.0
    classifier: Classifier = classify_failure

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")


NO_RETRY = RetryPolicy()


@dataclass(frozen=True)
class Step:
    """A named unit of provisioning work.

    ``precondition`` returns True when the step's end state already
    holds, in which case the step is skipped. It must only return True
    on full confirmation of that end state.
    """

    name: str
    action: StepAction
    description: str = ""
    precondition: Predicate | None = None
    fallback: StepAction | None = None
    retry: RetryPolicy = NO_RETRY
    fallback_retry: RetryPolicy = NO_RETRY
    criticality: Criticality = Criticality.ABORT
    uses_workspace: bool = False
    workspace_owner: str | None = None
    workspace_group: str | None = None

    @property
    def aborts_on_failure(self) -> bool:
        return self.criticality == Criticality.ABORT


class StepResult(BaseModel):
    """What happened to one step in one run."""

    step: str
    outcome: StepOutcome
    diagnostic: str = ""
    exit_code: int | None = None
    attempts: int = 0
    error_kind: str | None = None

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def status(self) -> StepStatus:
        return self.outcome.status

    @property
    def ok(self) -> bool:
        return self.status in (StepStatus.SKIPPED, StepStatus.SUCCEEDED)

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILED

    @property
    def fatal(self) -> bool:
        return self.outcome == StepOutcome.FAILED_FATAL
