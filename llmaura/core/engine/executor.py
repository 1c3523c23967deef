"""
Engine executor — the step sequencer.

The engine runs an ordered list of steps, strictly one after another,
because later steps depend on users, directories and services created
by earlier ones.

Per step:
    precondition satisfied?  → SKIPPED
    primary action (retry policy)
    failed and has fallback? → fallback action (its own retry policy)
    record StepResult
    failed + ABORT           → stop the run, later steps never start
    failed + WARN            → warning, continue

Run states:
    RUNNING → COMPLETED | ABORTED(step, reason)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime

from llmaura.core.engine.context import StepContext
from llmaura.core.engine.workspace import (
    RunInterrupted,
    TemporaryWorkspace,
    WorkspaceError,
    interruption_guard,
)
from llmaura.core.models.run import RunReport
from llmaura.core.models.step import Criticality, Step, StepOutcome, StepResult
from llmaura.core.reliability.retry import execute_with_retry

logger = logging.getLogger(__name__)


def validate_steps(steps: Sequence[Step]) -> None:
    """Reject workflows with duplicate step names."""
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate step name: {step.name}")
        seen.add(step.name)


def run_workflow(
    steps: Sequence[Step],
    context: StepContext,
    dry_run: bool = False,
) -> RunReport:
    """Run ``steps`` in order and return the report.

    Args:
        steps: The ordered workflow definition.
        context: Target, runner, probe and run log for this run.
        dry_run: If True, evaluate preconditions but run no actions.

    Returns:
        RunReport in state COMPLETED or ABORTED. Never raises for step
        failures or interruption signals.
    """
    validate_steps(steps)
    log = context.run_log
    report = RunReport(dry_run=dry_run, step_names=[s.name for s in steps])

    mode = " [dry-run]" if dry_run else ""
    log.info(
        f"Run {report.run_id}{mode}: {len(steps)} steps on "
        f"{context.target.platform.label}"
    )

    current: Step | None = None
    try:
        with interruption_guard():
            for step in steps:
                current = step
                result = run_step(step, context, dry_run=dry_run)
                report.add(result)

                if result.fatal:
                    reason = result.diagnostic or "step failed"
                    log.critical(f"Aborting run: step '{step.name}' failed", step=step.name)
                    report.abort(step.name, reason)
                    return report

                if result.failed:
                    log.warning("Step failed; continuing with the next step", step=step.name)

    except RunInterrupted as e:
        name = current.name if current else "<none>"
        if current is not None and report.result_for(name) is None:
            report.add(StepResult(step=name, outcome=StepOutcome.FAILED_FATAL, diagnostic=str(e)))
        log.critical(f"Run {e}; stopping", step=name if current else None)
        report.abort(name, str(e))
        return report

    report.complete()
    log.info(
        f"Run {report.run_id} completed: {report.succeeded} succeeded, "
        f"{report.skipped} skipped, {report.failed} failed"
    )
    return report


def run_step(step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
    """Run one step through precondition, primary action and fallback."""
    log = context.run_log
    start = time.monotonic()
    started_at = _now_iso()

    log.info(f"Running: {step.description or step.name}", step=step.name)

    # ── Precondition ─────────────────────────────────────────────
    if _precondition_holds(step, context):
        log.info("Already in the desired state; skipping", step=step.name)
        return StepResult(
            step=step.name,
            outcome=StepOutcome.SKIPPED,
            started_at=started_at,
            duration_ms=_elapsed_ms(start),
        )

    if dry_run:
        log.info("Would run (dry run)", step=step.name)
        return StepResult(
            step=step.name,
            outcome=StepOutcome.SKIPPED,
            started_at=started_at,
            duration_ms=_elapsed_ms(start),
            metadata={"dry_run": True, "would_run": True},
        )

    # ── Actions ──────────────────────────────────────────────────
    workspace: TemporaryWorkspace | None = None
    try:
        if step.uses_workspace:
            workspace = TemporaryWorkspace(
                context.target.workspace_base,
                owner=step.workspace_owner if context.chown_workspaces else None,
                group=step.workspace_group if context.chown_workspaces else None,
            )
            workspace.acquire()
            context.workspace = workspace

        result = execute_with_retry(
            lambda: step.action(context),
            step.retry,
            step.criticality,
            name=step.name,
            run_log=log,
            sleep=context.sleep,
        )

        if result.failed and step.fallback is not None:
            result = _run_fallback(step, context, result)

    except WorkspaceError as e:
        log.error(f"Cannot prepare workspace: {e}", step=step.name)
        result = StepResult(
            step=step.name,
            outcome=_failed_outcome(step.criticality),
            diagnostic=str(e),
        )
    finally:
        if workspace is not None:
            workspace.release()
            context.workspace = None

    result = result.model_copy(
        update={
            "started_at": started_at,
            "ended_at": _now_iso(),
            "duration_ms": _elapsed_ms(start),
        }
    )
    _log_outcome(step, result, context)
    return result


def _precondition_holds(step: Step, context: StepContext) -> bool:
    if step.precondition is None:
        return False
    try:
        return bool(step.precondition(context))
    except Exception as e:
        # An unanswerable check must never skip a step
        context.run_log.warning(
            f"Precondition check failed ({type(e).__name__}: {e}); running the step",
            step=step.name,
        )
        return False


def _run_fallback(step: Step, context: StepContext, primary: StepResult) -> StepResult:
    log = context.run_log
    fallback = step.fallback
    assert fallback is not None

    log.warning("Primary action failed; trying fallback action", step=step.name)
    result = execute_with_retry(
        lambda: fallback(context),
        step.fallback_retry,
        step.criticality,
        name=step.name,
        run_log=log,
        label="fallback",
        sleep=context.sleep,
    )
    attempts = primary.attempts + result.attempts

    if result.ok:
        return result.model_copy(
            update={
                "outcome": StepOutcome.SUCCEEDED_VIA_FALLBACK,
                "attempts": attempts,
                "metadata": {**result.metadata, "primary_diagnostic": primary.diagnostic},
            }
        )

    diagnostic = "\n".join(
        part for part in (
            "primary action:", primary.diagnostic, "fallback action:", result.diagnostic,
        ) if part
    )
    return result.model_copy(update={"attempts": attempts, "diagnostic": diagnostic})


def _log_outcome(step: Step, result: StepResult, context: StepContext) -> None:
    log = context.run_log
    if result.outcome == StepOutcome.SUCCEEDED:
        log.info(f"Succeeded ({result.duration_ms}ms)", step=step.name)
    elif result.outcome == StepOutcome.SUCCEEDED_VIA_FALLBACK:
        log.warning(f"Succeeded via fallback ({result.duration_ms}ms)", step=step.name)
    elif result.outcome == StepOutcome.FAILED_RECOVERABLE:
        log.warning(f"Failed after {result.attempts} attempt(s)", step=step.name)
    elif result.outcome == StepOutcome.FAILED_FATAL:
        log.error(f"Failed after {result.attempts} attempt(s)", step=step.name)


def _failed_outcome(criticality: Criticality) -> StepOutcome:
    if criticality == Criticality.ABORT:
        return StepOutcome.FAILED_FATAL
    return StepOutcome.FAILED_RECOVERABLE


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
