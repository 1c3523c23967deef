"""
Retry policy execution — bounded attempts with a fixed delay.

Every attempt's outcome is written to the run log. A failure is
classified by the policy's classifier (by default the pattern table in
``error_patterns``): TERMINAL stops immediately, RETRYABLE waits
``policy.delay`` seconds and tries again until ``max_attempts`` is
used up.

Batches are not retried as a whole. Callers that handle several items
(one download per model, say) run each item through its own call so
one item's failure never hides another item's success.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from llmaura.core.models.result import CommandResult
from llmaura.core.models.run import RunLog
from llmaura.core.models.step import Criticality, RetryPolicy, StepOutcome, StepResult
from llmaura.core.reliability.error_patterns import Classification, match_error_kind

logger = logging.getLogger(__name__)


def execute_with_retry(
    action: Callable[[], CommandResult],
    policy: RetryPolicy,
    criticality: Criticality,
    *,
    name: str,
    run_log: RunLog,
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> StepResult:
    """Run ``action`` under ``policy`` and fold the attempts into a StepResult.

    Args:
        action: Zero-argument callable returning a CommandResult.
            Exceptions it raises count as failed attempts.
        policy: Attempt bound, delay and classifier.
        criticality: Decides between FAILED_FATAL and FAILED_RECOVERABLE.
        name: Step name, used to tag log entries.
        run_log: Where attempt outcomes are recorded.
        label: Optional qualifier for log lines (e.g. 'fallback').
        sleep: Injected for tests.

    Returns:
        StepResult with outcome SUCCEEDED, FAILED_RECOVERABLE or FAILED_FATAL.
    """
    what = f"{label} action" if label else "action"
    start = time.monotonic()
    result = CommandResult.failure(error="action never ran")
    classification = Classification.RETRYABLE
    attempt = 0

    for attempt in range(1, policy.max_attempts + 1):
        result = _invoke(action)

        if result.ok:
            run_log.info(f"{what} succeeded (attempt {attempt}/{policy.max_attempts})", step=name)
            return StepResult(
                step=name,
                outcome=StepOutcome.SUCCEEDED,
                diagnostic=result.diagnostic,
                exit_code=result.exit_code,
                attempts=attempt,
                duration_ms=_elapsed_ms(start),
            )

        classification = policy.classifier(result)
        kind = match_error_kind(result.combined_output)
        remaining = policy.max_attempts - attempt

        if classification == Classification.TERMINAL:
            run_log.error(
                f"{what} failed (attempt {attempt}/{policy.max_attempts}, {kind.value}, terminal): "
                f"{_first_line(result)}",
                step=name,
            )
            break

        if remaining == 0:
            run_log.error(
                f"{what} failed (attempt {attempt}/{policy.max_attempts}, {kind.value}), "
                f"attempts exhausted: {_first_line(result)}",
                step=name,
            )
            break

        run_log.warning(
            f"{what} failed (attempt {attempt}/{policy.max_attempts}, {kind.value}), "
            f"retrying in {policy.delay:g}s: {_first_line(result)}",
            step=name,
        )
        if policy.delay > 0:
            sleep(policy.delay)

    outcome = (
        StepOutcome.FAILED_FATAL
        if criticality == Criticality.ABORT
        else StepOutcome.FAILED_RECOVERABLE
    )
    return StepResult(
        step=name,
        outcome=outcome,
        diagnostic=result.diagnostic,
        exit_code=result.exit_code,
        attempts=attempt,
        error_kind=match_error_kind(result.combined_output).value,
        duration_ms=_elapsed_ms(start),
        metadata={"classification": classification.value},
    )


def _invoke(action: Callable[[], CommandResult]) -> CommandResult:
    """Call the action; an exception becomes a failed result."""
    try:
        return action()
    except Exception as e:
        logger.debug("Action raised", exc_info=True)
        return CommandResult.failure(error=f"{type(e).__name__}: {e}")


def _first_line(result: CommandResult) -> str:
    """One line summing up a failure: the error, else the last output line."""
    if result.error:
        return result.error.strip().splitlines()[0]
    text = (result.stderr or result.stdout or "").strip()
    if not text:
        return f"exit {result.exit_code}"
    return text.splitlines()[-1]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
