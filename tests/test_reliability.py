"""
Tests for reliability primitives — failure classification, bounded
retry and bounded polling.
"""

import pytest

from llmaura.core.models.result import CommandResult
from llmaura.core.models.run import LogLevel, RunLog
from llmaura.core.models.step import Criticality, RetryPolicy, StepOutcome
from llmaura.core.reliability.error_patterns import (
    Classification,
    ErrorKind,
    always_retry,
    classify_failure,
    match_error_kind,
)
from llmaura.core.reliability.polling import wait_until
from llmaura.core.reliability.retry import execute_with_retry

# ── Error patterns ──────────────────────────────────────────────────


class TestErrorPatterns:
    @pytest.mark.parametrize("text,kind", [
        ("E: Unable to locate package python3-fulll", ErrorKind.MISSING_PACKAGE),
        ("Error: Unable to find a match: openblas-devl", ErrorKind.MISSING_PACKAGE),
        ("ERROR: No matching distribution found for open-webui", ErrorKind.MISSING_PACKAGE),
        ("write /opt/models/blobs: no space left on device", ErrorKind.DISK_FULL),
        ("E: Could not get lock /var/lib/dpkg/lock-frontend", ErrorKind.PACKAGE_LOCK),
        ("mkdir: cannot create directory '/opt': Permission denied", ErrorKind.PERMISSION_DENIED),
        ("curl: (6) Could not resolve host: ollama.com", ErrorKind.NETWORK),
        ("Error: pull model manifest: file does not exist", ErrorKind.NETWORK),
        ("Command timed out after 300s", ErrorKind.TIMEOUT),
        ("something odd happened", ErrorKind.UNKNOWN),
        ("", ErrorKind.UNKNOWN),
    ])
    def test_match_error_kind(self, text, kind):
        assert match_error_kind(text) == kind

    def test_disk_full_wins_over_later_rows(self):
        text = "Permission denied\nNo space left on device"
        assert match_error_kind(text) == ErrorKind.DISK_FULL

    def test_terminal_kinds(self):
        result = CommandResult(exit_code=100, stderr="E: Unable to locate package foo")
        assert classify_failure(result) == Classification.TERMINAL

    def test_unknown_failures_are_retryable(self):
        result = CommandResult(exit_code=1, stderr="segfault in foo")
        assert classify_failure(result) == Classification.RETRYABLE

    def test_always_retry(self):
        result = CommandResult(exit_code=1, stderr="no space left on device")
        assert always_retry(result) == Classification.RETRYABLE


# ── Retry execution ─────────────────────────────────────────────────


class _Script:
    """Action returning scripted results in order."""

    def __init__(self, *results):
        self._results = list(results)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        item = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(item, Exception):
            raise item
        return item


OK = CommandResult(command="x", exit_code=0, stdout="done")
FLAKY = CommandResult(command="x", exit_code=1, stderr="Could not resolve host: example.com")
MISSING = CommandResult(command="x", exit_code=100, stderr="E: Unable to locate package foo")


class TestExecuteWithRetry:
    def _run(self, action, policy, criticality=Criticality.ABORT, sleeper=None):
        log = RunLog(forward=False)
        result = execute_with_retry(
            action, policy, criticality,
            name="demo", run_log=log, sleep=sleeper or (lambda s: None),
        )
        return result, log

    def test_first_attempt_success(self, sleeper):
        action = _Script(OK)
        result, _ = self._run(action, RetryPolicy(max_attempts=3, delay=5), sleeper=sleeper)
        assert result.outcome == StepOutcome.SUCCEEDED
        assert result.attempts == 1
        assert sleeper.calls == []

    def test_retryable_failure_then_success(self, sleeper):
        action = _Script(FLAKY, FLAKY, OK)
        result, log = self._run(action, RetryPolicy(max_attempts=3, delay=10), sleeper=sleeper)
        assert result.outcome == StepOutcome.SUCCEEDED
        assert result.attempts == 3
        assert sleeper.calls == [10, 10]
        assert len(log.at_least(LogLevel.WARNING)) == 2

    def test_attempts_are_bounded(self, sleeper):
        action = _Script(FLAKY)
        result, log = self._run(action, RetryPolicy(max_attempts=3, delay=10), sleeper=sleeper)
        assert action.calls == 3
        assert result.attempts == 3
        assert result.outcome == StepOutcome.FAILED_FATAL
        assert result.error_kind == "network"
        assert sleeper.calls == [10, 10]
        assert "attempts exhausted" in log.entries[-1].message

    def test_terminal_failure_stops_immediately(self, sleeper):
        action = _Script(MISSING)
        result, log = self._run(action, RetryPolicy(max_attempts=5, delay=10), sleeper=sleeper)
        assert action.calls == 1
        assert result.attempts == 1
        assert result.metadata["classification"] == "terminal"
        assert result.error_kind == "missing_package"
        assert sleeper.calls == []
        assert "Unable to locate package" in result.diagnostic

    def test_warn_criticality_is_recoverable(self):
        result, _ = self._run(_Script(MISSING), RetryPolicy(), Criticality.WARN)
        assert result.outcome == StepOutcome.FAILED_RECOVERABLE

    def test_exception_counts_as_failed_attempt(self, sleeper):
        action = _Script(RuntimeError("probe exploded"), OK)
        result, _ = self._run(action, RetryPolicy(max_attempts=2, delay=1), sleeper=sleeper)
        assert result.outcome == StepOutcome.SUCCEEDED
        assert result.attempts == 2

    def test_exception_text_in_diagnostic(self):
        result, _ = self._run(_Script(KeyError("missing")), RetryPolicy())
        assert result.failed
        assert "KeyError" in result.diagnostic

    def test_custom_classifier(self, sleeper):
        policy = RetryPolicy(max_attempts=2, delay=3, classifier=always_retry)
        action = _Script(MISSING)
        self._run(action, policy, sleeper=sleeper)
        assert action.calls == 2

    def test_zero_delay_does_not_sleep(self, sleeper):
        self._run(_Script(FLAKY), RetryPolicy(max_attempts=3), sleeper=sleeper)
        assert sleeper.calls == []


# ── Polling ─────────────────────────────────────────────────────────


class TestWaitUntil:
    def test_ready_immediately(self, sleeper):
        assert wait_until(lambda: True, 5, 1.0, sleep=sleeper)
        assert sleeper.calls == []

    def test_ready_after_some_probes(self, sleeper):
        answers = iter([False, False, True])
        assert wait_until(lambda: next(answers), 5, 2.0, sleep=sleeper)
        assert sleeper.calls == [2.0, 2.0]

    def test_gives_up_after_bound(self, sleeper):
        waited = []
        ready = wait_until(lambda: False, 4, 1.0, sleep=sleeper, on_wait=waited.append)
        assert not ready
        assert waited == [1, 2, 3, 4]
        # no sleep after the last probe
        assert sleeper.calls == [1.0, 1.0, 1.0]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            wait_until(lambda: True, 0, 1.0)
