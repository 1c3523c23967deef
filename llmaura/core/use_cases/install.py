"""
Install use case — provision Ollama and Open WebUI on this host.

This is the top-level orchestrator: it loads the target, checks
privileges, builds the workflow, runs it, and records the run in the
history ledger. The full vertical slice from user intent to audited
execution.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from llmaura.adapters.base import CommandRunner
from llmaura.adapters.mock import MockCommandRunner
from llmaura.adapters.shell.command import ShellCommandRunner
from llmaura.core.config.loader import ConfigError, load_target, require_root
from llmaura.core.engine.context import StepContext
from llmaura.core.engine.executor import run_workflow
from llmaura.core.models.run import RunLog, RunReport
from llmaura.core.models.target import InstallationTarget, UnsupportedPlatformError
from llmaura.core.persistence.audit import HistoryEntry, HistoryWriter
from llmaura.core.services.probes import HostProbe, ScriptedHostProbe
from llmaura.core.services.workflow import build_workflow

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    """Result of an install run."""

    report: RunReport | None = None
    target: InstallationTarget | None = None
    run_log: RunLog = field(default_factory=lambda: RunLog(forward=False))
    history_written: bool = False
    dry_run: bool = False
    mock: bool = False
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error or self.report is None:
            return 1
        return self.report.exit_code

    def to_dict(self) -> dict:
        result: dict = {"dry_run": self.dry_run, "mock": self.mock}
        if self.error:
            result["error"] = self.error
            return result

        if self.target:
            result["platform"] = self.target.platform.label
        if self.report:
            result["report"] = self.report.to_dict()
        result["history_written"] = self.history_written
        result["log"] = self.run_log.to_list()
        return result


def mock_probe(runner: CommandRunner) -> ScriptedHostProbe:
    """Probe for ``--mock`` runs: a fresh host whose daemons answer at once."""
    return ScriptedHostProbe(
        runner,
        answers={
            "http_reachable": True,
            "command_available:iptables-save": True,
            "command_available:ip6tables-save": True,
        },
    )


def run_install(
    config_path: Path | None = None,
    platform: str | None = None,
    dry_run: bool = False,
    mock_mode: bool = False,
    runner: CommandRunner | None = None,
    probe: HostProbe | None = None,
    sleep: Callable[[float], None] | None = None,
    geteuid: Callable[[], int] | None = None,
) -> InstallResult:
    """Provision the host described by the configuration.

    Args:
        config_path: Optional explicit path to llmaura.yml.
        platform: Optional ``distro:version`` override.
        dry_run: If True, report what would run without changing anything.
        mock_mode: If True, run every step against a scripted runner.
        runner: Optional pre-configured command runner.
        probe: Optional pre-configured host probe.
        sleep: Optional sleep function (retry delays and polling).
        geteuid: Optional effective-uid function for the root check.

    Returns:
        InstallResult with the run report, or an error when the run
        could not start.
    """
    result = InstallResult(dry_run=dry_run, mock=mock_mode)

    # ── Load target ──────────────────────────────────────────────
    try:
        target = load_target(config_path, platform_override=platform)
        result.target = target
        if not (dry_run or mock_mode):
            require_root(geteuid)
    except (ConfigError, UnsupportedPlatformError) as e:
        result.error = str(e)
        return result

    # ── Set up collaborators ─────────────────────────────────────
    if runner is None:
        runner = MockCommandRunner() if mock_mode else ShellCommandRunner()
    if probe is None:
        probe = mock_probe(runner) if mock_mode else HostProbe(runner)
    if sleep is None:
        sleep = (lambda _seconds: None) if mock_mode else time.sleep

    run_log = RunLog()
    result.run_log = run_log
    context = StepContext(
        target=target,
        runner=runner,
        probe=probe,
        run_log=run_log,
        sleep=sleep,
        chown_workspaces=not mock_mode,
    )

    # ── Execute ──────────────────────────────────────────────────
    steps = build_workflow(target)
    start = time.monotonic()
    report = run_workflow(steps, context, dry_run=dry_run)
    result.report = report

    # ── Write history ────────────────────────────────────────────
    if not (dry_run or mock_mode):
        writer = HistoryWriter(Path(target.history_path))
        entry = HistoryEntry.from_report(
            report,
            platform=target.platform.label,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        result.history_written = writer.write(entry)

    return result
