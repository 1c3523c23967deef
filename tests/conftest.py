"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from llmaura.adapters.mock import MockCommandRunner
from llmaura.core.engine.context import StepContext
from llmaura.core.models.run import RunLog
from llmaura.core.models.target import InstallationTarget, Platform
from llmaura.core.services.probes import ScriptedHostProbe


class SleepRecorder:
    """Stand-in for time.sleep that records the requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_target(tmp_path: Path, **overrides) -> InstallationTarget:
    """An InstallationTarget whose writable paths live under tmp_path."""
    values = {
        "platform": Platform.of("debian", "12"),
        "unit_dir": str(tmp_path / "units"),
        "ollama_unit_path": str(tmp_path / "units" / "ollama.service"),
        "models_dir": str(tmp_path / "models"),
        "install_dir": str(tmp_path / "openwebui"),
        "workspace_base": str(tmp_path / "workspaces"),
        "state_dir": str(tmp_path / "state"),
    }
    values.update(overrides)
    return InstallationTarget(**values)


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture(autouse=True)
def no_tmpdir(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test with TMPDIR unset."""
    monkeypatch.delenv("TMPDIR", raising=False)


@pytest.fixture
def target_factory(tmp_path: Path):
    """Build targets rooted in tmp_path with field overrides."""

    def _make(**overrides) -> InstallationTarget:
        return make_target(tmp_path, **overrides)

    return _make


@pytest.fixture
def target(tmp_path: Path) -> InstallationTarget:
    return make_target(tmp_path)


@pytest.fixture
def runner() -> MockCommandRunner:
    return MockCommandRunner()


@pytest.fixture
def probe(runner: MockCommandRunner) -> ScriptedHostProbe:
    """A fresh host: nothing installed, but daemons answer as soon as asked."""
    return ScriptedHostProbe(
        runner,
        answers={
            "http_reachable": True,
            "command_available:iptables-save": True,
            "command_available:ip6tables-save": True,
        },
    )


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def context_factory(runner: MockCommandRunner, probe: ScriptedHostProbe, sleeper: SleepRecorder):
    """Build a StepContext for a given target, sharing the mock collaborators."""

    def _make(target: InstallationTarget) -> StepContext:
        return StepContext(
            target=target,
            runner=runner,
            probe=probe,
            run_log=RunLog(forward=False),
            sleep=sleeper,
            chown_workspaces=False,
        )

    return _make


@pytest.fixture
def context(target: InstallationTarget, context_factory) -> StepContext:
    return context_factory(target)


@pytest.fixture
def write_config(tmp_path: Path):
    """Write an llmaura.yml into tmp_path and return its path."""

    def _write(content: str, name: str = "llmaura.yml") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
