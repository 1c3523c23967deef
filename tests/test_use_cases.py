"""
Tests for the use cases — install orchestration, status and config check.
"""

import textwrap
from pathlib import Path

import pytest

from llmaura.adapters.mock import MockCommandRunner
from llmaura.core.models.run import RunState
from llmaura.core.persistence.audit import HistoryEntry, HistoryWriter
from llmaura.core.services.probes import ScriptedHostProbe
from llmaura.core.use_cases.config_check import check_config
from llmaura.core.use_cases.history import get_history
from llmaura.core.use_cases.install import run_install
from llmaura.core.use_cases.status import get_status
from llmaura.core.use_cases.steps import list_steps


@pytest.fixture
def config(tmp_path: Path, write_config) -> Path:
    return write_config(textwrap.dedent(f"""\
        platform: debian:12
        models: [tinyllama, phi]
        workspace_base: {tmp_path / "ws"}
        state_dir: {tmp_path / "state"}
    """))


def _ledger(tmp_path: Path) -> HistoryWriter:
    return HistoryWriter(state_dir=tmp_path / "state")


# ── Install ─────────────────────────────────────────────────────────


class TestRunInstall:
    def test_mock_mode(self, config, tmp_path):
        result = run_install(config, mock_mode=True)
        assert result.error is None
        assert result.exit_code == 0
        assert result.report.state == RunState.COMPLETED
        assert result.history_written is False
        assert _ledger(tmp_path).entry_count() == 0

    def test_dry_run_changes_nothing(self, config, tmp_path):
        runner = MockCommandRunner()
        probe = ScriptedHostProbe(runner)
        result = run_install(config, dry_run=True, runner=runner, probe=probe)

        assert runner.call_count == 0
        assert result.report.dry_run
        assert all(r.metadata.get("would_run") for r in result.report.results)
        assert not (tmp_path / "ws").exists()
        assert _ledger(tmp_path).entry_count() == 0

    def test_real_run_is_recorded(self, config, tmp_path, sleeper):
        runner = MockCommandRunner()
        probe = ScriptedHostProbe(runner, answers={"model_present:phi": False}, default=True)

        result = run_install(config, runner=runner, probe=probe, sleep=sleeper, geteuid=lambda: 0)

        assert result.exit_code == 0
        assert runner.lines() == ["ollama pull phi"]
        assert result.history_written
        entry = _ledger(tmp_path).read_all()[-1]
        assert entry.run_id == result.report.run_id
        assert entry.status == "ok"
        assert entry.platform == "debian 12"
        assert entry.steps_succeeded == 1

    def test_aborted_run_is_recorded(self, config, tmp_path, sleeper):
        runner = MockCommandRunner()
        runner.set_failure("systemctl enable --now ollama", "Failed to enable unit: Unit file ollama.service does not exist.")
        probe = ScriptedHostProbe(runner, answers={"service_active:ollama": False}, default=True)

        result = run_install(config, runner=runner, probe=probe, sleep=sleeper, geteuid=lambda: 0)

        assert result.exit_code == 1
        entry = _ledger(tmp_path).read_all()[-1]
        assert entry.status == "aborted"
        assert entry.aborted_step == "start-ollama"
        assert "does not exist" in entry.abort_reason
        assert "install-webui" in entry.context["not_started"]

    def test_not_root(self, config):
        runner = MockCommandRunner()
        result = run_install(config, runner=runner, geteuid=lambda: 1000)
        assert result.exit_code == 1
        assert "root" in result.error
        assert runner.call_count == 0

    def test_inconsistent_config_runs_nothing(self, write_config):
        path = write_config("platform: debian:12\ninstall_dir: /opt/x\nmodels_dir: /opt/x\n", name="same.yml")
        runner = MockCommandRunner()
        result = run_install(path, runner=runner, geteuid=lambda: 0)
        assert result.exit_code == 1
        assert "different directories" in result.error
        assert result.report is None
        assert runner.call_count == 0

    def test_unsupported_platform_runs_nothing(self, config):
        runner = MockCommandRunner()
        result = run_install(config, platform="debian:10", runner=runner, mock_mode=True)
        assert result.exit_code == 1
        assert "Unsupported platform" in result.error
        assert result.report is None
        assert runner.call_count == 0

    def test_to_dict(self, config):
        data = run_install(config, mock_mode=True).to_dict()
        assert data["platform"] == "debian 12"
        assert data["report"]["total"] == 16
        assert data["log"][0]["level"] == "INFO"


# ── Status / history / steps ────────────────────────────────────────


class TestStatus:
    def test_healthy_with_last_run(self, config, tmp_path, runner):
        _ledger(tmp_path).write(HistoryEntry(run_id="run-a", status="degraded"))
        _ledger(tmp_path).write(HistoryEntry(run_id="run-b", status="ok"))

        result = get_status(config, probe=ScriptedHostProbe(runner, default=True))

        assert result.health.status == "healthy"
        assert result.last_run.run_id == "run-b"
        assert result.to_dict()["platform"] == "debian 12"

    def test_not_installed(self, config, runner):
        result = get_status(config, probe=ScriptedHostProbe(runner))
        assert result.health.status == "unhealthy"
        assert result.last_run is None

    def test_bad_config(self, write_config):
        path = write_config("platform: debian\n", name="bad.yml")
        result = get_status(path)
        assert result.error
        assert result.to_dict() == {"error": result.error}


class TestHistoryAndSteps:
    def test_history(self, config, tmp_path):
        for i in range(4):
            _ledger(tmp_path).write(HistoryEntry(run_id=f"run-{i}"))
        result = get_history(config, n=3)
        assert result.total == 4
        assert [e.run_id for e in result.entries] == ["run-1", "run-2", "run-3"]

    def test_steps(self, config):
        result = list_steps(config)
        assert result.platform == "debian 12"
        install = next(s for s in result.steps if s.name == "install-webui")
        assert install.uses_workspace
        assert install.max_attempts == 2
        assert not install.has_fallback


# ── Config check ────────────────────────────────────────────────────


class TestCheckConfig:
    def test_valid(self, config):
        result = check_config(config)
        assert result.valid
        assert result.errors == []

    def test_warnings(self, tmp_path, write_config):
        path = write_config(textwrap.dedent("""\
            platform: debian:12
            models: []
            port_redirect: {external: 80, internal: 3000}
            webui_account_policy: dedicated
            webui_dedicated_user: ollama
        """))
        result = check_config(path)
        assert result.valid
        assert len(result.warnings) == 3

    def test_same_install_and_models_dir(self, write_config):
        path = write_config("platform: debian:12\ninstall_dir: /opt/x\nmodels_dir: /opt/x\n")
        result = check_config(path)
        assert not result.valid
        assert any("different directories" in e for e in result.errors)

    def test_platform_error(self, config):
        result = check_config(config, platform="centos:7")
        assert not result.valid
        assert "Unsupported platform" in result.errors[0]
