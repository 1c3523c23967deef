"""
Tests for CLI commands — install, steps, status, history, config check.

Every install here runs with --mock, so nothing touches the host apart
from workspace directories under tmp_path.
"""

import json
import logging
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from llmaura.core.persistence.audit import HistoryEntry, HistoryWriter
from llmaura.main import cli


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config(tmp_path: Path) -> Path:
    content = textwrap.dedent(f"""\
        platform: debian:12
        models: [tinyllama, phi]
        workspace_base: {tmp_path / "ws"}
        state_dir: {tmp_path / "state"}
    """)
    path = tmp_path / "llmaura.yml"
    path.write_text(content)
    return path


def invoke(*args: str):
    return CliRunner().invoke(cli, list(args))


class TestInstallCommand:
    def test_mock_install(self, config, tmp_path):
        result = invoke("--config", str(config), "install", "--mock")
        assert result.exit_code == 0, result.output
        assert "✅ Done" in result.output
        assert "pull-model:phi" in result.output
        # mock runs leave no ledger entry and no workspace behind
        assert not (tmp_path / "state" / "history.ndjson").exists()
        assert list((tmp_path / "ws").iterdir()) == []

    def test_mock_install_json(self, config):
        result = invoke("--config", str(config), "install", "--mock", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["mock"] is True
        assert data["platform"] == "debian 12"
        assert data["report"]["state"] == "completed"
        assert data["report"]["total"] == 16
        assert data["history_written"] is False

    def test_platform_flag_overrides_file(self, config):
        result = invoke("--config", str(config), "install", "--mock", "--platform", "rocky:9", "--json")
        data = json.loads(result.stdout)
        assert data["platform"] == "rocky 9"

    def test_unsupported_platform(self, config):
        result = invoke("--config", str(config), "install", "--mock", "--platform", "arch:2024")
        assert result.exit_code == 1
        assert "Unsupported platform" in result.output

    def test_requires_root(self, config, monkeypatch):
        monkeypatch.setattr("os.geteuid", lambda: 1000)
        result = invoke("--config", str(config), "install")
        assert result.exit_code == 1
        assert "must be run as root" in result.output

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("models: [phi, phi]\nplatform: debian:12\n")
        result = invoke("--config", str(path), "install", "--mock")
        assert result.exit_code == 1
        assert "Duplicate model" in result.output


class TestStepsCommand:
    def test_lists_steps(self, config):
        result = invoke("--config", str(config), "steps")
        assert result.exit_code == 0
        assert "Workflow for debian 12" in result.output
        assert "install-ollama" in result.output
        assert "preseed-firewall-persistence" in result.output
        assert "5x/15s" in result.output

    def test_json(self, config):
        result = invoke("--config", str(config), "steps", "--platform", "fedora:40", "--json")
        data = json.loads(result.stdout)
        names = [s["name"] for s in data["steps"]]
        assert data["platform"] == "fedora 40"
        assert "preseed-firewall-persistence" not in names
        assert names[0] == "install-ollama"


class TestHistoryCommand:
    def test_empty(self, config):
        result = invoke("--config", str(config), "history")
        assert result.exit_code == 0
        assert "No runs recorded yet" in result.output

    def test_json(self, config, tmp_path):
        writer = HistoryWriter(state_dir=tmp_path / "state")
        for i in range(3):
            writer.write(HistoryEntry(run_id=f"run-{i}", status="ok"))

        result = invoke("--config", str(config), "history", "-n", "2", "--json")
        data = json.loads(result.stdout)
        assert data["total"] == 3
        assert [e["run_id"] for e in data["entries"]] == ["run-1", "run-2"]

    def test_table(self, config, tmp_path):
        HistoryWriter(state_dir=tmp_path / "state").write(
            HistoryEntry(run_id="run-x", status="aborted", aborted_step="install-prerequisites"),
        )
        result = invoke("--config", str(config), "history")
        assert "run-x" in result.output
        assert "stopped at install-prerequisites" in result.output


class TestConfigCheckCommand:
    def test_valid(self, config):
        result = invoke("--config", str(config), "config", "check")
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "tinyllama, phi" in result.output

    def test_invalid(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("platform: debian:12\nlegacy_redirect_ports: [80]\n")
        result = invoke("--config", str(path), "config", "check")
        assert result.exit_code == 1
        assert "Legacy redirect port 80" in result.output

    def test_json(self, config):
        result = invoke("--config", str(config), "config", "check", "--json")
        data = json.loads(result.stdout)
        assert data["valid"] is True
        assert data["models"] == ["tinyllama", "phi"]
        assert data["webui_user"] == "ollama"


class TestGlobalOptions:
    def test_debug_flag(self, config):
        result = invoke("--debug", "--config", str(config), "steps")
        assert result.exit_code == 0
        assert logging.getLogger().level == logging.DEBUG

    def test_quiet_install_hides_table(self, config):
        result = invoke("--quiet", "--config", str(config), "install", "--mock")
        assert result.exit_code == 0
        assert "install-ollama" not in result.stdout
        assert "✅ Done" in result.stdout
