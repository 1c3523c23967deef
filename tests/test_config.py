"""
Tests for the config loader — llmaura.yml, platform detection and the
root check.
"""

from pathlib import Path

import pytest

from llmaura.core.config.loader import (
    ConfigError,
    NotRootError,
    detect_platform,
    find_config_file,
    load_config_data,
    load_target,
    read_os_release,
    require_root,
)
from llmaura.core.models.target import Platform, UnsupportedPlatformError, WebUIAccountPolicy

DEBIAN_12 = """\
PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"
NAME="Debian GNU/Linux"
VERSION_ID="12"
ID=debian
"""


@pytest.fixture
def os_release(tmp_path):
    def _write(text: str) -> Path:
        path = tmp_path / "os-release"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


# ── Config file ─────────────────────────────────────────────────────


class TestFindConfigFile:
    def test_prefers_working_directory(self, tmp_path, write_config):
        write_config("models: [phi]\n")
        system = tmp_path / "etc.yml"
        system.write_text("models: []\n")
        assert find_config_file(tmp_path, system_path=system) == tmp_path / "llmaura.yml"

    def test_falls_back_to_system_path(self, tmp_path):
        system = tmp_path / "etc.yml"
        system.write_text("models: []\n")
        assert find_config_file(tmp_path, system_path=system) == system

    def test_none_when_absent(self, tmp_path):
        assert find_config_file(tmp_path, system_path=tmp_path / "nope.yml") is None


class TestLoadConfigData:
    def test_flat(self, write_config):
        assert load_config_data(write_config("models: [phi]\n")) == {"models": ["phi"]}

    def test_wrapped(self, write_config):
        path = write_config("llmaura:\n  install_dir: /srv/webui\n")
        assert load_config_data(path) == {"install_dir": "/srv/webui"}

    def test_empty_file(self, write_config):
        assert load_config_data(write_config("")) == {}

    def test_not_a_mapping(self, write_config):
        with pytest.raises(ConfigError, match="mapping"):
            load_config_data(write_config("- a\n- b\n"))

    def test_invalid_yaml(self, write_config):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config_data(write_config("models: [phi\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_data(tmp_path / "missing.yml")


# ── Platform detection ──────────────────────────────────────────────


class TestDetectPlatform:
    def test_reads_os_release(self, os_release):
        fields = read_os_release(os_release(DEBIAN_12))
        assert fields["ID"] == "debian"
        assert fields["VERSION_ID"] == "12"
        assert fields["NAME"] == "Debian GNU/Linux"

    def test_debian(self, os_release):
        assert detect_platform(os_release(DEBIAN_12)) == Platform.of("debian", "12")

    def test_point_release_reduced_to_major(self, os_release):
        path = os_release('ID="rocky"\nVERSION_ID="9.3"\n')
        assert detect_platform(path) == Platform.of("rocky", "9")

    def test_ubuntu_keeps_point_version(self, os_release):
        path = os_release("ID=ubuntu\nVERSION_ID=\"22.04\"\n")
        assert detect_platform(path).version == "22.04"

    def test_unsupported(self, os_release):
        with pytest.raises(UnsupportedPlatformError):
            detect_platform(os_release("ID=arch\nVERSION_ID=rolling\n"))

    def test_incomplete_os_release(self, os_release):
        with pytest.raises(ConfigError, match="ID and VERSION_ID"):
            detect_platform(os_release("NAME=Something\n"))

    def test_missing_os_release(self, tmp_path):
        with pytest.raises(ConfigError):
            detect_platform(tmp_path / "missing")


# ── Target ──────────────────────────────────────────────────────────


class TestLoadTarget:
    def test_file_values(self, write_config, os_release):
        path = write_config(
            "models: [phi, gemma:2b]\n"
            "install_dir: /srv/openwebui\n"
            "webui_account_policy: dedicated\n"
            "port_redirect:\n"
            "  external: 8081\n"
            "  internal: 3000\n"
        )
        target = load_target(path, os_release=os_release(DEBIAN_12))
        assert target.models == ("phi", "gemma:2b")
        assert target.install_dir == "/srv/openwebui"
        assert target.webui_account_policy == WebUIAccountPolicy.DEDICATED
        assert target.port_redirect.internal == 3000
        assert target.platform.label == "debian 12"

    def test_platform_precedence(self, write_config, os_release):
        path = write_config("platform: ubuntu:24.04\n")
        release = os_release(DEBIAN_12)

        assert load_target(path, os_release=release).platform.label == "ubuntu 24.04"
        assert load_target(path, "fedora:40", os_release=release).platform.label == "fedora 40"

    def test_platform_mapping(self, write_config, os_release):
        path = write_config("platform:\n  distro: almalinux\n  version: 9\n")
        assert load_target(path, os_release=os_release(DEBIAN_12)).platform.distro == "almalinux"

    def test_platform_mapping_incomplete(self, write_config, os_release):
        path = write_config("platform:\n  distro: debian\n")
        with pytest.raises(ConfigError, match="distro"):
            load_target(path, os_release=os_release(DEBIAN_12))

    def test_unsupported_platform_propagates(self, write_config):
        path = write_config("models: []\n")
        with pytest.raises(UnsupportedPlatformError):
            load_target(path, "debian:10")

    def test_validation_error_becomes_config_error(self, write_config, os_release):
        path = write_config("models: [phi, phi]\n")
        with pytest.raises(ConfigError, match="Duplicate model"):
            load_target(path, os_release=os_release(DEBIAN_12))

    def test_unknown_key_rejected(self, write_config, os_release):
        path = write_config("instal_dir: /srv\n")
        with pytest.raises(ConfigError, match="instal_dir"):
            load_target(path, os_release=os_release(DEBIAN_12))

    def test_defaults_without_file(self, tmp_path, monkeypatch, os_release):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(
            "llmaura.core.config.loader.SYSTEM_CONFIG", tmp_path / "absent.yml",
        )
        release = os_release(DEBIAN_12)
        target = load_target(os_release=release)
        assert target.models_dir == "/opt/models"


# ── Root check ──────────────────────────────────────────────────────


class TestRequireRoot:
    def test_root(self):
        require_root(lambda: 0)

    def test_not_root(self):
        with pytest.raises(NotRootError, match="--dry-run"):
            require_root(lambda: 1000)

    def test_not_root_is_config_error(self):
        assert issubclass(NotRootError, ConfigError)
