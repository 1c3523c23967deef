"""
InstallationTarget — where, and as whom, everything gets installed.

The descriptor is loaded once at the start of a run and never mutated.
Paths, service identity, the model list and the port mapping all
live here and are passed explicitly to the workflow.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class UnsupportedPlatformError(ValueError):
    """Raised at load time when the distro/version pair is not supported."""


class PackageFamily(StrEnum):
    """Package manager family of a supported distribution."""

    APT = "apt"
    DNF = "dnf"


# distro id (as in /etc/os-release ID) → supported VERSION_ID values
SUPPORTED_PLATFORMS: dict[str, tuple[str, ...]] = {
    "debian": ("11", "12"),
    "ubuntu": ("22.04", "24.04"),
    "fedora": ("39", "40"),
    "rocky": ("9",),
    "almalinux": ("9",),
}

_FAMILIES: dict[str, PackageFamily] = {
    "debian": PackageFamily.APT,
    "ubuntu": PackageFamily.APT,
    "fedora": PackageFamily.DNF,
    "rocky": PackageFamily.DNF,
    "almalinux": PackageFamily.DNF,
}

PREREQUISITE_PACKAGES: dict[PackageFamily, tuple[str, ...]] = {
    PackageFamily.APT: (
        "python3", "python3-pip", "python3-full", "python3-venv",
        "libopenblas-dev", "iptables-persistent", "curl", "git",
    ),
    PackageFamily.DNF: (
        "python3", "python3-pip", "openblas-devel",
        "iptables-services", "curl", "git",
    ),
}

# Where the platform's firewall persistence helper reads saved rules from
RULES_FILES: dict[PackageFamily, tuple[str, str]] = {
    PackageFamily.APT: ("/etc/iptables/rules.v4", "/etc/iptables/rules.v6"),
    PackageFamily.DNF: ("/etc/sysconfig/iptables", "/etc/sysconfig/ip6tables"),
}


class Platform(BaseModel):
    """A distribution identifier, validated against the supported set."""

    model_config = ConfigDict(frozen=True)

    distro: str
    version: str

    @field_validator("distro", "version", mode="before")
    @classmethod
    def _normalise(cls, value: object) -> str:
        return _normalise_token(value)

    @model_validator(mode="after")
    def _check_supported(self) -> Platform:
        if not is_supported(self.distro, self.version):
            raise ValueError(_unsupported_message(self.distro, self.version))
        return self

    @classmethod
    def of(cls, distro: object, version: object) -> Platform:
        """Build a Platform, raising UnsupportedPlatformError outside the supported set."""
        d = _normalise_token(distro)
        v = _normalise_token(version)
        if not is_supported(d, v):
            raise UnsupportedPlatformError(_unsupported_message(d, v))
        return cls(distro=d, version=v)

    @classmethod
    def parse(cls, value: str) -> Platform:
        """Parse ``distro:version`` (or ``distro-version``)."""
        sep = ":" if ":" in value else "-"
        distro, _, version = value.partition(sep)
        if not version:
            raise UnsupportedPlatformError(
                f"Platform must look like 'debian:12', got '{value}'"
            )
        return cls.of(distro, version)

    @property
    def family(self) -> PackageFamily:
        return _FAMILIES[self.distro]

    @property
    def label(self) -> str:
        return f"{self.distro} {self.version}"


def _normalise_token(value: object) -> str:
    return str(value).strip().strip('"').lower()


def is_supported(distro: str, version: str) -> bool:
    return version in SUPPORTED_PLATFORMS.get(distro, ())


def _unsupported_message(distro: str, version: str) -> str:
    return (
        f"Unsupported platform '{distro} {version}'. "
        f"Supported: {supported_platforms_label()}"
    )


def supported_platforms_label() -> str:
    """Human-readable list of supported distro/version pairs."""
    return ", ".join(
        f"{distro} {version}"
        for distro, versions in SUPPORTED_PLATFORMS.items()
        for version in versions
    )


class WebUIAccountPolicy(StrEnum):
    """Which account the web front end runs as."""

    SHARED = "shared"          # the model daemon's own account
    DEDICATED = "dedicated"    # a separate unprivileged system account


class PortRedirect(BaseModel):
    """External TCP port redirected to the web UI's internal port."""

    model_config = ConfigDict(frozen=True)

    external: int = 80
    internal: int = 8080

    @field_validator("external", "internal")
    @classmethod
    def _valid_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError(f"Port out of range: {value}")
        return value

    @model_validator(mode="after")
    def _distinct(self) -> PortRedirect:
        if self.external == self.internal:
            raise ValueError("External and internal ports must differ")
        return self


class InstallationTarget(BaseModel):
    """Immutable description of the provisioning target."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    platform: Platform

    # ── Model daemon ─────────────────────────────────────────────
    ollama_service: str = "ollama"
    ollama_unit_path: str = "/etc/systemd/system/ollama.service"
    ollama_user: str = "ollama"
    ollama_group: str = "ollama"
    ollama_home: str = "/usr/share/ollama"
    ollama_url: str = "http://127.0.0.1:11434"
    ollama_installer_url: str = "https://ollama.com/install.sh"
    models_dir: str = "/opt/models"
    models: tuple[str, ...] = (
        "tinyllama",
        "phi",
        "mistral",
        "gemma:2b",
        "mistral:7b-instruct-v0.2-q4_K_M",
    )

    # ── Web front end ────────────────────────────────────────────
    service_name: str = "openwebui"
    install_dir: str = "/opt/openwebui"
    unit_dir: str = "/etc/systemd/system"
    webui_account_policy: WebUIAccountPolicy = WebUIAccountPolicy.SHARED
    webui_dedicated_user: str = "openwebui"
    webui_dedicated_group: str = "openwebui"
    webui_package: str = "open-webui"
    webui_source_repo: str = "https://github.com/open-webui/open-webui.git"
    source_fallback: bool = False

    # ── Network ──────────────────────────────────────────────────
    port_redirect: PortRedirect = Field(default_factory=PortRedirect)
    legacy_redirect_ports: tuple[int, ...] = (8000,)

    # ── Engine ───────────────────────────────────────────────────
    workspace_base: str = "/var/tmp/llmaura"
    state_dir: str = "/var/lib/llmaura"

    @field_validator("models")
    @classmethod
    def _unique_models(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(m.strip() for m in value if m and m.strip())
        dupes = sorted({m for m in cleaned if cleaned.count(m) > 1})
        if dupes:
            raise ValueError(f"Duplicate model identifiers: {', '.join(dupes)}")
        return cleaned

    @field_validator("install_dir", "models_dir", "workspace_base", "state_dir",
                     "ollama_unit_path", "ollama_home", "unit_dir")
    @classmethod
    def _absolute(cls, value: str) -> str:
        if not PurePosixPath(value).is_absolute():
            raise ValueError(f"Path must be absolute: {value}")
        return value

    @model_validator(mode="after")
    def _consistent(self) -> InstallationTarget:
        if PurePosixPath(self.install_dir) == PurePosixPath(self.models_dir):
            raise ValueError("install_dir and models_dir must be different directories")
        external = self.port_redirect.external
        if external in self.legacy_redirect_ports:
            raise ValueError(f"Legacy redirect port {external} equals the external port")
        return self

    # ── Derived values ───────────────────────────────────────────

    @property
    def webui_user(self) -> str:
        if self.webui_account_policy == WebUIAccountPolicy.DEDICATED:
            return self.webui_dedicated_user
        return self.ollama_user

    @property
    def webui_group(self) -> str:
        if self.webui_account_policy == WebUIAccountPolicy.DEDICATED:
            return self.webui_dedicated_group
        return self.ollama_group

    @property
    def data_dir(self) -> str:
        return f"{self.install_dir}/data"

    @property
    def cache_dir(self) -> str:
        return f"{self.data_dir}/cache"

    @property
    def venv_dir(self) -> str:
        return f"{self.install_dir}/venv"

    @property
    def unit_path(self) -> str:
        return f"{self.unit_dir}/{self.service_name}.service"

    @property
    def webui_url(self) -> str:
        return f"http://127.0.0.1:{self.port_redirect.internal}"

    @property
    def prerequisite_packages(self) -> tuple[str, ...]:
        return PREREQUISITE_PACKAGES[self.platform.family]

    @property
    def rules_files(self) -> tuple[str, str]:
        return RULES_FILES[self.platform.family]

    @property
    def history_path(self) -> str:
        return f"{self.state_dir}/history.ndjson"
