"""
Configuration loader — reads llmaura.yml into an InstallationTarget.

This is the primary entry point for loading the installation target.
It reads YAML, validates against Pydantic schemas, and returns the
immutable descriptor the workflow is built from.

Platform resolution, in precedence order:
    --platform flag  >  ``platform`` key in llmaura.yml  >  /etc/os-release
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from llmaura.core.models.target import (
    SUPPORTED_PLATFORMS,
    InstallationTarget,
    Platform,
)

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "llmaura.yml"
SYSTEM_CONFIG = Path("/etc/llmaura") / CONFIG_FILE
OS_RELEASE = Path("/etc/os-release")


class ConfigError(Exception):
    """Raised when the configuration is invalid or unreadable."""


class NotRootError(ConfigError):
    """Raised when a mutating run is started without root privileges."""


def find_config_file(
    start_dir: Path | None = None,
    system_path: Path | None = None,
) -> Path | None:
    """Look for llmaura.yml in the working directory, then in /etc/llmaura.

    Returns:
        Path to the file, or None if neither exists.
    """
    candidate = (start_dir or Path.cwd()) / CONFIG_FILE
    if candidate.is_file():
        return candidate
    system_path = system_path or SYSTEM_CONFIG
    if system_path.is_file():
        return system_path
    return None


def load_config_data(path: Path) -> dict[str, Any]:
    """Read and parse a config file into a plain mapping."""
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under an "llmaura" key or be flat
    if "llmaura" in data:
        inner = data["llmaura"]
        if not isinstance(inner, dict):
            raise ConfigError(f"Expected a mapping under 'llmaura' in {path}")
        return dict(inner)
    return dict(data)


# ── Platform ────────────────────────────────────────────────────


def read_os_release(path: Path = OS_RELEASE) -> dict[str, str]:
    """Parse an os-release file into a dict."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    fields: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        fields[key.strip()] = value.strip().strip('"').strip("'")
    return fields


def detect_platform(os_release: Path = OS_RELEASE) -> Platform:
    """Identify the running distribution from os-release.

    Point releases of distributions supported by major version only
    (Rocky 9.3, AlmaLinux 9.4) are reduced to the major version.

    Raises:
        ConfigError: If os-release is missing or has no ID/VERSION_ID.
        UnsupportedPlatformError: If the distribution is not supported.
    """
    fields = read_os_release(os_release)
    distro = fields.get("ID", "").lower()
    version = fields.get("VERSION_ID", "")
    if not distro or not version:
        raise ConfigError(f"{os_release} does not define ID and VERSION_ID")

    supported = SUPPORTED_PLATFORMS.get(distro, ())
    if version not in supported:
        major = version.split(".", 1)[0]
        if major in supported:
            version = major

    logger.debug("Detected platform %s %s", distro, version)
    return Platform.of(distro, version)


def _platform_from_config(value: Any) -> Platform:
    if isinstance(value, dict):
        if "distro" not in value or "version" not in value:
            raise ConfigError("'platform' must define both 'distro' and 'version'")
        return Platform.of(value["distro"], value["version"])
    if isinstance(value, str):
        return Platform.parse(value)
    raise ConfigError(f"'platform' must be 'distro:version' or a mapping, got {value!r}")


# ── Target ──────────────────────────────────────────────────────


def load_target(
    path: Path | None = None,
    platform_override: str | None = None,
    os_release: Path = OS_RELEASE,
) -> InstallationTarget:
    """Load and validate the installation target.

    Args:
        path: Explicit path to llmaura.yml. If None, the default
            locations are searched; no file means built-in defaults.
        platform_override: ``distro:version`` taking precedence over
            the file and detection.
        os_release: os-release file used for detection.

    Returns:
        Validated InstallationTarget.

    Raises:
        ConfigError: If the file is unreadable or invalid.
        UnsupportedPlatformError: If the platform is not supported.
    """
    if path is None:
        path = find_config_file()

    data: dict[str, Any] = {}
    if path is not None:
        data = load_config_data(path)
    else:
        logger.info("No %s found; using built-in defaults", CONFIG_FILE)

    configured = data.pop("platform", None)
    if platform_override:
        platform = Platform.parse(platform_override)
    elif configured is not None:
        platform = _platform_from_config(configured)
    else:
        platform = detect_platform(os_release)

    try:
        target = InstallationTarget.model_validate({**data, "platform": platform})
    except ValidationError as e:
        source = path or "defaults"
        raise ConfigError(f"Invalid configuration in {source}: {e}") from e

    logger.info(
        "Loaded target for %s with %d model(s)", platform.label, len(target.models),
    )
    return target


def require_root(geteuid: Callable[[], int] | None = None) -> None:
    """Raise NotRootError unless the process runs as root."""
    if (geteuid or os.geteuid)() != 0:
        raise NotRootError(
            "This command must be run as root to install packages and services. "
            "Use --dry-run or --mock to try it without root."
        )

