"""
Config check use case — validate llmaura.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from llmaura.core.config.loader import ConfigError, find_config_file, load_target
from llmaura.core.models.target import (
    InstallationTarget,
    UnsupportedPlatformError,
    WebUIAccountPolicy,
)
from llmaura.core.services.units import DEFAULT_WEBUI_PORT


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    target: InstallationTarget | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        target = self.target
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "platform": target.platform.label if target else None,
            "models": list(target.models) if target else [],
            "webui_user": target.webui_user if target else None,
            "install_dir": target.install_dir if target else None,
        }


def check_config(
    config_path: Path | None = None,
    platform: str | None = None,
) -> ConfigCheckResult:
    """Validate the configuration and report issues.

    Args:
        config_path: Optional explicit path to llmaura.yml.
        platform: Optional ``distro:version`` override.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            result.warnings.append("No llmaura.yml found; built-in defaults apply.")
    result.config_path = config_path

    # Load and validate
    try:
        target = load_target(config_path, platform_override=platform)
        result.target = target
    except (ConfigError, UnsupportedPlatformError) as e:
        result.errors.append(str(e))
        return result

    # Semantic checks
    if not target.models:
        result.warnings.append("No models configured. Ollama will start without any model.")

    if target.port_redirect.internal != DEFAULT_WEBUI_PORT:
        result.warnings.append(
            f"Web UI will listen on port {target.port_redirect.internal} "
            f"instead of its default {DEFAULT_WEBUI_PORT}."
        )

    if (
        target.webui_account_policy == WebUIAccountPolicy.DEDICATED
        and target.webui_dedicated_user == target.ollama_user
    ):
        result.warnings.append(
            "Dedicated account policy names the Ollama account; "
            "the web UI will share it anyway."
        )

    # Result
    result.valid = len(result.errors) == 0
    return result
