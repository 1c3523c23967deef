"""
Status use case — installation health plus the last recorded run.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from llmaura.adapters.shell.command import ShellCommandRunner
from llmaura.core.config.loader import ConfigError, load_target
from llmaura.core.models.target import InstallationTarget, UnsupportedPlatformError
from llmaura.core.observability.health import SystemHealth, check_system_health
from llmaura.core.persistence.audit import HistoryEntry, HistoryWriter
from llmaura.core.services.probes import HostProbe


@dataclass
class StatusResult:
    """Aggregated installation status."""

    target: InstallationTarget | None = None
    health: SystemHealth | None = None
    last_run: HistoryEntry | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        if self.target:
            result["platform"] = self.target.platform.label
        if self.health:
            result["health"] = self.health.to_dict()
        result["last_run"] = self.last_run.model_dump(mode="json") if self.last_run else None
        return result


def get_status(
    config_path: Path | None = None,
    platform: str | None = None,
    probe: HostProbe | None = None,
) -> StatusResult:
    """Probe the installed components and read the last run.

    Args:
        config_path: Optional explicit path to llmaura.yml.
        platform: Optional ``distro:version`` override.
        probe: Optional probe (defaults to the real host).

    Returns:
        StatusResult with component health.
    """
    result = StatusResult()

    try:
        target = load_target(config_path, platform_override=platform)
    except (ConfigError, UnsupportedPlatformError) as e:
        result.error = str(e)
        return result
    result.target = target

    if probe is None:
        probe = HostProbe(ShellCommandRunner())
    result.health = check_system_health(target, probe)

    recent = HistoryWriter(Path(target.history_path)).read_recent(1)
    result.last_run = recent[-1] if recent else None
    return result
