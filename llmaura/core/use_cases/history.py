"""
History use case — read recent runs from the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from llmaura.core.config.loader import ConfigError, load_target
from llmaura.core.models.target import UnsupportedPlatformError
from llmaura.core.persistence.audit import HistoryEntry, HistoryWriter


@dataclass
class HistoryResult:
    """Recent ledger entries, oldest first."""

    path: Path | None = None
    entries: list[HistoryEntry] = field(default_factory=list)
    total: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "path": str(self.path) if self.path else None,
            "total": self.total,
            "entries": [e.model_dump(mode="json") for e in self.entries],
        }


def get_history(
    config_path: Path | None = None,
    platform: str | None = None,
    n: int = 10,
) -> HistoryResult:
    """Read the last ``n`` runs."""
    result = HistoryResult()

    try:
        target = load_target(config_path, platform_override=platform)
    except (ConfigError, UnsupportedPlatformError) as e:
        result.error = str(e)
        return result

    writer = HistoryWriter(Path(target.history_path))
    result.path = writer.path
    result.entries = writer.read_recent(n)
    result.total = writer.entry_count()
    return result
