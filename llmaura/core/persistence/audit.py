"""
Run history ledger — append-only record of install runs.

Every real run (neither dry nor mock) writes one entry to an NDJSON
(newline-delimited JSON) file under the state directory: when it ran,
on what platform, how each step ended and, for an aborted run,
which step stopped it.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from llmaura.core.models.run import RunReport

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_FILE = "history.ndjson"


class HistoryEntry(BaseModel):
    """A single run in the ledger."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    platform: str = ""

    # Results
    status: str = ""               # ok, degraded, aborted
    steps_total: int = 0
    steps_succeeded: int = 0
    steps_skipped: int = 0
    steps_failed: int = 0
    duration_ms: int = 0

    aborted_step: str | None = None
    abort_reason: str | None = None
    failed_steps: list[str] = Field(default_factory=list)

    # Extensible context
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: RunReport, platform: str = "", duration_ms: int = 0) -> HistoryEntry:
        return cls(
            run_id=report.run_id,
            platform=platform,
            status=report.status,
            steps_total=len(report.step_names),
            steps_succeeded=report.succeeded,
            steps_skipped=report.skipped,
            steps_failed=report.failed,
            duration_ms=duration_ms,
            aborted_step=report.aborted_step,
            abort_reason=report.abort_reason,
            failed_steps=[r.step for r in report.results if r.failed],
            context={"not_started": report.not_started},
        )


class HistoryWriter:
    """Append-only run ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is not None:
            self._path = path
        elif state_dir is not None:
            self._path = state_dir / DEFAULT_HISTORY_FILE
        else:
            self._path = Path(DEFAULT_HISTORY_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: HistoryEntry) -> bool:
        """Append an entry to the ledger.

        Returns:
            True if written. A ledger failure never fails the run; it
            is logged and reported as False.
        """
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Failed to write history entry: %s", e)
            return False

        logger.debug("History entry written: %s (%s)", entry.run_id, entry.status)
        return True

    def read_all(self) -> list[HistoryEntry]:
        """Read all entries, oldest first."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(HistoryEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt history entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read history ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[HistoryEntry]:
        """Read the most recent N entries, oldest first."""
        if n <= 0:
            return []
        return self.read_all()[-n:]

    def entry_count(self) -> int:
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
