"""
CommandResult — the execution contract for external commands.

The command runner never raises: whatever happens to the child process
(non-zero exit, timeout, missing binary) ends up in a CommandResult.
Step actions return CommandResults too, so the retry policy and the
sequencer only ever inspect one shape.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class CommandResult(BaseModel):
    """Outcome of one external command (or one in-process action).

    ``exit_code`` is None when the process never produced an exit
    status: it could not be spawned, or it was killed on timeout.
    """

    command: str = ""
    exit_code: int | None = 0

    stdout: str = ""
    stderr: str = ""
    error: str | None = None        # spawn failure, timeout, action exception

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.exit_code == 0 and self.error is None

    @property
    def combined_output(self) -> str:
        """stdout and stderr joined, for pattern inspection."""
        parts = [p for p in (self.stdout, self.stderr, self.error or "") if p]
        return "\n".join(parts)

    @property
    def diagnostic(self) -> str:
        """The text an operator needs to see when this result is a failure."""
        if self.ok:
            return self.stdout.strip()
        lines = []
        if self.command:
            status = self.exit_code if self.exit_code is not None else "none"
            lines.append(f"$ {self.command}  (exit {status})")
        body = self.combined_output.strip()
        if body:
            lines.append(body)
        return "\n".join(lines)

    @classmethod
    def success(cls, command: str = "", output: str = "", **kwargs: Any) -> CommandResult:
        """Create a successful result for an in-process action."""
        return cls(command=command, exit_code=0, stdout=output, **kwargs)

    @classmethod
    def failure(
        cls,
        command: str = "",
        error: str = "",
        exit_code: int | None = None,
        **kwargs: Any,
    ) -> CommandResult:
        """Create a failed result for an in-process action."""
        return cls(command=command, exit_code=exit_code, error=error, **kwargs)
