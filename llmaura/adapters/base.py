"""
Command runner base — the contract between the workflow and the host.

Steps and probes never call ``subprocess`` themselves. They ask a
CommandRunner, which makes it possible to swap the real host for a
scripted mock in tests and in ``--mock`` runs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import PurePosixPath

from llmaura.core.models.result import CommandResult

# Keep only this many trailing characters of stdout/stderr by default
DEFAULT_CAPTURE_LIMIT = 8000
DEFAULT_TIMEOUT = 300


class CommandRunner(ABC):
    """Abstract base class for command runners.

    Runners execute external commands and return a CommandResult.
    They NEVER raise: a missing binary, a timeout or a non-zero exit
    all end up in the result.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The runner identifier (e.g., 'shell', 'mock')."""

    @abstractmethod
    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        as_user: str | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        capture_limit: int | None = DEFAULT_CAPTURE_LIMIT,
    ) -> CommandResult:
        """Run ``command`` with ``args`` and capture its outcome.

        Args:
            command: Executable name or path.
            args: Arguments, passed without a shell.
            as_user: Run as this system account instead of the caller.
            timeout: Seconds before the process is killed (None = no limit).
            input: Text fed to stdin.
            env: Extra environment variables layered over os.environ.
            cwd: Working directory.
            capture_limit: Keep only the last N characters of each
                stream (None = keep everything).
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


def render_command(command: str, args: Sequence[str] = (), as_user: str | None = None) -> str:
    """Human-readable rendering of a command line, for logs and diagnostics."""
    parts = [command, *args]
    text = " ".join(_quote(p) for p in parts)
    if as_user:
        return f"[{as_user}] {text}"
    return text


def _quote(part: str) -> str:
    if not part or any(c in part for c in " \t\"'$`\\|&;<>"):
        return "'" + part.replace("'", "'\\''") + "'"
    return part


def tail(text: str, limit: int | None) -> str:
    """Last ``limit`` characters of ``text`` (all of it when limit is None)."""
    if not text or limit is None or len(text) <= limit:
        return text
    if limit <= 0:
        return ""
    return text[-limit:]


def read_file(runner: CommandRunner, path: str) -> CommandResult:
    """Read ``path`` through the runner; the content is in ``stdout``."""
    return runner.run("cat", [path], capture_limit=None)


def write_file(runner: CommandRunner, path: str, content: str) -> CommandResult:
    """Write ``content`` to ``path`` through the runner, creating the parent."""
    made = runner.run("mkdir", ["-p", str(PurePosixPath(path).parent)])
    if not made.ok:
        return made
    return runner.run("tee", [path], input=content)
