"""
Shell command runner — execute external commands and capture output.

This is the SINGLE PLACE where ``subprocess.run`` is called. All
privilege switching, environment layering, output bounding and error
capture happens here.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Mapping, Sequence

from llmaura.adapters.base import (
    DEFAULT_CAPTURE_LIMIT,
    DEFAULT_TIMEOUT,
    CommandRunner,
    render_command,
    tail,
)
from llmaura.core.models.result import CommandResult

logger = logging.getLogger(__name__)


class ShellCommandRunner(CommandRunner):
    """Run commands on the local host.

    ``as_user`` is implemented with ``sudo -u <user> -H --`` so the child
    gets the target account's HOME, as ``ollama pull`` and ``pip install``
    expect.
    """

    @property
    def name(self) -> str:
        return "shell"

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
        cmd = [command, *args]
        rendered = render_command(command, args, as_user)

        # ── Environment ──
        child_env = os.environ.copy()
        if env:
            child_env.update(env)

        # ── Privilege switch ──
        if as_user:
            # sudo scrubs the environment; forward the variables we layered
            # on top plus TMPDIR so scoped workspaces reach the child.
            preserve = sorted(set(env or ()) | ({"TMPDIR"} & set(child_env)))
            prefix = ["sudo", "-u", as_user, "-H"]
            if preserve:
                prefix.append(f"--preserve-env={','.join(preserve)}")
            cmd = [*prefix, "--", *cmd]

        logger.debug("Executing: %s (cwd=%s)", rendered, cwd)
        start = time.monotonic()

        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                input=input,
                env=child_env,
                cwd=cwd,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(
                command=rendered,
                exit_code=None,
                stdout=tail(_as_text(e.stdout), capture_limit),
                stderr=tail(_as_text(e.stderr), capture_limit),
                error=f"Command timed out after {timeout}s",
                duration_ms=_elapsed_ms(start),
            )
        except FileNotFoundError:
            return CommandResult(
                command=rendered,
                exit_code=None,
                error=f"Command not found: {cmd[0]}",
                duration_ms=_elapsed_ms(start),
            )
        except Exception as e:
            return CommandResult(
                command=rendered,
                exit_code=None,
                error=f"Command execution error: {e}",
                duration_ms=_elapsed_ms(start),
            )

        result = CommandResult(
            command=rendered,
            exit_code=proc.returncode,
            stdout=tail(proc.stdout or "", capture_limit),
            stderr=tail(proc.stderr or "", capture_limit),
            duration_ms=_elapsed_ms(start),
        )
        logger.debug("Finished: %s → exit %s (%dms)", rendered, proc.returncode, result.duration_ms)
        return result


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _as_text(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
