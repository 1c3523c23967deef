"""
Mock command runner — universal test double for host commands.

Used in tests and in ``--mock`` runs to exercise the workflow without
touching the host. Responses are scripted per command prefix; anything
not scripted succeeds with the default output.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from llmaura.adapters.base import (
    DEFAULT_CAPTURE_LIMIT,
    DEFAULT_TIMEOUT,
    CommandRunner,
    render_command,
)
from llmaura.core.models.result import CommandResult

Responder = Callable[["MockCall"], CommandResult]


@dataclass
class MockCall:
    """One recorded invocation."""

    command: str
    args: tuple[str, ...] = ()
    as_user: str | None = None
    input: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None

    @property
    def line(self) -> str:
        """Command line without the user marker, used for prefix matching."""
        return render_command(self.command, self.args)


class MockCommandRunner(CommandRunner):
    """Scripted command runner.

    A response is registered for a command-line prefix such as
    ``"systemctl is-active"``. The longest registered prefix matching a
    call wins. A response may be a CommandResult, a list of them
    (consumed one per call, the last one repeating), or a callable
    receiving the MockCall.
    """

    def __init__(self, default_output: str = "[mock] executed"):
        self._default_output = default_output
        self._responses: dict[str, CommandResult | list[CommandResult] | Responder] = {}
        self._calls: list[MockCall] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def calls(self) -> list[MockCall]:
        """All invocations this mock has received."""
        return self._calls

    @property
    def call_count(self) -> int:
        return len(self._calls)

    def lines(self) -> list[str]:
        """Rendered command lines, in call order."""
        return [c.line for c in self._calls]

    def calls_to(self, prefix: str) -> list[MockCall]:
        return [c for c in self._calls if c.line.startswith(prefix)]

    def set_response(
        self,
        prefix: str,
        response: CommandResult | list[CommandResult] | Responder,
    ) -> None:
        """Script the result for commands starting with ``prefix``."""
        if isinstance(response, list):
            response = list(response)
        self._responses[prefix] = response

    def set_output(self, prefix: str, stdout: str) -> None:
        """Configure commands to succeed with the given stdout."""
        self._responses[prefix] = CommandResult(command=prefix, exit_code=0, stdout=stdout)

    def set_failure(self, prefix: str, stderr: str = "Mock failure", exit_code: int = 1) -> None:
        """Configure commands to fail."""
        self._responses[prefix] = CommandResult(
            command=prefix, exit_code=exit_code, stderr=stderr,
        )

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
        call = MockCall(
            command=command,
            args=tuple(args),
            as_user=as_user,
            input=input,
            env=dict(env or {}),
            cwd=cwd,
        )
        self._calls.append(call)

        response = self._match(call.line)
        if response is None:
            return CommandResult(command=call.line, exit_code=0, stdout=self._default_output)
        if callable(response) and not isinstance(response, CommandResult):
            return response(call)
        if isinstance(response, list):
            current = response.pop(0) if len(response) > 1 else response[0]
            return current.model_copy(update={"command": call.line})
        return response.model_copy(update={"command": call.line})

    def _match(self, line: str) -> CommandResult | list[CommandResult] | Responder | None:
        matches = [p for p in self._responses if line.startswith(p)]
        if not matches:
            return None
        return self._responses[max(matches, key=len)]

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._calls.clear()
        self._responses.clear()
