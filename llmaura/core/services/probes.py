"""
Host probes — side-effect-free questions about the current host state.

Every workflow step's precondition is built from these predicates.
They never change anything on the host: account and file checks read
the local databases and filesystem directly, everything else goes
through the command runner with read-only commands.

A predicate that cannot answer (missing binary, unreadable file)
returns False, so the step runs rather than being skipped.
"""

from __future__ import annotations

import grp
import logging
import os
import pwd
import shutil
import stat
from collections.abc import Iterable
from pathlib import Path

from llmaura.adapters.base import CommandRunner
from llmaura.core.models.target import PackageFamily
from llmaura.core.services.firewall import redirect_rule_args
from llmaura.core.services.units import service_environment

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 30


# ── Helpers ─────────────────────────────────────────────────────


def normalise_model_id(model: str) -> str:
    """Model identifier as ``ollama list`` prints it (untagged → ``:latest``)."""
    model = model.strip()
    if ":" not in model.rsplit("/", 1)[-1]:
        return f"{model}:latest"
    return model


def parse_model_list(output: str) -> set[str]:
    """Model names from ``ollama list`` output (first column, header skipped)."""
    names: set[str] = set()
    for line in output.splitlines():
        fields = line.split()
        if not fields or fields[0].upper() == "NAME":
            continue
        names.add(normalise_model_id(fields[0]))
    return names


# ── Probe ───────────────────────────────────────────────────────


class HostProbe:
    """Read-only predicates over the host, used as step preconditions."""

    def __init__(self, runner: CommandRunner):
        self._runner = runner

    @property
    def runner(self) -> CommandRunner:
        return self._runner

    # ── Accounts ──

    def user_exists(self, name: str) -> bool:
        try:
            pwd.getpwnam(name)
        except KeyError:
            return False
        return True

    def group_exists(self, name: str) -> bool:
        try:
            grp.getgrnam(name)
        except KeyError:
            return False
        return True

    # ── Binaries and services ──

    def command_available(self, name: str) -> bool:
        return shutil.which(name) is not None

    def service_active(self, service: str) -> bool:
        return self._succeeds("systemctl", ["is-active", "--quiet", service])

    def service_enabled(self, service: str) -> bool:
        return self._succeeds("systemctl", ["is-enabled", "--quiet", service])

    # ── Files ──

    def file_contains_line(self, path: str | Path, line: str) -> bool:
        """Whether ``path`` has a line equal to ``line`` (surrounding whitespace ignored)."""
        text = _read_text(path)
        if text is None:
            return False
        wanted = line.strip()
        return any(candidate.strip() == wanted for candidate in text.splitlines())

    def service_environment_is(self, path: str | Path, key: str, value: str) -> bool:
        """Whether the unit at ``path`` ends up setting ``key`` to ``value``.

        Only [Service] Environment lines count, and the last assignment wins,
        as it does for systemd.
        """
        text = _read_text(path)
        if text is None:
            return False
        return service_environment(text, key) == value

    def file_has_content(self, path: str | Path, content: str) -> bool:
        return _read_text(path) == content

    def file_is_executable(self, path: str | Path) -> bool:
        p = Path(path)
        return p.is_file() and os.access(p, os.X_OK)

    def path_has_owner_and_mode(
        self,
        path: str | Path,
        owner: str,
        group: str,
        mode: int,
    ) -> bool:
        """Whether ``path`` is a directory owned by owner:group with exactly ``mode``."""
        try:
            st = os.stat(path)
            uid = pwd.getpwnam(owner).pw_uid
            gid = grp.getgrnam(group).gr_gid
        except (OSError, KeyError):
            return False
        return (
            stat.S_ISDIR(st.st_mode)
            and st.st_uid == uid
            and st.st_gid == gid
            and stat.S_IMODE(st.st_mode) == mode
        )

    # ── Packages ──

    def packages_installed(self, packages: Iterable[str], family: PackageFamily) -> bool:
        """Whether every package in ``packages`` is installed."""
        for package in packages:
            if family == PackageFamily.APT:
                result = self._runner.run(
                    "dpkg-query", ["-W", "-f=${Status}", package], timeout=PROBE_TIMEOUT,
                )
                if not (result.ok and "install ok installed" in result.stdout):
                    return False
            else:
                if not self._succeeds("rpm", ["-q", package]):
                    return False
        return True

    def debconf_selection_set(self, package: str, question: str, value: str) -> bool:
        """Whether debconf already holds ``value`` for ``package/question``."""
        result = self._runner.run("debconf-show", [package], timeout=PROBE_TIMEOUT)
        if not result.ok:
            return False
        key = f"{package}/{question}:"
        for line in result.stdout.splitlines():
            text = line.strip().lstrip("*").strip()
            if text.startswith(key):
                return text[len(key):].strip() == value
        return False

    # ── Network ──

    def nat_redirect_active(self, external: int, internal: int) -> bool:
        return self._succeeds(
            "iptables", ["-t", "nat", "-C", *redirect_rule_args(external, internal)],
        )

    def http_reachable(self, url: str, timeout: int = 5) -> bool:
        return self._succeeds(
            "curl", ["-fsS", "-o", "/dev/null", "--max-time", str(timeout), url],
        )

    # ── Models ──

    def model_present(self, model: str) -> bool:
        result = self._runner.run("ollama", ["list"], timeout=PROBE_TIMEOUT)
        if not result.ok:
            return False
        return normalise_model_id(model) in parse_model_list(result.stdout)

    # ── Internal ──

    def _succeeds(self, command: str, args: list[str]) -> bool:
        return self._runner.run(command, args, timeout=PROBE_TIMEOUT).ok


def _read_text(path: str | Path) -> str | None:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


class ScriptedHostProbe(HostProbe):
    """Probe answering from a table instead of the host.

    Used in tests and ``--mock`` runs. Answers are looked up by
    ``"<predicate>:<first argument>"`` first, then ``"<predicate>"``,
    then ``default``. Every question asked is recorded in ``checks``.
    """

    def __init__(
        self,
        runner: CommandRunner,
        answers: dict[str, bool] | None = None,
        default: bool = False,
    ):
        super().__init__(runner)
        self.answers: dict[str, bool] = dict(answers or {})
        self.default = default
        self.checks: list[str] = []

    def set(self, key: str, value: bool) -> None:
        self.answers[key] = value

    def _answer(self, predicate: str, subject: object = None) -> bool:
        key = f"{predicate}:{subject}" if subject is not None else predicate
        self.checks.append(key)
        if key in self.answers:
            return self.answers[key]
        return self.answers.get(predicate, self.default)

    def user_exists(self, name: str) -> bool:
        return self._answer("user_exists", name)

    def group_exists(self, name: str) -> bool:
        return self._answer("group_exists", name)

    def command_available(self, name: str) -> bool:
        return self._answer("command_available", name)

    def service_active(self, service: str) -> bool:
        return self._answer("service_active", service)

    def service_enabled(self, service: str) -> bool:
        return self._answer("service_enabled", service)

    def file_contains_line(self, path: str | Path, line: str) -> bool:
        return self._answer("file_contains_line", path)

    def service_environment_is(self, path: str | Path, key: str, value: str) -> bool:
        return self._answer("service_environment_is", path)

    def file_has_content(self, path: str | Path, content: str) -> bool:
        return self._answer("file_has_content", path)

    def file_is_executable(self, path: str | Path) -> bool:
        return self._answer("file_is_executable", path)

    def path_has_owner_and_mode(self, path: str | Path, owner: str, group: str, mode: int) -> bool:
        return self._answer("path_has_owner_and_mode", path)

    def packages_installed(self, packages: Iterable[str], family: PackageFamily) -> bool:
        return self._answer("packages_installed")

    def debconf_selection_set(self, package: str, question: str, value: str) -> bool:
        return self._answer("debconf_selection_set", question)

    def nat_redirect_active(self, external: int, internal: int) -> bool:
        return self._answer("nat_redirect_active")

    def http_reachable(self, url: str, timeout: int = 5) -> bool:
        return self._answer("http_reachable", url)

    def model_present(self, model: str) -> bool:
        return self._answer("model_present", model)
