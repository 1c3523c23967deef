"""
Firewall — the NAT redirect rule and its persistence.

The web UI listens on an unprivileged internal port; an iptables
PREROUTING REDIRECT makes it reachable on the external port (80 by
default). The running ruleset is saved to the file the platform's
persistence service restores at boot.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from llmaura.adapters.base import CommandRunner, write_file
from llmaura.core.models.result import CommandResult
from llmaura.core.models.target import PortRedirect

logger = logging.getLogger(__name__)

PERSISTENCE_PACKAGE = "iptables-persistent"
AUTOSAVE_QUESTIONS = ("autosave_v4", "autosave_v6")


def redirect_rule_args(external: int, internal: int) -> list[str]:
    """Rule arguments shared by ``-C``, ``-A`` and ``-D``."""
    return [
        "PREROUTING", "-p", "tcp", "--dport", str(external),
        "-j", "REDIRECT", "--to-port", str(internal),
    ]


def saved_rule_line(redirect: PortRedirect) -> str:
    """The rule as ``iptables-save`` prints it."""
    return (
        f"-A PREROUTING -p tcp -m tcp --dport {redirect.external} "
        f"-j REDIRECT --to-ports {redirect.internal}"
    )


def debconf_preseed() -> str:
    """debconf-set-selections input answering the autosave prompts."""
    return "".join(
        f"{PERSISTENCE_PACKAGE} {PERSISTENCE_PACKAGE}/{question} boolean true\n"
        for question in AUTOSAVE_QUESTIONS
    )


# ── Actions ─────────────────────────────────────────────────────


def remove_stale_redirects(
    runner: CommandRunner,
    redirect: PortRedirect,
    legacy_ports: Iterable[int],
) -> list[CommandResult]:
    """Delete earlier redirects of the external port.

    Covers legacy target ports and the current one, so the rule is
    never present twice. A rule that does not exist makes ``-D`` fail;
    those failures are expected and ignored.
    """
    results: list[CommandResult] = []
    ports = [p for p in legacy_ports if p != redirect.internal] + [redirect.internal]
    for port in ports:
        result = runner.run(
            "iptables", ["-t", "nat", "-D", *redirect_rule_args(redirect.external, port)],
        )
        if result.ok:
            logger.info("Removed stale redirect %d -> %d", redirect.external, port)
        results.append(result)
    return results


def add_redirect(runner: CommandRunner, redirect: PortRedirect) -> CommandResult:
    return runner.run(
        "iptables",
        ["-t", "nat", "-A", *redirect_rule_args(redirect.external, redirect.internal)],
    )


def save_rules(
    runner: CommandRunner,
    rules_files: tuple[str, str],
    include_v6: bool = True,
) -> CommandResult:
    """Write the running IPv4 (and IPv6) rules to the persistence files.

    Returns the IPv4 save result. An IPv6 failure is only logged, since
    the redirect itself is IPv4.
    """
    v4_file, v6_file = rules_files
    result = runner.run("iptables-save", capture_limit=None)
    if not result.ok:
        return result

    written = write_file(runner, v4_file, result.stdout)
    if not written.ok:
        return written

    if include_v6:
        v6 = runner.run("ip6tables-save", capture_limit=None)
        if not v6.ok:
            logger.warning("ip6tables-save failed; IPv6 rules not saved")
        elif not write_file(runner, v6_file, v6.stdout).ok:
            logger.warning("Could not save IPv6 rules to %s", v6_file)

    return CommandResult.success(command="iptables-save", output=f"Rules saved to {v4_file}")

