"""
Workflow definition — the ordered steps that provision Ollama and Open WebUI.

One parametrised definition serves every supported platform; package
family, account policy and the source fallback are read from the
InstallationTarget when the list is built.

Order matters:
    daemon install → daemon account → models dir → daemon running →
    daemon ready → models → firewall → web UI account/dirs →
    web UI install → unit → service running → service ready
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial

from llmaura.adapters.base import read_file, write_file
from llmaura.core.engine.context import StepContext
from llmaura.core.models.result import CommandResult
from llmaura.core.models.step import Criticality, RetryPolicy, Step
from llmaura.core.models.target import InstallationTarget, PackageFamily, WebUIAccountPolicy
from llmaura.core.reliability.polling import wait_until
from llmaura.core.services.firewall import (
    AUTOSAVE_QUESTIONS,
    PERSISTENCE_PACKAGE,
    add_redirect,
    debconf_preseed,
    remove_stale_redirects,
    save_rules,
    saved_rule_line,
)
from llmaura.core.services.units import render_webui_unit, set_service_environment

logger = logging.getLogger(__name__)

# Bounded waits for the daemons: (probes, seconds between probes)
OLLAMA_WAIT = (90, 1.0)
WEBUI_WAIT = (60, 2.0)

INSTALL_TIMEOUT = 3600
JOURNAL_LINES = 50
MODELS_DIR_MODE = 0o750
INSTALL_DIR_MODE = 0o750
DATA_DIR_MODE = 0o700


# ── Helpers ─────────────────────────────────────────────────────


def _chain(*calls: Callable[[], CommandResult]) -> CommandResult:
    """Run calls in order, stopping at the first failure."""
    result = CommandResult.success()
    for call in calls:
        result = call()
        if not result.ok:
            return result
    return result


def _systemctl(ctx: StepContext, *args: str) -> CommandResult:
    return ctx.runner.run("systemctl", list(args))


def _journal(ctx: StepContext, service: str) -> str:
    result = ctx.runner.run(
        "journalctl", ["-u", service, "--no-pager", "-n", str(JOURNAL_LINES)],
    )
    return result.stdout if result.ok else result.diagnostic


def _wait_for(
    ctx: StepContext,
    url: str,
    service: str,
    wait: tuple[int, float],
    step: str,
) -> CommandResult:
    attempts, interval = wait

    def _progress(attempt: int) -> None:
        if attempt % 10 == 0:
            ctx.run_log.info(f"Still waiting for {url} ({attempt}/{attempts})", step=step)

    ready = wait_until(
        lambda: ctx.probe.http_reachable(url),
        attempts,
        interval,
        what=url,
        sleep=ctx.sleep,
        on_wait=_progress,
    )
    if ready:
        return CommandResult.success(command=f"wait for {url}", output=f"{url} is answering")

    return CommandResult.failure(
        command=f"wait for {url}",
        error=(
            f"{service} did not answer on {url} after {attempts * interval:g}s. "
            f"Check 'systemctl status {service}'."
        ),
        stdout=_journal(ctx, service),
    )


def _ensure_account(
    ctx: StepContext,
    user: str,
    group: str,
    home: str,
    create_home: bool,
) -> CommandResult:
    calls: list[Callable[[], CommandResult]] = []
    if not ctx.probe.group_exists(group):
        calls.append(lambda: ctx.runner.run("groupadd", ["--system", group]))
    if not ctx.probe.user_exists(user):
        args = [
            "--system", "--gid", group, "--home-dir", home,
            "--create-home" if create_home else "--no-create-home",
            "--shell", "/bin/false", user,
        ]
        calls.append(lambda: ctx.runner.run("useradd", args))
    return _chain(*calls)


# ── Daemon ──────────────────────────────────────────────────────


def _ollama_installed(ctx: StepContext) -> bool:
    return ctx.probe.command_available("ollama")


def _install_ollama(ctx: StepContext) -> CommandResult:
    script = str(ctx.workspace_path / "ollama-install.sh")
    return _chain(
        lambda: ctx.runner.run(
            "curl", ["-fsSL", "-o", script, ctx.target.ollama_installer_url],
        ),
        lambda: ctx.runner.run("sh", [script], timeout=INSTALL_TIMEOUT),
    )


def _ollama_account_exists(ctx: StepContext) -> bool:
    t = ctx.target
    return ctx.probe.user_exists(t.ollama_user) and ctx.probe.group_exists(t.ollama_group)


def _ensure_ollama_account(ctx: StepContext) -> CommandResult:
    t = ctx.target
    return _ensure_account(ctx, t.ollama_user, t.ollama_group, t.ollama_home, create_home=True)


def _models_dir_configured(ctx: StepContext) -> bool:
    t = ctx.target
    return ctx.probe.path_has_owner_and_mode(
        t.models_dir, t.ollama_user, t.ollama_group, MODELS_DIR_MODE,
    ) and ctx.probe.service_environment_is(t.ollama_unit_path, "OLLAMA_MODELS", t.models_dir)


def _configure_models_dir(ctx: StepContext) -> CommandResult:
    t = ctx.target
    unit = read_file(ctx.runner, t.ollama_unit_path)
    if not unit.ok:
        return CommandResult.failure(
            command=f"cat {t.ollama_unit_path}",
            error=(
                f"Ollama unit file not found at {t.ollama_unit_path}; "
                "cannot configure OLLAMA_MODELS"
            ),
        )
    updated = set_service_environment(unit.stdout, "OLLAMA_MODELS", t.models_dir)

    return _chain(
        lambda: ctx.runner.run("mkdir", ["-p", t.models_dir]),
        lambda: ctx.runner.run("chown", [f"{t.ollama_user}:{t.ollama_group}", t.models_dir]),
        lambda: ctx.runner.run("chmod", [f"{MODELS_DIR_MODE:o}", t.models_dir]),
        lambda: write_file(ctx.runner, t.ollama_unit_path, updated),
        lambda: _systemctl(ctx, "daemon-reload"),
        lambda: _systemctl(ctx, "enable", t.ollama_service),
        lambda: _systemctl(ctx, "restart", t.ollama_service),
    )


def _ollama_active(ctx: StepContext) -> bool:
    return ctx.probe.service_active(ctx.target.ollama_service)


def _start_ollama(ctx: StepContext) -> CommandResult:
    return _systemctl(ctx, "enable", "--now", ctx.target.ollama_service)


def _ollama_answering(ctx: StepContext) -> bool:
    return ctx.probe.http_reachable(ctx.target.ollama_url)


def _wait_for_ollama(ctx: StepContext) -> CommandResult:
    t = ctx.target
    return _wait_for(ctx, t.ollama_url, t.ollama_service, OLLAMA_WAIT, "wait-for-ollama")


def _model_present(ctx: StepContext, model: str) -> bool:
    return ctx.probe.model_present(model)


def _pull_model(ctx: StepContext, model: str) -> CommandResult:
    return ctx.runner.run(
        "ollama", ["pull", model], as_user=ctx.target.ollama_user, timeout=INSTALL_TIMEOUT,
    )


# ── Firewall and prerequisites ──────────────────────────────────


def _autosave_preseeded(ctx: StepContext) -> bool:
    return all(
        ctx.probe.debconf_selection_set(PERSISTENCE_PACKAGE, question, "true")
        for question in AUTOSAVE_QUESTIONS
    )


def _preseed_firewall_persistence(ctx: StepContext) -> CommandResult:
    return ctx.runner.run("debconf-set-selections", input=debconf_preseed())


def _prerequisites_installed(ctx: StepContext) -> bool:
    t = ctx.target
    return ctx.probe.packages_installed(t.prerequisite_packages, t.platform.family)


def _install_prerequisites(ctx: StepContext) -> CommandResult:
    t = ctx.target
    packages = list(t.prerequisite_packages)
    if t.platform.family == PackageFamily.APT:
        env = {"DEBIAN_FRONTEND": "noninteractive"}
        return _chain(
            lambda: ctx.runner.run("apt-get", ["update"], env=env, timeout=INSTALL_TIMEOUT),
            lambda: ctx.runner.run(
                "apt-get", ["install", "-y", *packages], env=env, timeout=INSTALL_TIMEOUT,
            ),
        )
    return ctx.runner.run("dnf", ["install", "-y", *packages], timeout=INSTALL_TIMEOUT)


def _redirect_active(ctx: StepContext) -> bool:
    redirect = ctx.target.port_redirect
    return ctx.probe.nat_redirect_active(redirect.external, redirect.internal)


def _configure_port_redirect(ctx: StepContext) -> CommandResult:
    t = ctx.target
    remove_stale_redirects(ctx.runner, t.port_redirect, t.legacy_redirect_ports)
    return add_redirect(ctx.runner, t.port_redirect)


def _rules_persisted(ctx: StepContext) -> bool:
    t = ctx.target
    return ctx.probe.file_contains_line(t.rules_files[0], saved_rule_line(t.port_redirect))


def _persist_firewall_rules(ctx: StepContext) -> CommandResult:
    t = ctx.target
    if not ctx.probe.command_available("iptables-save"):
        return CommandResult.failure(
            command="iptables-save",
            error="iptables-save not found; firewall rules will not survive a reboot",
        )
    result = save_rules(
        ctx.runner,
        t.rules_files,
        include_v6=ctx.probe.command_available("ip6tables-save"),
    )
    if result.ok and t.platform.family == PackageFamily.DNF:
        # iptables-services restores /etc/sysconfig/iptables only when enabled
        return _systemctl(ctx, "enable", "iptables")
    return result


# ── Web UI ──────────────────────────────────────────────────────


def _webui_account_exists(ctx: StepContext) -> bool:
    t = ctx.target
    return ctx.probe.user_exists(t.webui_user) and ctx.probe.group_exists(t.webui_group)


def _ensure_webui_account(ctx: StepContext) -> CommandResult:
    t = ctx.target
    return _ensure_account(ctx, t.webui_user, t.webui_group, t.install_dir, create_home=False)


def _install_dir_prepared(ctx: StepContext) -> bool:
    t = ctx.target
    probe = ctx.probe
    return probe.path_has_owner_and_mode(
        t.install_dir, t.webui_user, t.webui_group, INSTALL_DIR_MODE,
    ) and probe.path_has_owner_and_mode(
        t.data_dir, t.webui_user, t.webui_group, DATA_DIR_MODE,
    )


def _prepare_install_dir(ctx: StepContext) -> CommandResult:
    t = ctx.target
    return _chain(
        lambda: ctx.runner.run("mkdir", ["-p", t.install_dir, t.data_dir, t.cache_dir]),
        lambda: ctx.runner.run("chown", ["-R", f"{t.webui_user}:{t.webui_group}", t.install_dir]),
        lambda: ctx.runner.run("chmod", [f"{INSTALL_DIR_MODE:o}", t.install_dir]),
        lambda: ctx.runner.run("chmod", [f"{DATA_DIR_MODE:o}", t.data_dir]),
    )


def _webui_installed(ctx: StepContext) -> bool:
    return ctx.probe.file_is_executable(f"{ctx.target.venv_dir}/bin/open-webui")


def _create_venv(ctx: StepContext) -> CommandResult:
    t = ctx.target
    return ctx.runner.run("python3", ["-m", "venv", t.venv_dir], as_user=t.webui_user)


def _pip_install(ctx: StepContext, requirement: str) -> CommandResult:
    t = ctx.target
    return ctx.runner.run(
        f"{t.venv_dir}/bin/pip",
        ["install", requirement],
        as_user=t.webui_user,
        env={"TMPDIR": str(ctx.workspace_path)},
        timeout=INSTALL_TIMEOUT,
    )


def _install_webui(ctx: StepContext) -> CommandResult:
    return _chain(
        lambda: _create_venv(ctx),
        lambda: _pip_install(ctx, ctx.target.webui_package),
    )


def _install_webui_from_source(ctx: StepContext) -> CommandResult:
    t = ctx.target
    checkout = str(ctx.workspace_path / "open-webui")
    return _chain(
        lambda: _create_venv(ctx),
        lambda: ctx.runner.run(
            "git", ["clone", "--depth", "1", t.webui_source_repo, checkout],
            as_user=t.webui_user,
            timeout=INSTALL_TIMEOUT,
        ),
        lambda: _pip_install(ctx, checkout),
    )


def _unit_current(ctx: StepContext) -> bool:
    t = ctx.target
    return ctx.probe.file_has_content(t.unit_path, render_webui_unit(t))


def _write_webui_unit(ctx: StepContext) -> CommandResult:
    t = ctx.target
    return _chain(
        lambda: write_file(ctx.runner, t.unit_path, render_webui_unit(t)),
        lambda: _systemctl(ctx, "daemon-reload"),
        lambda: _systemctl(ctx, "try-restart", t.service_name),
    )


def _webui_running(ctx: StepContext) -> bool:
    name = ctx.target.service_name
    return ctx.probe.service_enabled(name) and ctx.probe.service_active(name)


def _start_webui(ctx: StepContext) -> CommandResult:
    name = ctx.target.service_name
    return _chain(
        lambda: _systemctl(ctx, "enable", name),
        lambda: _systemctl(ctx, "restart", name),
    )


def _webui_answering(ctx: StepContext) -> bool:
    return ctx.probe.http_reachable(ctx.target.webui_url)


def _wait_for_webui(ctx: StepContext) -> CommandResult:
    t = ctx.target
    return _wait_for(ctx, t.webui_url, t.service_name, WEBUI_WAIT, "wait-for-webui")


# ── Definition ──────────────────────────────────────────────────


def build_workflow(target: InstallationTarget) -> list[Step]:
    """The ordered step list for ``target``."""
    warn = Criticality.WARN

    steps: list[Step] = [
        Step(
            name="install-ollama",
            description="Install the Ollama daemon",
            precondition=_ollama_installed,
            action=_install_ollama,
            retry=RetryPolicy(max_attempts=3, delay=10),
            uses_workspace=True,
        ),
        Step(
            name="ensure-ollama-account",
            description=f"Ensure system account {target.ollama_user}:{target.ollama_group}",
            precondition=_ollama_account_exists,
            action=_ensure_ollama_account,
        ),
        Step(
            name="configure-models-dir",
            description=f"Store models in {target.models_dir}",
            precondition=_models_dir_configured,
            action=_configure_models_dir,
            criticality=warn,
        ),
        Step(
            name="start-ollama",
            description=f"Start {target.ollama_service}",
            precondition=_ollama_active,
            action=_start_ollama,
        ),
        Step(
            name="wait-for-ollama",
            description=f"Wait for the Ollama API at {target.ollama_url}",
            precondition=_ollama_answering,
            action=_wait_for_ollama,
        ),
    ]

    for model in target.models:
        steps.append(Step(
            name=f"pull-model:{model}",
            description=f"Pull model {model}",
            precondition=partial(_model_present, model=model),
            action=partial(_pull_model, model=model),
            retry=RetryPolicy(max_attempts=5, delay=15),
            criticality=warn,
        ))

    if target.platform.family == PackageFamily.APT:
        steps.append(Step(
            name="preseed-firewall-persistence",
            description="Answer the iptables-persistent autosave prompts",
            precondition=_autosave_preseeded,
            action=_preseed_firewall_persistence,
            criticality=warn,
        ))

    redirect = target.port_redirect
    steps += [
        Step(
            name="install-prerequisites",
            description=f"Install {len(target.prerequisite_packages)} system packages",
            precondition=_prerequisites_installed,
            action=_install_prerequisites,
            retry=RetryPolicy(max_attempts=3, delay=20),
        ),
        Step(
            name="configure-port-redirect",
            description=f"Redirect TCP port {redirect.external} to {redirect.internal}",
            precondition=_redirect_active,
            action=_configure_port_redirect,
        ),
        Step(
            name="persist-firewall-rules",
            description=f"Save firewall rules to {target.rules_files[0]}",
            precondition=_rules_persisted,
            action=_persist_firewall_rules,
            criticality=warn,
        ),
    ]

    if target.webui_account_policy == WebUIAccountPolicy.DEDICATED:
        steps.append(Step(
            name="ensure-webui-account",
            description=f"Ensure system account {target.webui_user}:{target.webui_group}",
            precondition=_webui_account_exists,
            action=_ensure_webui_account,
        ))

    steps += [
        Step(
            name="prepare-install-dir",
            description=f"Prepare {target.install_dir}",
            precondition=_install_dir_prepared,
            action=_prepare_install_dir,
        ),
        Step(
            name="install-webui",
            description=f"Install {target.webui_package} into {target.venv_dir}",
            precondition=_webui_installed,
            action=_install_webui,
            fallback=_install_webui_from_source if target.source_fallback else None,
            retry=RetryPolicy(max_attempts=2, delay=30),
            uses_workspace=True,
            workspace_owner=target.webui_user,
            workspace_group=target.webui_group,
        ),
        Step(
            name="write-webui-unit",
            description=f"Write {target.unit_path}",
            precondition=_unit_current,
            action=_write_webui_unit,
        ),
        Step(
            name="start-webui",
            description=f"Start {target.service_name}",
            precondition=_webui_running,
            action=_start_webui,
        ),
        Step(
            name="wait-for-webui",
            description=f"Wait for the web UI at {target.webui_url}",
            precondition=_webui_answering,
            action=_wait_for_webui,
            criticality=warn,
        ),
    ]
    return steps
