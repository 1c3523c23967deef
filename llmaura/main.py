"""
LLMaura — CLI entrypoint.

Usage:
    llmaura --help
    llmaura install --dry-run
    llmaura status
    llmaura config check
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from llmaura import __version__
from llmaura.core.observability.logging_config import resolve_level, setup_logging

_STATUS_COLORS = {
    "ok": "green",
    "healthy": "green",
    "degraded": "yellow",
    "aborted": "red",
    "unhealthy": "red",
}

_OUTCOME_ICONS = {
    "skipped": "⏭️ ",
    "succeeded": "✅",
    "succeeded_via_fallback": "✅",
    "failed_recoverable": "⚠️ ",
    "failed_fatal": "❌",
}


@click.group()
@click.version_option(version=__version__, prog_name="llmaura")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to llmaura.yml (default: ./llmaura.yml, then /etc/llmaura).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """LLMaura — install Ollama and Open WebUI on a Linux host."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        flag_level = "DEBUG"
    elif verbose:
        flag_level = "INFO"
    elif quiet:
        flag_level = "ERROR"
    else:
        flag_level = None
    ctx.obj["log_level"] = flag_level

    setup_logging(level=resolve_level(flag_level))


# ── install ─────────────────────────────────────────────────────


@cli.command()
@click.option("--dry-run", is_flag=True, help="Show what would run without changing anything.")
@click.option("--mock", "mock_mode", is_flag=True, help="Run every step against a scripted host.")
@click.option("--platform", default=None, help="Override platform detection (e.g. debian:12).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    dry_run: bool,
    mock_mode: bool,
    platform: str | None,
    as_json: bool,
) -> None:
    """Install and configure Ollama, its models and Open WebUI."""
    from llmaura.core.use_cases.install import run_install

    # A run reports its progress at INFO unless told otherwise
    if not as_json:
        setup_logging(level=resolve_level(ctx.obj.get("log_level"), default="INFO"))

    result = run_install(
        config_path=ctx.obj.get("config_path"),
        platform=platform,
        dry_run=dry_run,
        mock_mode=mock_mode,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None  # guaranteed after error check above

    if not ctx.obj.get("quiet", False):
        mode = " (dry run)" if dry_run else " (mock)" if mock_mode else ""
        click.echo()
        click.secho(f"📋 Run {report.run_id}{mode}", fg="cyan", bold=True)
        for step_result in report.results:
            icon = _OUTCOME_ICONS.get(step_result.outcome.value, "•")
            label = step_result.outcome.value
            if step_result.metadata.get("would_run"):
                label = "would run"
            click.echo(f"   {icon} {step_result.step:<36} {label}")
        for name in report.not_started:
            click.echo(f"   ·  {name:<36} not started")
        click.echo()

    if report.aborted:
        click.secho(f"❌ Aborted at step '{report.aborted_step}'", fg="red", bold=True)
        if report.last_diagnostic:
            click.echo(report.last_diagnostic)
        sys.exit(1)

    color = _STATUS_COLORS.get(report.status, "white")
    click.secho(
        f"✅ Done: {report.succeeded} succeeded, {report.skipped} skipped, "
        f"{report.failed} failed",
        fg=color,
        bold=True,
    )
    if report.failed:
        click.secho("⚠️  Some optional steps failed; see the warnings above.", fg="yellow")
    if result.target and not dry_run:
        click.echo(
            f"   Open WebUI: http://<this-host>:{result.target.port_redirect.external}"
        )


# ── steps ───────────────────────────────────────────────────────


@cli.command()
@click.option("--platform", default=None, help="Override platform detection (e.g. debian:12).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def steps(ctx: click.Context, platform: str | None, as_json: bool) -> None:
    """List the workflow steps for this host."""
    from llmaura.core.use_cases.steps import list_steps

    result = list_steps(config_path=ctx.obj.get("config_path"), platform=platform)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n📋 Workflow for {result.platform}", fg="cyan", bold=True)
    for i, step in enumerate(result.steps, start=1):
        flags = []
        if step.criticality == "warn":
            flags.append("optional")
        if step.max_attempts > 1:
            flags.append(f"{step.max_attempts}x/{step.retry_delay:g}s")
        if step.has_fallback:
            flags.append("fallback")
        suffix = f"  [{', '.join(flags)}]" if flags else ""
        click.echo(f"   {i:>2}. {step.name:<36} {step.description}{suffix}")
    click.echo()


# ── status ──────────────────────────────────────────────────────


@cli.command()
@click.option("--platform", default=None, help="Override platform detection (e.g. debian:12).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, platform: str | None, as_json: bool) -> None:
    """Show the health of the installed services."""
    from llmaura.core.use_cases.status import get_status

    result = get_status(config_path=ctx.obj.get("config_path"), platform=platform)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    health = result.health
    assert health is not None

    color = _STATUS_COLORS.get(health.status, "white")
    click.secho(f"\n🩺 Installation: {health.status}", fg=color, bold=True)
    for component in health.components:
        comp_color = _STATUS_COLORS.get(component.status, "white")
        click.echo(f"   • {component.name:<14} ", nl=False)
        click.secho(f"{component.status:<10}", fg=comp_color, nl=False)
        click.echo(f" {component.message}")

    if result.last_run:
        run = result.last_run
        click.echo()
        click.secho("   Last run:", fg="white", bold=True)
        click.echo(f"     {run.run_id} — ", nl=False)
        click.secho(run.status, fg=_STATUS_COLORS.get(run.status, "white"))
        click.echo(f"     at {run.timestamp}")
    click.echo()


# ── history ─────────────────────────────────────────────────────


@cli.command()
@click.option("-n", "count", default=10, show_default=True, help="Number of runs to show.")
@click.option("--platform", default=None, help="Override platform detection (e.g. debian:12).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, platform: str | None, as_json: bool) -> None:
    """Show recent install runs."""
    from llmaura.core.use_cases.history import get_history

    result = get_history(config_path=ctx.obj.get("config_path"), platform=platform, n=count)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if not result.entries:
        click.echo("No runs recorded yet.")
        return

    click.secho(f"\n📜 Last {len(result.entries)} of {result.total} runs", fg="cyan", bold=True)
    for entry in result.entries:
        color = _STATUS_COLORS.get(entry.status, "white")
        click.echo(f"   {entry.timestamp[:19]}  {entry.run_id}  ", nl=False)
        click.secho(f"{entry.status:<9}", fg=color, nl=False)
        detail = f" stopped at {entry.aborted_step}" if entry.aborted_step else ""
        click.echo(
            f" {entry.steps_succeeded} ok, {entry.steps_skipped} skipped, "
            f"{entry.steps_failed} failed{detail}"
        )
    click.echo()


# ── config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option("--platform", default=None, help="Override platform detection (e.g. debian:12).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, platform: str | None, as_json: bool) -> None:
    """Validate llmaura.yml."""
    from llmaura.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"), platform=platform)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        target = result.target
        assert target is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Platform: {target.platform.label}")
        click.echo(f"   Models: {', '.join(target.models) or '(none)'}")
        click.echo(f"   Web UI account: {target.webui_user} ({target.webui_account_policy.value})")
        click.echo(f"   Install dir: {target.install_dir}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
