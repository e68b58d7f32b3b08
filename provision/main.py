"""
provision — CLI entrypoint.

Usage:
    provision --help
    provision run --dry-run
    provision run --only=base-tools,docker --yes
    provision uninstall
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from provision import __version__
from provision.core.engine.runner import OUTCOME_MARKERS, RunReport
from provision.core.models.result import ExecutionResult
from provision.core.observability.logging_config import LogSettings, console_level, setup_logging
from provision.core.steps.base import Step

OUTCOME_COLORS: dict[str, str] = {
    "applied": "green",
    "already-satisfied": "green",
    "reverted": "green",
    "would-apply": "cyan",
    "skipped": "yellow",
    "failed": "red",
}


@click.group()
@click.version_option(version=__version__, prog_name="provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision this machine from a declarative, idempotent plan."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    settings = LogSettings.from_env()
    setup_logging(
        level=console_level(debug, verbose, quiet, fallback=settings.level),
        log_file=settings.log_file,
        log_file_level=settings.log_file_level,
        log_max_size=settings.log_max_size,
    )


# ── Output helpers ──────────────────────────────────────────────


def _split_only(
    ctx: click.Context, param: click.Parameter, value: tuple[str, ...]
) -> list[str] | None:
    """Accept ``--only=a,b`` and repeated ``--only a --only b``."""
    ids = [part.strip() for item in value for part in item.split(",") if part.strip()]
    return ids or None


def _on_start(step: Step) -> None:
    click.secho(f"→ {step.label}", fg="cyan")


def _on_result(result: ExecutionResult) -> None:
    marker = OUTCOME_MARKERS.get(result.outcome, "?")
    color = OUTCOME_COLORS.get(result.outcome, "white")
    detail = f" ({result.changes} change(s) recorded)" if result.changes else ""
    click.secho(f"  {marker} {result.outcome}{detail}", fg=color)
    if result.error and result.outcome != "already-satisfied":
        click.echo(f"    {result.error}")
    if result.failed and result.stderr:
        for line in result.stderr.splitlines()[-5:]:
            click.echo(f"    │ {line}")


def _print_summary(report: RunReport) -> None:
    rows = [(r.step_id, r.outcome) for r in report.results]
    rows += [(step_id, "not attempted") for step_id in report.not_attempted]
    if not rows:
        click.echo("   No steps selected.")
        return

    width = max(len(step_id) for step_id, _ in rows)
    click.echo()
    click.secho(f"   {'STEP':<{width}}  OUTCOME", bold=True)
    for step_id, outcome in rows:
        click.echo(f"   {step_id:<{width}}  ", nl=False)
        click.secho(outcome, fg=OUTCOME_COLORS.get(outcome, "white"), dim=outcome == "not attempted")

    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(report.status, "white")
    click.echo()
    click.echo(f"   {report.mode} — ", nl=False)
    click.secho(report.status, fg=status_color, bold=True, nl=False)
    counts = [
        f"{n} {label}"
        for n, label in (
            (report.applied, "applied"),
            (report.satisfied, "satisfied"),
            (report.would_apply, "would apply"),
            (report.reverted, "reverted"),
            (report.skipped, "skipped"),
            (report.failed, "failed"),
            (len(report.not_attempted), "not attempted"),
        )
        if n
    ]
    click.echo(f"  ({', '.join(counts)}) in {report.duration_ms / 1000:.1f}s" if counts else "")
    if report.interrupted:
        click.secho("   ⊘ Interrupted", fg="yellow")


def _finish(ctx: click.Context, result, as_json: bool) -> None:
    """Render a ProvisionResult and exit with its code."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.usage_error:
        raise click.UsageError(result.error or "invalid arguments", ctx)

    if result.report is None:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(result.exit_code)

    _print_summary(result.report)
    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
    elif result.report.mode == "dry-run" and result.report.would_apply:
        click.secho("   Dry run: nothing was changed.", fg="cyan")
    click.echo()
    sys.exit(result.exit_code)


def _interrupted() -> None:
    click.secho("\n⊘ Interrupted", fg="yellow")
    sys.exit(130)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@click.option("--dry-run", is_flag=True, help="Check every step; change nothing.")
@click.option(
    "--only", "only", multiple=True, callback=_split_only,
    help="Comma-separated step ids to run (declared order is kept).",
)
@click.option("--yes", "--force", "-y", "assume_yes", is_flag=True, help="Answer yes to every prompt.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(
    ctx: click.Context,
    dry_run: bool,
    only: list[str] | None,
    assume_yes: bool,
    as_json: bool,
) -> None:
    """Apply every step that is not already satisfied."""
    from provision.core.use_cases.run import run_provisioning

    show_progress = not as_json and not ctx.obj.get("quiet", False)
    try:
        result = run_provisioning(
            config_path=ctx.obj.get("config_path"),
            only=only,
            dry_run=dry_run,
            assume_yes=assume_yes,
            on_start=_on_start if show_progress else None,
            on_result=_on_result if show_progress else None,
        )
    except KeyboardInterrupt:
        _interrupted()
        return

    _finish(ctx, result, as_json)


@cli.command()
@click.option(
    "--only", "only", multiple=True, callback=_split_only,
    help="Comma-separated step ids to revert.",
)
@click.option("--yes", "--force", "-y", "assume_yes", is_flag=True, help="Revert without asking per step.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def uninstall(
    ctx: click.Context,
    only: list[str] | None,
    assume_yes: bool,
    as_json: bool,
) -> None:
    """Revert recorded changes, last step first.

    Only what a previous run recorded is touched: packages that were
    already installed, files that already matched, memberships the user
    already had are left alone.
    """
    from provision.core.use_cases.run import uninstall_provisioning

    show_progress = not as_json and not ctx.obj.get("quiet", False)
    try:
        result = uninstall_provisioning(
            config_path=ctx.obj.get("config_path"),
            only=only,
            assume_yes=assume_yes,
            on_start=_on_start if show_progress else None,
            on_result=_on_result if show_progress else None,
        )
    except KeyboardInterrupt:
        _interrupted()
        return

    _finish(ctx, result, as_json)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def platform(as_json: bool) -> None:
    """Show the detected platform and package tooling."""
    from provision.adapters.packages import detect_aur_helper
    from provision.adapters.shell.command import ShellExecutor
    from provision.core.services.platform import detect_platform, select_package_manager

    executor = ShellExecutor(non_interactive=True)
    info = detect_platform(executor)
    kind = select_package_manager("auto", info)
    helper = detect_aur_helper(executor) if info.is_arch else None

    if as_json:
        data = info.model_dump(mode="json")
        data["package_manager"] = kind.value if kind else None
        data["aur_helper"] = helper
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"\n🖥️  {info.os_name}", fg="cyan", bold=True)
    click.echo(f"   {info.summary}")
    click.echo(f"   Package manager: {kind.value if kind else 'none detected'}")
    if info.is_arch:
        click.echo(f"   AUR helper:      {helper or 'none detected'}")
    click.echo()


# ── Register sub-groups ─────────────────────────────────────────

from provision.ui.cli.state import state  # noqa: E402

cli.add_command(state)


if __name__ == "__main__":
    cli()
