"""
CLI commands for recorded state — what earlier runs changed.

Thin wrappers over ``provision.core.use_cases.status``.

Usage::

    provision state show
    provision state history -n 5
    provision state forget docker-group
"""

from __future__ import annotations

import json
import sys

import click


@click.group()
def state() -> None:
    """Recorded changes and run history."""


@state.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, as_json: bool) -> None:
    """List declared steps and the changes recorded for each."""
    from provision.core.use_cases.status import get_state

    result = get_state(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    plan = result.plan
    if result.error or plan is None:
        click.secho(f"❌ {result.error or 'No plan loaded'}", fg="red")
        sys.exit(1)

    click.secho(f"\n📋 {plan.name}", fg="cyan", bold=True)
    click.echo(f"   State: {result.state_dir}")
    click.echo(f"   Steps with recorded changes: {result.recorded_count}/{len(result.steps)}")
    click.echo()

    for step in result.steps:
        marker = "●" if step.recorded else "○"
        click.echo(f"   {marker} {step.id} [{step.kind}]", nl=False)
        if step.policy == "warn":
            click.secho(" (warn)", fg="yellow", nl=False)
        click.echo()
        for record in step.records:
            click.echo(f"       {record.kind}: {record.subject}  ", nl=False)
            click.secho(record.recorded_at, dim=True)

    if result.orphans:
        click.echo()
        click.secho("⚠️  Records for steps no longer in the plan:", fg="yellow")
        for step_id, records in result.orphans.items():
            click.echo(f"   • {step_id} ({len(records)} change(s)) — 'provision state forget {step_id}'")
    click.echo()


@state.command("history")
@click.option("-n", "count", type=int, default=10, show_default=True, help="Number of entries.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent runs and uninstalls."""
    from provision.core.use_cases.status import get_history

    result = get_history(config_path=ctx.obj.get("config_path"), n=count)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if not result.entries:
        click.echo("No runs recorded yet.")
        return

    click.secho(f"\n📜 Last {len(result.entries)} of {result.total} run(s)", fg="cyan", bold=True)
    for entry in reversed(result.entries):
        status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(entry.status, "white")
        click.echo(f"   {entry.timestamp[:19]}  {entry.mode:<9} ", nl=False)
        click.secho(f"{entry.status:<7}", fg=status_color, nl=False)
        click.echo(
            f"  applied={entry.applied} satisfied={entry.satisfied} "
            f"failed={entry.failed} reverted={entry.reverted}"
        )
        for error in entry.errors:
            click.echo(f"       ✗ {error}")
    click.echo()


@state.command("forget")
@click.argument("step_id")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def forget(ctx: click.Context, step_id: str, assume_yes: bool) -> None:
    """Drop STEP_ID's records without reverting them."""
    from provision.core.use_cases.status import forget_step

    if not assume_yes:
        click.confirm(
            f"Forget recorded changes of '{step_id}'? Uninstall will no longer undo them",
            abort=True,
        )

    result = forget_step(step_id, config_path=ctx.obj.get("config_path"))
    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)
    click.secho(f"✓ Forgot {result.forgotten} change(s) for {step_id}", fg="green")
