"""CLI commands for reading deployment history and attempt logs."""

from __future__ import annotations

import click

from shipyard.cli.commands.deploy import handle_deployment_errors
from shipyard.config.paths import ShipyardPaths
from shipyard.deploy.state import StateStore
from shipyard.lib.logging_config import setup_logging
from shipyard.models.state import DeploymentStatus

_STATUS_COLORS = {
    DeploymentStatus.SUCCESS: "green",
    DeploymentStatus.FAILED: "red",
    DeploymentStatus.IN_PROGRESS: "yellow",
}


@click.command()
@click.argument("name")
@click.option(
    "--limit",
    "-n",
    type=click.IntRange(min=1),
    default=10,
    show_default=True,
    help="Number of entries to show",
)
def history(name: str, limit: int) -> None:
    """Show recent deployments of a target, newest first.

    NAME is an app or engine name, or ENGINE/MODULE for a module.
    """
    setup_logging(quiet=True)

    with handle_deployment_errors():
        store = StateStore(ShipyardPaths.from_env())
        target = store.get_history(name)

        if not target.history:
            click.echo(f"No deployments recorded for {name}")
            return

        click.secho(f"Deployments of {name}", bold=True)
        for record in target.history[:limit]:
            marker = "*" if record.id == target.current else " "
            duration = (
                f"{record.duration_ms / 1000:.1f}s"
                if record.duration_ms is not None
                else "-"
            )
            click.echo(f"{marker} {record.id}  ", nl=False)
            click.secho(
                f"{record.status.value:<8}",
                fg=_STATUS_COLORS.get(record.status),
                nl=False,
            )
            click.echo(
                f"  {record.commit or '-':<9}  "
                f"{record.timestamp.strftime('%Y-%m-%d %H:%M:%S')}  {duration}"
            )
            if record.error:
                click.echo(f"    {record.phase or 'error'}: {record.error}")


@click.command()
@click.argument("name")
@click.option(
    "--lines",
    "-n",
    type=click.IntRange(min=1),
    default=50,
    show_default=True,
    help="Number of lines to show",
)
def logs(name: str, lines: int) -> None:
    """Show the latest deployment log of a target.

    NAME is an app or engine name, or ENGINE/MODULE for a module.
    """
    setup_logging(quiet=True)

    paths = ShipyardPaths.from_env()
    log_dir = paths.target_log_dir(name)
    log_files = sorted(log_dir.glob("*.log"), reverse=True) if log_dir.is_dir() else []

    if not log_files:
        click.secho(f"No deployment logs found for {name}", fg="yellow", err=True)
        click.echo(f"  Log directory: {log_dir}", err=True)
        return

    latest = log_files[0]
    content = latest.read_text(encoding="utf-8", errors="replace").splitlines()

    click.secho(f"=== {latest.name} ===", dim=True)
    for line in content[-lines:]:
        if "STDERR:" in line or "FAILED" in line:
            click.secho(line, fg="red")
        elif "===" in line:
            click.secho(line, bold=True)
        else:
            click.echo(line)

    if len(log_files) > 1:
        click.echo()
        click.secho(f"{len(log_files)} deployment logs available in {log_dir}", dim=True)
