"""CLI command for checking host prerequisites and configuration.

Implements 'shipyard doctor', which verifies the tools deployments depend
on, the configuration tree and the state of each app's working copy.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

import click

from shipyard.config.loader import ConfigLoader
from shipyard.deploy.git import GitClient
from shipyard.deploy.supervisor import PM2Supervisor
from shipyard.lib.errors import ShipyardError
from shipyard.lib.logging_config import get_logger, setup_logging
from shipyard.models.config import GlobalConfig

logger = get_logger(__name__)


@dataclass
class Check:
    """Outcome of one health check."""

    name: str
    ok: bool
    message: str | None = None


@click.command()
def doctor() -> None:
    """Check prerequisites, configuration and working copies.

    Exits with status 1 when any check fails.

    Example:

        shipyard doctor
    """
    setup_logging(quiet=True)
    loader = ConfigLoader()
    git = GitClient()

    checks = _check_tools(git)
    global_config, config_checks = _check_configuration(loader)
    checks.extend(config_checks)
    if global_config is not None:
        checks.extend(_check_descriptors(loader, git))

    failed = [check for check in checks if not check.ok]
    _display_checks(checks)

    if failed:
        logger.warning(f"Doctor found {len(failed)} failing check(s)")
        click.secho("Some checks failed. See above for details.", fg="yellow")
        sys.exit(1)
    click.secho("All checks passed!", fg="green")


def _check_tools(git: GitClient) -> list[Check]:
    git_ok = git.is_available()
    pm2_ok = PM2Supervisor().is_available()
    return [
        Check("Git", git_ok, None if git_ok else "git not found in PATH"),
        Check(
            "PM2",
            pm2_ok,
            None if pm2_ok else "pm2 not found. Install with: npm install -g pm2",
        ),
    ]


def _check_configuration(
    loader: ConfigLoader,
) -> tuple[GlobalConfig | None, list[Check]]:
    paths = loader.paths
    if not loader.is_initialized():
        return None, [
            Check("Shipyard initialized", False, f"Missing: {paths.config_file}")
        ]

    checks = [Check("Shipyard initialized", True, str(paths.config_file))]
    try:
        global_config = loader.load_global_config()
    except ShipyardError as e:
        checks.append(Check("Global config", False, str(e)))
        return None, checks
    checks.append(Check("Global config", True))

    secret_set = bool(global_config.server.webhook_secret)
    checks.append(
        Check(
            "Webhook secret",
            secret_set,
            None
            if secret_set
            else "Set server.webhook_secret or SHIPYARD_WEBHOOK_SECRET",
        )
    )

    ssh_key = global_config.git.ssh_key
    if ssh_key:
        key_ok = Path(ssh_key).expanduser().exists()
        checks.append(
            Check("SSH key", key_ok, ssh_key if key_ok else f"Not found at {ssh_key}")
        )

    for name, directory in (
        ("Apps directory", paths.apps_dir),
        ("Engines directory", paths.engines_dir),
        ("State directory", paths.state_dir),
        ("Log directory", paths.log_dir),
    ):
        exists = directory.is_dir()
        checks.append(
            Check(name, exists, str(directory) if exists else f"Missing: {directory}")
        )
    return global_config, checks


def _check_descriptors(loader: ConfigLoader, git: GitClient) -> list[Check]:
    apps, engines = loader.load_all()
    checks = [
        Check(f"Descriptor {Path(path).name}", False, error)
        for report in (apps, engines)
        for path, error in report.errors.items()
    ]

    for name, app in apps.configs.items():
        if not git.is_repo(app.path):
            checks.append(Check(f"App {name}", True, f"Not cloned yet: {app.path}"))
            continue
        try:
            branch = git.current_branch(app.path)
            commit = git.short_commit(app.path)
            subject = git.commit_message(app.path).splitlines()[0:1]
        except ShipyardError as e:
            checks.append(Check(f"App {name}", False, str(e)))
            continue

        summary = f"{branch or 'detached'} @ {commit}"
        if subject:
            summary = f"{summary} {subject[0]}"
        on_branch = not branch or branch == app.branch
        checks.append(
            Check(
                f"App {name}",
                on_branch,
                summary if on_branch else f"{summary} (expected {app.branch})",
            )
        )
    return checks


def _display_checks(checks: list[Check]) -> None:
    click.secho("System Health Check", bold=True)
    click.echo("-" * 50)
    for check in checks:
        if check.ok:
            click.echo(click.style("ok   ", fg="green") + check.name)
            if check.message:
                click.secho(f"     {check.message}", dim=True)
        else:
            click.echo(click.style("FAIL ", fg="red") + check.name)
            if check.message:
                click.echo(f"     {check.message}")
    click.echo()
