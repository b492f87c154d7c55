"""CLI command that brings every stopped target back online."""

from __future__ import annotations

import sys

import click

from shipyard.cli.commands.deploy import handle_deployment_errors
from shipyard.config.loader import ConfigLoader
from shipyard.config.paths import ShipyardPaths
from shipyard.deploy.engine import create_deployment_engine
from shipyard.deploy.targets import Target
from shipyard.lib.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
def up(verbose: bool) -> None:
    """Redeploy every app and engine whose process is not online.

    Engines are started before apps. The process list is saved afterwards.
    """
    setup_logging(
        verbose=verbose,
        quiet=not verbose,
        log_file=ShipyardPaths.from_env().main_log,
    )

    with handle_deployment_errors():
        loader = ConfigLoader()
        global_config = loader.load_global_config_or_default()
        engine = create_deployment_engine(loader, global_config)
        apps, engines = loader.load_all()

        online = {p.name for p in engine.supervisor.list_processes() if p.is_online}
        stopped: list[Target] = [
            Target.for_engine(config)
            for config in engines.configs.values()
            if config.process_name not in online
        ]
        stopped.extend(
            Target.for_app(config)
            for config in apps.configs.values()
            if config.process_name not in online and not config.is_script_mode
        )

        if not stopped:
            click.secho("All apps are already running", fg="green")
            return

        logger.info(f"Redeploying stopped targets: {', '.join(t.key for t in stopped)}")
        click.secho(f"Starting {len(stopped)} stopped target(s)...", fg="cyan")
        failed = 0
        for target in stopped:
            click.echo(f"  -> Starting {target.key}...")
            result = engine.deploy(target)
            if result.success:
                click.secho(f"  OK {target.key} started", fg="green")
            else:
                failed += 1
                click.secho(f"  FAIL {target.key}: {result.error}", fg="red")

        engine.supervisor.persist()

        started = len(stopped) - failed
        if failed:
            click.secho(f"Started {started}, failed {failed}", fg="yellow")
            sys.exit(1)
        click.secho(f"All {started} target(s) started successfully", fg="green")
