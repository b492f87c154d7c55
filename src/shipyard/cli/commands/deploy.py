"""CLI command for deploying apps, engines and engine modules.

Implements 'shipyard deploy', which runs one deployment synchronously and
exits non-zero when it fails.
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager

import click

from shipyard.config.loader import ConfigLoader
from shipyard.config.paths import ShipyardPaths
from shipyard.deploy.engine import DeployResult, create_deployment_engine
from shipyard.deploy.targets import TargetKind, resolve_target
from shipyard.lib.errors import (
    ConfigError,
    DeploymentError,
    FileNotFoundError,
    RangeExhaustedError,
    TargetNotFoundError,
)
from shipyard.lib.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in CLI commands.

    Catches and handles Shipyard exceptions with appropriate logging, user
    feedback, and exit codes.

    Exit codes:
        1: Target not found
        2: Configuration error
        3: Deployment/execution error
    """
    try:
        yield
    except TargetNotFoundError as e:
        logger.error(str(e))
        click.secho(f"Error: {e.message}", fg="red", err=True)
        sys.exit(1)
    except (ConfigError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except RangeExhaustedError as e:
        logger.error(f"Port allocation error: {e}")
        click.secho(f"Error: {e.message}", fg="red", err=True)
        sys.exit(3)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


@click.command()
@click.argument("name")
@click.option(
    "--module",
    "-m",
    "module",
    type=str,
    default=None,
    help="Deploy a single module of the named engine",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
def deploy(name: str, module: str | None, verbose: bool, quiet: bool) -> None:
    """Deploy an app, an engine, or an engine module.

    NAME is an app or engine name. Apps are matched first.

    Example:

        shipyard deploy api

        shipyard deploy arcade --module snake
    """
    setup_logging(
        verbose=verbose, quiet=quiet, log_file=ShipyardPaths.from_env().main_log
    )

    with handle_deployment_errors():
        loader = ConfigLoader()
        global_config = loader.load_global_config_or_default()
        target = resolve_target(loader, name, module)

        if target.kind == TargetKind.ENGINE and not quiet:
            click.secho(
                f"Warning: all modules of {target.key} will restart",
                fg="yellow",
                err=True,
            )

        engine = create_deployment_engine(loader, global_config)
        if not quiet:
            click.echo(f"Deploying {target.kind.value} {target.key}...")

        result = engine.deploy(target)
        _display_result(result, quiet)

        if not result.success:
            sys.exit(1)


def _display_result(result: DeployResult, quiet: bool) -> None:
    seconds = result.duration_ms / 1000
    if result.success:
        if quiet:
            return
        click.secho(
            f"Deployed {result.target} in {seconds:.1f}s", fg="green", bold=True
        )
        click.echo(f"  Deployment: {result.deployment_id}")
        if result.commit:
            click.echo(f"  Commit:     {result.commit}")
        if result.port is not None:
            click.echo(f"  Port:       {result.port}")
        if result.log_path is not None:
            click.echo(f"  Log:        {result.log_path}")
        return

    click.secho(
        f"Deployment of {result.target} failed in {result.phase} after {seconds:.1f}s",
        fg="red",
        err=True,
    )
    click.echo(f"  {result.error}", err=True)
    if result.log_path is not None:
        click.echo(f"  Log: {result.log_path}", err=True)
