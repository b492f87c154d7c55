"""CLI command for running the webhook server.

Implements 'shipyard serve', which starts the FastAPI webhook server with
uvicorn.
"""

from __future__ import annotations

import asyncio
import sys

import click

from shipyard.config.loader import ConfigLoader
from shipyard.deploy.engine import create_deployment_engine
from shipyard.lib.errors import ConfigError, FileNotFoundError
from shipyard.lib.logging_config import get_logger, setup_logging
from shipyard.models.config import GlobalConfig

logger = get_logger(__name__)


@click.command()
@click.option(
    "--host",
    type=str,
    default="0.0.0.0",  # noqa: S104
    help="Host to bind to (default: 0.0.0.0)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to listen on (default: server.webhook_port, 9000)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging",
)
def serve(host: str, port: int | None, debug: bool) -> None:
    """Start the webhook server.

    Push events are accepted on POST / and POST /webhook, manual redeploys
    on POST /deploy/NAME.

    Example:

        shipyard serve

        shipyard serve --port 9001 --debug
    """
    loader = ConfigLoader()
    setup_logging(verbose=debug, log_file=loader.paths.webhook_log)

    try:
        global_config = loader.load_global_config_or_default()
        listen_port = port or global_config.server.webhook_port

        logger.info(f"Serve command invoked: host={host}, port={listen_port}")
        asyncio.run(
            _run_server(
                loader=loader,
                global_config=global_config,
                host=host,
                port=listen_port,
                debug=debug,
            )
        )
    except (ConfigError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}", exc_info=True)
        click.secho("Error: Failed to load configuration", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Server interrupted by user (Ctrl+C)")
        click.echo()
        click.secho("Server stopped.", fg="yellow")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        click.secho(f"Error: {str(e)}", fg="red", err=True)
        sys.exit(3)


async def _run_server(
    loader: ConfigLoader,
    global_config: GlobalConfig,
    host: str,
    port: int,
    debug: bool,
) -> None:
    """Run the HTTP server.

    Args:
        loader: Descriptor loader.
        global_config: Loaded global configuration (holds the secret).
        host: Host to bind to.
        port: Port to listen on.
        debug: Enable debug mode.
    """
    import uvicorn

    from shipyard.serve.server import WebhookServer

    engine = create_deployment_engine(loader, global_config)
    server = WebhookServer(
        loader=loader,
        deploy=engine.deploy,
        secret=global_config.server.webhook_secret,
        host=host,
        port=port,
    )
    app = server.create_app()

    _display_startup_info(host, port)

    config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level="debug" if debug else "info",
    )
    server_instance = uvicorn.Server(config)

    try:
        await server_instance.serve()
    finally:
        await server.stop()


def _display_startup_info(host: str, port: int) -> None:
    click.echo()
    click.secho("=" * 60, fg="cyan")
    click.secho("  Shipyard Webhook Server", fg="cyan", bold=True)
    click.secho("=" * 60, fg="cyan")
    click.echo()
    click.echo(f"  URL:      http://{host}:{port}")
    click.echo()
    click.secho("  Endpoints:", bold=True)
    click.echo("    POST /              Push event")
    click.echo("    POST /webhook       Push event")
    click.echo("    POST /deploy/NAME   Redeploy an app")
    click.echo("    GET  /health        Health check")
    click.echo()
    click.secho("  Press Ctrl+C to stop", fg="yellow")
    click.secho("=" * 60, fg="cyan")
    click.echo()
