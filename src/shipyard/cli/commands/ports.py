"""CLI command for inspecting and assigning ports."""

from __future__ import annotations

import click

from shipyard.cli.commands.deploy import handle_deployment_errors
from shipyard.config.loader import ConfigLoader
from shipyard.deploy.ports import PortAllocator
from shipyard.deploy.state import StateStore
from shipyard.lib.logging_config import setup_logging


@click.command()
@click.option(
    "--allocate",
    "allocate_name",
    metavar="NAME",
    default=None,
    help="Allocate (or look up) the sticky port for NAME",
)
@click.option(
    "--range",
    "range_name",
    type=click.Choice(["standard", "games", "special"]),
    default="standard",
    show_default=True,
    help="Range to allocate from",
)
def ports(allocate_name: str | None, range_name: str) -> None:
    """Show port allocations, or allocate one.

    Example:

        shipyard ports

        shipyard ports --allocate api
    """
    setup_logging(quiet=True)

    with handle_deployment_errors():
        loader = ConfigLoader()
        global_config = loader.load_global_config_or_default()
        store = StateStore(loader.paths)
        allocator = PortAllocator(
            store,
            descriptor_ports=loader.fixed_app_ports,
            ranges=global_config.server.port_ranges.as_dict(),
        )

        if allocate_name:
            port = allocator.allocate(allocate_name, range_name)
            click.echo(f"{allocate_name}: {port}")
            return

        _display_ports(loader, store)


def _display_ports(loader: ConfigLoader, store: StateStore) -> None:
    state = store.load_ports()
    apps, engines = loader.load_all()

    rows: list[tuple[int, str, str, str]] = []
    for port in state.reserved:
        rows.append((port, "reserved", "-", "-"))
    for name, app in apps.configs.items():
        port = app.port or state.allocations.get(name)
        if port:
            rows.append((port, "app", name, app.domain or "-"))
    for name, engine in engines.configs.items():
        if engine.server.ports.http:
            rows.append((engine.server.ports.http, "engine", f"{name} (http)", "-"))
        if engine.server.ports.websocket:
            rows.append((engine.server.ports.websocket, "engine", f"{name} (ws)", "-"))
        for module_name, module in engine.modules.items():
            rows.append(
                (module.port, "module", f"{name}/{module_name}", module.domain or "-")
            )
    rows.sort(key=lambda row: row[0])

    click.secho("Port Allocations", bold=True)
    click.echo(f"{'PORT':<10}{'TYPE':<12}{'NAME':<25}DOMAIN")
    for port, kind, name, domain in rows:
        click.echo(f"{port:<10}{kind:<12}{name:<25}{domain}")

    click.echo()
    click.secho("Port Ranges", bold=True)
    for range_name, cursor in state.ranges.items():
        used = cursor.next - cursor.start
        total = cursor.end - cursor.start + 1
        click.echo(
            f"{range_name:<12}{cursor.start}-{cursor.end} ({used}/{total} used)"
        )
