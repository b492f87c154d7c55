"""Shipyard command line entry point."""

from __future__ import annotations

import click

from shipyard import __version__
from shipyard.cli.commands.deploy import deploy
from shipyard.cli.commands.doctor import doctor
from shipyard.cli.commands.history import history, logs
from shipyard.cli.commands.ports import ports
from shipyard.cli.commands.serve import serve
from shipyard.cli.commands.up import up


@click.group()
@click.version_option(__version__, prog_name="shipyard")
def main() -> None:
    """Shipyard - pull, build and restart apps on a single host.

    Configuration lives in $SHIPYARD_DIR (default /etc/shipyard) and logs in
    $SHIPYARD_LOG_DIR (default /var/log/shipyard).
    """


main.add_command(deploy)
main.add_command(ports)
main.add_command(history)
main.add_command(logs)
main.add_command(serve)
main.add_command(up)
main.add_command(doctor)


if __name__ == "__main__":
    main()
