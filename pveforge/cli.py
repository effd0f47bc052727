#!/usr/bin/env python3
"""pveforge CLI - Proxmox LXC provisioning for media servers."""

import typer
from rich.console import Console

from pveforge import __version__
from pveforge.cli_create_commands import register_create_commands
from pveforge.cli_install_commands import register_install_commands
from pveforge.cli_inventory_commands import register_inventory_commands
from pveforge.core.logger import get_logger

app = typer.Typer(
    name="pveforge",
    help="""pveforge - Proxmox LXC containers for Plex, SABnzbd and NZBGet

Quick start:
  pveforge presets                          # Browse presets
  pveforge create --preset plex --vmid 200  # Create a Plex container
  pveforge install sabnzbd 201              # Add an app to a container

More commands: pveforge --help
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"pveforge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", callback=_version_callback,
                                 is_eager=True, help="Show version and exit."),
) -> None:
    pass


# Attach modular subcommands
register_create_commands(app, console)
register_install_commands(app, console)
register_inventory_commands(app, console)

if __name__ == "__main__":
    app()
