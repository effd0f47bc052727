"""App install CLI command."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from pveforge.cli_support import (
    handle_provision_error,
    is_mock,
    print_error,
    print_success,
    setup_logging,
)
from pveforge.core.errors import ProvisionError
from pveforge.services.app_installer import AppInstaller
from pveforge.services.proxmox.containers import ContainerDiscovery


def register_install_commands(root: typer.Typer, console: Console) -> None:
    """Attach the install command to the main CLI."""

    @root.command("install")
    def install(
        app_name: str = typer.Argument(..., metavar="APP", help="App recipe to install (see 'pveforge apps')."),
        vmid: int = typer.Argument(..., metavar="VMID", help="Running container to install into."),
        dry_run: bool = typer.Option(False, "--dry-run", help="Show the steps without running them."),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output."),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Run log file (default: /var/log/pveforge/pveforge.log)."),
    ) -> None:
        """Install an app into an existing container."""
        mock = dry_run or is_mock()
        setup_logging(log_file, verbose, mock)

        if not mock:
            status = ContainerDiscovery().get_container_status(vmid)
            if status is None:
                print_error(console, f"Container {vmid} not found")
                raise typer.Exit(1)
            if status != "running":
                print_error(console, f"Container {vmid} is {status}; start it with 'pct start {vmid}'")
                raise typer.Exit(1)

        installer = AppInstaller(mock=mock)
        try:
            url = installer.install(vmid, app_name)
        except ProvisionError as e:
            handle_provision_error(e, console, verbose=verbose)
        else:
            print_success(console, f"{app_name} installed in container {vmid}")
            if url:
                console.print(f"  Access at: [cyan]{url}[/cyan]")
