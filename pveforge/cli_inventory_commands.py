"""Listing commands: presets, apps, GPUs and templates."""
from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from pveforge.cli_support import handle_provision_error, is_mock, print_warning
from pveforge.config.presets import DEFAULTS, PRESETS
from pveforge.core.errors import ProvisionError
from pveforge.discovery.hwdetect import GpuDetector
from pveforge.services.app_installer import RecipeLoader
from pveforge.services.proxmox.containers import TemplateManager


def register_inventory_commands(root: typer.Typer, console: Console) -> None:
    """Attach listing commands to the main CLI."""

    @root.command("presets")
    def presets() -> None:
        """List container presets."""
        table = Table(title="Presets", show_header=True, header_style="bold cyan")
        table.add_column("Preset", style="yellow", no_wrap=True)
        table.add_column("Hostname")
        table.add_column("Resources")
        table.add_column("GPU")
        table.add_column("Apps", style="green", no_wrap=True)
        table.add_column("Description", style="dim")

        for name, preset in PRESETS.items():
            values = {**DEFAULTS, **preset}
            gpu = (preset.get('gpu') or DEFAULTS['gpu']).get('enabled')
            table.add_row(
                name,
                values['hostname'],
                f"{values['cores']} cores, {values['memory']} MB",
                "yes" if gpu else "no",
                ", ".join(values['apps']) or "-",
                preset.get('summary', ""),
            )

        console.print(table)

    @root.command("apps")
    def apps() -> None:
        """List installable app recipes."""
        table = Table(title="Apps", show_header=True, header_style="bold cyan")
        table.add_column("App", style="yellow", no_wrap=True)
        table.add_column("Packages", style="green")
        table.add_column("Source", no_wrap=True)
        table.add_column("Description", style="dim")

        for recipe in RecipeLoader().list_recipes():
            if recipe.repository:
                source = recipe.repository.list_file
            elif recipe.backports:
                source = f"{recipe.release}-backports"
            else:
                source = recipe.release
            table.add_row(recipe.name, ", ".join(recipe.packages), source, recipe.description)

        console.print(table)

    @root.command("gpus")
    def gpus() -> None:
        """List GPU card nodes available for passthrough."""
        devices = GpuDetector(mock=is_mock()).enumerate()
        if not devices:
            print_warning(console, "No GPU card nodes found under /dev/dri")
            raise typer.Exit(1)

        table = Table(title="GPUs", show_header=True, header_style="bold cyan")
        table.add_column("Card", style="yellow")
        table.add_column("Render node")
        table.add_column("Vendor", style="green")
        table.add_column("Model", style="dim")
        for device in devices:
            table.add_row(device.card, device.render or "-", device.vendor, device.model)
        console.print(table)

        if len(devices) > 1:
            console.print("[dim]Several cards found: pick one with --gpu-card[/dim]")

    @root.command("templates")
    def templates(
        storage: str = typer.Option("local", "--storage", help="Template storage to list."),
        available: bool = typer.Option(False, "--available", help="List downloadable templates instead."),
    ) -> None:
        """List cached (or downloadable) container templates."""
        manager = TemplateManager(mock=is_mock())
        try:
            names = (manager.list_available_templates() if available
                     else manager.list_local_templates(storage))
        except ProvisionError as e:
            handle_provision_error(e, console)

        title = "Available templates" if available else f"Templates on {storage}"
        table = Table(title=title, show_header=True, header_style="bold cyan")
        table.add_column("Template", style="yellow", no_wrap=True)
        for name in names:
            table.add_row(name)
        console.print(table)
