"""Shared utilities for pveforge CLI modules."""
from __future__ import annotations

import os
from typing import List, Optional

import typer
from rich.console import Console

from pveforge.core.errors import ExternalCommandError, ProvisionError


def is_mock() -> bool:
    """Return True when CLI runs in mock mode."""
    return os.environ.get("PVEFORGE_MOCK") == "1"


def setup_logging(log_file: Optional[str] = None, verbose: bool = False,
                  mock: bool = False) -> None:
    """Set up console verbosity and the run log.

    Runs that change the host always keep a run log (the default location
    unless ``log_file`` is given); dry runs only when ``log_file`` is given.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
        mock: Dry run
    """
    from pveforge.core.logger import set_verbose, setup_file_logging

    set_verbose(verbose)
    if log_file or not mock:
        setup_file_logging(log_file=log_file, verbose=verbose)


def split_options(values: Optional[List[str]]) -> List[str]:
    """Flatten repeatable, comma separated options ("--app plex,sabnzbd")."""
    items: List[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def handle_provision_error(
    e: ProvisionError,
    console: Console,
    vmid: Optional[int] = None,
    created: bool = False,
    verbose: bool = False,
) -> None:
    """Report a failed step and exit non-zero.

    Args:
        e: The error that aborted the run
        console: Rich console for output
        vmid: Container the run was working on
        created: Whether the container already exists on the host
        verbose: Show exception traceback if True
    """
    print_error(console, f"{e.step} failed: {e}")
    if isinstance(e, ExternalCommandError) and e.stderr and verbose:
        console.print(f"[dim]{e.stderr}[/dim]")

    if created and vmid is not None:
        print_warning(console, f"Container {vmid} was left in place for inspection")
        console.print(f"  Remove it with: [cyan]pct destroy {vmid}[/cyan]")

    if verbose:
        console.print_exception()
    raise typer.Exit(1)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    console.print(f"[cyan]{prefix}[/cyan] {message}")
