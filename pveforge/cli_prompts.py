"""Interactive prompt adapter for ``pveforge create -i``.

Prompting only fills in the same structured overrides the flags produce;
defaults shown are the values already resolved from preset, file and flags.
"""
from typing import Any, Dict

import typer
from rich.console import Console


def prompt_overrides(data: Dict[str, Any], console: Console) -> Dict[str, Any]:
    """Ask for the common container settings, one prompt per field."""
    console.print("[bold]Container settings[/bold] [dim](Enter keeps the default)[/dim]")
    network = data.get('network') or {}

    answers: Dict[str, Any] = {
        'vmid': typer.prompt("Container ID", default=data['vmid'], type=int),
        'hostname': typer.prompt("Hostname", default=data['hostname']),
        'cores': typer.prompt("CPU cores", default=data['cores'], type=int),
        'memory': typer.prompt("Memory (MB)", default=data['memory'], type=int),
        'swap': typer.prompt("Swap (MB)", default=data['swap'], type=int),
        'disk_size': typer.prompt("Disk size (GB)", default=data['disk_size'], type=int),
        'storage': typer.prompt("Storage", default=data['storage']),
    }

    ip = typer.prompt("IP address (dhcp or CIDR)", default=network.get('ip', 'dhcp'))
    answers['network'] = {
        'bridge': typer.prompt("Network bridge", default=network.get('bridge', 'vmbr0')),
        'ip': ip,
    }
    if ip != 'dhcp':
        answers['network']['gateway'] = typer.prompt(
            "Gateway", default=network.get('gateway') or ""
        ) or None

    if data.get('password'):
        console.print("[dim]Root password taken from environment/spec file[/dim]")
    else:
        # Both entries are kept; the provisioner rejects a mismatch before create
        answers['password'] = typer.prompt("Root password", hide_input=True)
        answers['password_confirmation'] = typer.prompt("Confirm root password", hide_input=True)

    answers['privileged'] = typer.confirm("Privileged container?", default=bool(data.get('privileged')))
    answers['start'] = typer.confirm("Start after creation?", default=bool(data.get('start')))
    return answers
