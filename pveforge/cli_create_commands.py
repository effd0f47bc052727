"""Container creation CLI command."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import typer
from rich.console import Console

from pveforge.cli_support import (
    handle_provision_error,
    is_mock,
    print_info,
    print_success,
    print_warning,
    setup_logging,
    split_options,
)
from pveforge.config import DEFAULT_PRESET, SpecLoader
from pveforge.core.errors import InvalidSpec, ProvisionError


def _collect_overrides(**options: Any) -> Dict[str, Any]:
    """Map CLI flag values onto spec keys; unset flags are dropped."""
    network = {
        'bridge': options.pop('bridge'),
        'ip': options.pop('ip'),
        'gateway': options.pop('gateway'),
        'firewall': options.pop('firewall'),
    }
    gpu = {
        'enabled': options.pop('gpu'),
        'card': options.pop('gpu_card'),
    }

    overrides: Dict[str, Any] = {k: v for k, v in options.items() if v is not None}
    if any(v is not None for v in network.values()):
        overrides['network'] = network
    if any(v is not None for v in gpu.values()):
        overrides['gpu'] = gpu
    return overrides


def register_create_commands(root: typer.Typer, console: Console) -> None:
    """Attach the create command to the main CLI."""

    @root.command("create")
    def create(
        preset: str = typer.Option(DEFAULT_PRESET, "--preset", "-p", help="Preset to start from (see 'pveforge presets')."),
        spec_file: Optional[str] = typer.Option(None, "--spec", "-s", help="YAML spec file layered over the preset."),
        interactive: bool = typer.Option(False, "--interactive", "-i", help="Prompt for common settings."),
        vmid: Optional[int] = typer.Option(None, "--vmid", help="Container ID (>= 100)."),
        hostname: Optional[str] = typer.Option(None, "--hostname", help="Container hostname."),
        cores: Optional[int] = typer.Option(None, "--cores", help="CPU cores."),
        memory: Optional[int] = typer.Option(None, "--memory", help="Memory in MB."),
        swap: Optional[int] = typer.Option(None, "--swap", help="Swap in MB."),
        disk_size: Optional[int] = typer.Option(None, "--disk-size", help="Root disk size in GB."),
        storage: Optional[str] = typer.Option(None, "--storage", help="Storage pool for the root disk."),
        template_storage: Optional[str] = typer.Option(None, "--template-storage", help="Storage holding templates."),
        os_version: Optional[str] = typer.Option(None, "--os", help="Template prefix, e.g. debian-12."),
        bridge: Optional[str] = typer.Option(None, "--bridge", help="Network bridge."),
        ip: Optional[str] = typer.Option(None, "--ip", help="'dhcp' or CIDR address."),
        gateway: Optional[str] = typer.Option(None, "--gateway", help="Gateway for a static address."),
        firewall: Optional[bool] = typer.Option(None, "--firewall/--no-firewall", help="Proxmox firewall on net0."),
        ssh_public_keys: Optional[str] = typer.Option(None, "--ssh-public-keys", help="Authorized keys file for root."),
        privileged: Optional[bool] = typer.Option(None, "--privileged/--unprivileged", help="Container privilege mode."),
        features: Optional[List[str]] = typer.Option(None, "--feature", help="LXC feature, e.g. nesting=1 (repeatable)."),
        onboot: Optional[bool] = typer.Option(None, "--onboot/--no-onboot", help="Start with the host."),
        gpu: Optional[bool] = typer.Option(None, "--gpu/--no-gpu", help="Pass the host iGPU through."),
        gpu_card: Optional[str] = typer.Option(None, "--gpu-card", help="GPU card to use (card1, /dev/dri/card1 or 1)."),
        mounts: Optional[List[str]] = typer.Option(None, "--mount", "-m", help="HOST:GUEST[:ro] bind mount (repeatable)."),
        start: Optional[bool] = typer.Option(None, "--start/--no-start", help="Start after configuration."),
        apt_release: Optional[str] = typer.Option(None, "--apt-release", help="Debian codename for sources.list."),
        packages: Optional[List[str]] = typer.Option(None, "--package", help="Package to install (repeatable, comma separated)."),
        apps: Optional[List[str]] = typer.Option(None, "--app", help="App recipe to install (repeatable, comma separated)."),
        description: Optional[str] = typer.Option(None, "--description", help="Container notes shown in Proxmox."),
        download_template: bool = typer.Option(True, "--download-template/--no-download-template",
                                               help="Download the template when it is not cached."),
        dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be done without changing anything."),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output."),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Run log file (default: /var/log/pveforge/pveforge.log)."),
    ) -> None:
        """Create and configure an LXC container."""
        mock = dry_run or is_mock()
        setup_logging(log_file, verbose, mock)

        overrides = _collect_overrides(
            vmid=vmid, hostname=hostname, cores=cores, memory=memory, swap=swap,
            disk_size=disk_size, storage=storage, template_storage=template_storage,
            os_version=os_version, bridge=bridge, ip=ip, gateway=gateway,
            firewall=firewall, ssh_public_keys=ssh_public_keys, privileged=privileged,
            features=split_options(features) or None, onboot=onboot, gpu=gpu,
            gpu_card=gpu_card, mounts=list(mounts) if mounts else None, start=start,
            apt_release=apt_release, packages=split_options(packages) or None,
            apps=split_options(apps) or None, description=description,
        )

        from pveforge.services.provisioner import Provisioner

        loader = SpecLoader()
        provisioner = Provisioner(mock=mock)
        spec = None
        try:
            data = loader.resolve(preset, spec_file, overrides)
            if interactive:
                from pveforge.cli_prompts import prompt_overrides
                data = loader.resolve(preset, spec_file, {**overrides, **prompt_overrides(data, console)})
            spec = loader.build(data)

            if mock:
                print_info(console, "Dry run: no changes will be made")
            if not spec.password and not spec.ssh_public_keys:
                print_warning(console, "No root password or SSH key set; use 'pct enter' to log in")

            result = provisioner.provision(spec, allow_download=download_template)
        except InvalidSpec as e:
            handle_provision_error(e, console, verbose=verbose)
        except ProvisionError as e:
            created = provisioner.created is not None
            handle_provision_error(e, console, vmid=spec.vmid if spec else None,
                                   created=created, verbose=verbose)
        else:
            state = "running" if result.started else "stopped"
            print_success(console, f"Container {result.vmid} ({spec.hostname}) is ready ({state})")
            for mount in result.mounts:
                console.print(f"  mp{mount.slot}: {mount.host_path} -> {mount.guest_path}"
                              + (" (ro)" if mount.read_only else ""))
            for device in result.devices:
                console.print(f"  device: {device.host_path}")
            for url in result.access_urls:
                console.print(f"  Access at: [cyan]{url}[/cyan]")
            if not result.started:
                console.print(f"  Start it with: [cyan]pct start {result.vmid}[/cyan]")
