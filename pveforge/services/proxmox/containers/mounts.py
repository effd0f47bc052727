"""Mount management for Proxmox LXC containers."""
import subprocess
from typing import Dict, Iterable, List, Optional, Set

from pveforge.core.errors import ExternalCommandError, InvalidSpec
from pveforge.core.logger import get_logger
from pveforge.models.container import MountSpec
from .discovery import ContainerDiscovery

logger = get_logger(__name__)

MAX_MOUNT_POINTS = 256


class MountManager:
    """Manages mount points for LXC containers."""

    def __init__(self, mock: bool = False):
        self.mock = mock
        self.discovery = ContainerDiscovery(mock=mock)

    def get_container_mounts(self, vmid: int) -> Dict[str, Dict[str, str]]:
        """Get all mount points configured for a container.

        Returns:
            Dict of mount point IDs to their configuration
            Example: {
                'mp0': {'volume': '/mnt/pve/synology', 'mp': '/synology', 'ro': '1'},
            }
        """
        if self.mock:
            return {}

        mounts = {}
        for key, value in self.discovery.get_container_config(vmid).items():
            if key.startswith('mp') and key[2:].isdigit():
                mounts[key] = self._parse_mount_config(value)
        return mounts

    @staticmethod
    def _parse_mount_config(config_str: str) -> Dict[str, str]:
        """Parse "/mnt/pve/synology,mp=/synology,ro=1"."""
        parts = config_str.split(',')
        result = {'volume': parts[0].strip(), 'ro': '0'}

        for part in parts[1:]:
            if '=' in part:
                key, val = part.split('=', 1)
                result[key.strip()] = val.strip()

        return result

    def assign_slots(self, vmid: int, mounts: Iterable[MountSpec]) -> List[MountSpec]:
        """Give every mount a concrete mpN slot.

        Explicit slots are kept; the rest take the lowest numbers not used by
        the container config or by another mount in the same batch.

        Raises:
            InvalidSpec: Two mounts claim the same slot or no slot is left
        """
        mounts = list(mounts)
        used: Set[int] = {int(key[2:]) for key in self.get_container_mounts(vmid)}

        errors = []
        claimed: Set[int] = set()
        for mount in mounts:
            if mount.slot is None:
                continue
            if mount.slot in claimed:
                errors.append(f"mount slot mp{mount.slot} requested twice")
            claimed.add(mount.slot)
        if errors:
            raise InvalidSpec(errors)

        taken = used | claimed
        assigned = []
        for mount in mounts:
            slot: Optional[int] = mount.slot
            if slot is None:
                slot = next((i for i in range(MAX_MOUNT_POINTS) if i not in taken), None)
                if slot is None:
                    raise InvalidSpec([f"No free mount points available for container {vmid}"])
                taken.add(slot)
            assigned.append(MountSpec(mount.host_path, mount.guest_path, mount.read_only, slot))

        return assigned

    def add_container_mount(self, vmid: int, mount: MountSpec) -> None:
        """Add a mount point to a stopped container with ``pct set``.

        Raises:
            ExternalCommandError: pct set returned non-zero
        """
        value = mount.to_pct()
        cmd = ["pct", "set", str(vmid), f"-mp{mount.slot}", value]

        if self.mock:
            logger.info(f"MOCK: Would run: {' '.join(cmd)}")
            return

        access = "read-only" if mount.read_only else "read-write"
        logger.info(f"Adding {access} mount mp{mount.slot} to container {vmid}: "
                    f"{mount.host_path} -> {mount.guest_path}")
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to add container mount: {e}")
            raise ExternalCommandError(cmd, e.returncode, e.stderr, step="mounts") from e

    def apply_mounts(self, vmid: int, mounts: Iterable[MountSpec]) -> List[MountSpec]:
        """Add every mount in order, failing on the first error.

        Returns:
            The mounts with their assigned slots
        """
        assigned = self.assign_slots(vmid, mounts)
        for mount in assigned:
            self.add_container_mount(vmid, mount)
        return assigned
