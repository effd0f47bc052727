"""Device passthrough configuration for LXC containers.

Passthrough is written straight into /etc/pve/lxc/<vmid>.conf while the
container is stopped. Unprivileged containers get ``devN:`` entries, which
let Proxmox handle ownership mapping; privileged containers get raw cgroup2
allow rules plus bind mounts.
"""
import os
import stat
from pathlib import Path
from typing import List, Sequence

from pveforge.core.config import get_config
from pveforge.core.errors import MissingDevice
from pveforge.core.logger import get_logger
from pveforge.models.container import DeviceSpec
from .discovery import ContainerDiscovery

logger = get_logger(__name__)

BLOCK_MARKER = "# pveforge: device passthrough"
DRM_MAJOR = 226
MOCK_DEVICE_NUMBERS = "<major>:<minor>"


class PassthroughManager:
    """Writes device passthrough blocks into container configs."""

    def __init__(self, mock: bool = False):
        self.mock = mock
        self.discovery = ContainerDiscovery(mock=mock)

    def has_passthrough_block(self, config_text: str) -> bool:
        return any(line.strip() == BLOCK_MARKER for line in config_text.splitlines())

    def build_block(self, devices: Sequence[DeviceSpec], privileged: bool,
                    existing_config: str = "") -> List[str]:
        """Render the config lines for a set of devices."""
        lines = [BLOCK_MARKER]
        if privileged:
            lines.extend(self._privileged_lines(devices))
        else:
            lines.extend(self._unprivileged_lines(devices, existing_config))
        return lines

    def _unprivileged_lines(self, devices: Sequence[DeviceSpec], existing_config: str) -> List[str]:
        used = set()
        for line in existing_config.splitlines():
            key = line.split(':', 1)[0].strip()
            if key.startswith('dev') and key[3:].isdigit():
                used.add(int(key[3:]))

        lines = []
        index = 0
        for device in devices:
            while index in used:
                index += 1
            used.add(index)

            options = [device.host_path]
            if device.uid is not None:
                options.append(f"uid={device.uid}")
            if device.gid is not None:
                options.append(f"gid={device.gid}")
            if device.mode:
                options.append(f"mode={device.mode}")
            lines.append(f"dev{index}: {','.join(options)}")

            if device.target != device.host_path:
                # devN always appears at the host path; add a bind for the alias
                lines.append(
                    f"lxc.mount.entry: {device.host_path} {device.target.lstrip('/')} "
                    "none bind,optional,create=file"
                )

        lines.append("lxc.apparmor.profile: unconfined")
        lines.append("lxc.cap.drop:")
        return lines

    def _privileged_lines(self, devices: Sequence[DeviceSpec]) -> List[str]:
        dri_dir = get_config().dri_dir.rstrip('/')
        lines = []
        drm_bound = False

        for device in devices:
            if device.host_path.startswith(dri_dir + '/') and device.target == device.host_path:
                if not drm_bound:
                    lines.append(f"lxc.cgroup2.devices.allow: c {DRM_MAJOR}:* rwm")
                    lines.append(
                        f"lxc.mount.entry: {dri_dir} {dri_dir.lstrip('/')} "
                        "none bind,optional,create=dir"
                    )
                    drm_bound = True
                continue

            lines.append(f"lxc.cgroup2.devices.allow: c {self._device_numbers(device.host_path)} rwm")
            lines.append(
                f"lxc.mount.entry: {device.host_path} {device.target.lstrip('/')} "
                "none bind,optional,create=file"
            )

        return lines

    def _device_numbers(self, path: str) -> str:
        try:
            st = os.stat(path)
        except OSError as e:
            if self.mock:
                return MOCK_DEVICE_NUMBERS
            raise MissingDevice(f"Device {path} not found on host") from e
        if not stat.S_ISCHR(st.st_mode):
            raise MissingDevice(f"{path} is not a character device")
        return f"{os.major(st.st_rdev)}:{os.minor(st.st_rdev)}"

    def apply_passthrough(self, vmid: int, devices: Sequence[DeviceSpec],
                          privileged: bool = False) -> bool:
        """Append the passthrough block to a container config.

        Lines are inserted before any snapshot section. A config that
        already carries the block is left untouched.

        Returns:
            True when the block was written, False when it was already present
        """
        if not devices:
            return False

        config_path = Path(self.discovery.config_path(vmid))

        if self.mock:
            for line in self.build_block(devices, privileged):
                logger.info(f"MOCK: Would append to {config_path}: {line}")
            return True

        text = config_path.read_text() if config_path.exists() else ""
        if self.has_passthrough_block(text):
            logger.info(f"Passthrough already configured for container {vmid}")
            return False

        block = self.build_block(devices, privileged, existing_config=text)

        lines = text.splitlines()
        insert_at = next((i for i, line in enumerate(lines) if line.startswith('[')), len(lines))
        head, tail = lines[:insert_at], lines[insert_at:]
        while head and not head[-1].strip():
            head.pop()

        new_lines = head + [""] + block if head else list(block)
        if tail:
            new_lines += [""] + tail
        config_path.write_text("\n".join(new_lines) + "\n")

        for device in devices:
            logger.info(f"  ✓ Passed through {device.host_path}")
        logger.info(f"✓ Device passthrough configured for container {vmid}")
        return True
