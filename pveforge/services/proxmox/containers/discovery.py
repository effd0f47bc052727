"""Container discovery and information retrieval."""
import subprocess
from pathlib import Path
from typing import Dict, Optional

from pveforge.core.config import get_config
from pveforge.core.logger import get_logger

logger = get_logger(__name__)


class ContainerDiscovery:
    """Discovers and retrieves information about Proxmox LXC containers."""

    def __init__(self, mock: bool = False):
        self.mock = mock

    def container_exists(self, vmid: int) -> bool:
        """Check if a container exists.

        ``pct status`` exits non-zero for unknown VMIDs.
        """
        if self.mock:
            logger.info(f"MOCK: Would check whether container {vmid} exists")
            return False

        try:
            subprocess.run(
                ["pct", "status", str(vmid)],
                check=True,
                capture_output=True,
                text=True
            )
            return True
        except subprocess.CalledProcessError:
            return False

    def get_container_status(self, vmid: int) -> Optional[str]:
        """Return 'running', 'stopped', ... or None for unknown VMIDs."""
        if self.mock:
            return "running"

        try:
            result = subprocess.run(
                ["pct", "status", str(vmid)],
                check=True,
                capture_output=True,
                text=True
            )
        except subprocess.CalledProcessError:
            return None

        # "status: running"
        _, _, status = result.stdout.strip().partition(':')
        return status.strip() or None

    def config_path(self, vmid: int) -> Path:
        return Path(get_config().lxc_config_dir) / f"{vmid}.conf"

    def get_container_config(self, vmid: int) -> Dict[str, str]:
        """Get raw configuration for a specific container.

        Only the current section is read; snapshot sections ([name]) are
        ignored.
        """
        config: Dict[str, str] = {}
        config_path = self.config_path(vmid)

        if not config_path.exists():
            logger.warning(f"Container config not found: {config_path}")
            return config

        with open(config_path, 'r') as f:
            for line in f:
                line = line.strip()
                if line.startswith('['):
                    break
                if line and not line.startswith('#') and ':' in line:
                    key, value = line.split(':', 1)
                    config[key.strip()] = value.strip()

        return config
