"""Template management for Proxmox LXC containers."""
import re
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from pveforge.core.config import get_config
from pveforge.core.errors import ExternalCommandError, TemplateUnavailable
from pveforge.core.logger import get_logger
from pveforge.core.retry import retry

logger = get_logger(__name__)

MOCK_TEMPLATES = [
    'debian-11-standard_11.7-1_amd64.tar.zst',
    'debian-12-standard_12.2-1_amd64.tar.zst',
    'debian-12-standard_12.12-1_amd64.tar.zst',
]


@dataclass(frozen=True)
class TemplateRef:
    """A template archive on a Proxmox storage."""
    storage: str
    filename: str

    @property
    def volid(self) -> str:
        """Volume ID as passed to pct create (local:vztmpl/<file>)."""
        return f"{self.storage}:vztmpl/{self.filename}"


def version_key(filename: str):
    """Natural sort key so 12.12-1 sorts after 12.2-1."""
    return [int(part) if part.isdigit() else part for part in re.split(r'(\d+)', filename)]


def newest_matching(filenames: List[str], os_version: str) -> Optional[str]:
    """Return the newest '<os_version>-standard_*' archive, if any."""
    prefix = f"{os_version}-standard_"
    matches = [name for name in filenames if name.startswith(prefix)]
    if not matches:
        return None
    return max(matches, key=version_key)


class TemplateManager:
    """Manages Proxmox LXC templates (list, resolve, download)."""

    def __init__(self, mock: bool = False):
        self.mock = mock

    def list_local_templates(self, storage: str = 'local') -> List[str]:
        """Get template file names cached on a storage.

        Returns:
            File names like 'debian-12-standard_12.12-1_amd64.tar.zst'
        """
        if self.mock:
            return list(MOCK_TEMPLATES)

        try:
            result = subprocess.run(
                ['pveam', 'list', storage],
                capture_output=True,
                text=True,
                check=True
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to list templates on {storage}: {e}")
            raise ExternalCommandError(e.cmd, e.returncode, e.stderr, step="template") from e

        templates = []
        for line in result.stdout.splitlines():
            # local:vztmpl/debian-12-standard_12.12-1_amd64.tar.zst  118.00MB
            parts = line.split()
            if parts and ':vztmpl/' in parts[0]:
                templates.append(parts[0].split('/')[-1])

        return templates

    def list_available_templates(self) -> List[str]:
        """Get system templates offered by the Proxmox repository."""
        if self.mock:
            return list(MOCK_TEMPLATES) + ['debian-12-standard_12.13-1_amd64.tar.zst']

        # Refresh the index first; a stale index only costs us newer versions
        try:
            subprocess.run(['pveam', 'update'], capture_output=True, check=True)
        except subprocess.CalledProcessError:
            logger.warning("Failed to update template list")

        try:
            result = subprocess.run(
                ['pveam', 'available', '--section', 'system'],
                capture_output=True,
                text=True,
                check=True
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to get available templates: {e}")
            raise ExternalCommandError(e.cmd, e.returncode, e.stderr, step="template") from e

        templates = []
        for line in result.stdout.splitlines():
            # system          debian-12-standard_12.12-1_amd64.tar.zst
            parts = line.split()
            if len(parts) >= 2:
                templates.append(parts[1])

        return templates

    @retry(max_attempts=3, delay=5, exceptions=(ExternalCommandError,), label="pveam download")
    def download_template(self, storage: str, template: str) -> TemplateRef:
        """Download template from the Proxmox repository with retry on failure.

        Note:
            Automatically retries up to 3 times with exponential backoff on network failures
        """
        if self.mock:
            logger.info(f"MOCK: Would download template {template} to {storage}")
            return TemplateRef(storage, template)

        config = get_config()
        logger.info(f"Downloading {template}...")
        cmd = ['pveam', 'download', storage, template]

        try:
            subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=config.template_download_timeout
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"✗ Failed to download template {template}: {e}")
            if e.stderr:
                logger.error(f"Error output: {e.stderr}")
            raise ExternalCommandError(cmd, e.returncode, e.stderr, step="template") from e
        except subprocess.TimeoutExpired as e:
            logger.error(f"✗ Template download timed out after {config.template_download_timeout}s")
            raise ExternalCommandError(cmd, 124, "timed out", step="template") from e

        logger.info(f"✓ Downloaded template {template}")
        return TemplateRef(storage, template)

    def resolve_template(self, os_version: str, storage: str = 'local',
                         allow_download: bool = False) -> TemplateRef:
        """Find the newest cached template for an OS version.

        Args:
            os_version: Template prefix, e.g. 'debian-12' or 'ubuntu-24.04'
            storage: Template storage to look in and download to
            allow_download: Fetch the newest available template when none is cached

        Raises:
            TemplateUnavailable: Nothing cached and download not permitted or not possible
        """
        logger.info(f"Resolving latest {os_version} template...")
        cached = newest_matching(self.list_local_templates(storage), os_version)
        if cached:
            logger.debug(f"Using cached template {cached}")
            return TemplateRef(storage, cached)

        if not allow_download:
            raise TemplateUnavailable(
                os_version, f"not cached on '{storage}' and download not permitted"
            )

        candidate = newest_matching(self.list_available_templates(), os_version)
        if not candidate:
            raise TemplateUnavailable(os_version, "not offered by pveam available")

        try:
            return self.download_template(storage, candidate)
        except ExternalCommandError as e:
            raise TemplateUnavailable(os_version, f"download failed ({e})") from e
