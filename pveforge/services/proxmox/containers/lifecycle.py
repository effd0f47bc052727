"""Container lifecycle management (create, start, exec)."""
import shlex
import subprocess
import time
from typing import List, Optional

from pveforge.core.config import get_config
from pveforge.core.errors import ExternalCommandError
from pveforge.core.logger import get_logger
from pveforge.models.container import ContainerHandle, ContainerSpec
from .discovery import ContainerDiscovery
from .templates import TemplateRef

logger = get_logger(__name__)

SECRET_FLAGS = {'--password'}


def redact(cmd: List[str]) -> str:
    """Render a command for logs with secret values masked."""
    shown = []
    hide_next = False
    for part in cmd:
        shown.append('********' if hide_next else part)
        hide_next = part in SECRET_FLAGS
    return shlex.join(shown)


class ContainerLifecycle:
    """Manages LXC container lifecycle operations."""

    def __init__(self, mock: bool = False):
        self.mock = mock
        self.discovery = ContainerDiscovery(mock=mock)

    def build_create_command(self, spec: ContainerSpec, template: TemplateRef) -> List[str]:
        """Build the pct create invocation for a spec.

        The container is always created stopped so that passthrough and
        mounts can be applied before first boot.
        """
        cmd = [
            'pct', 'create', str(spec.vmid), template.volid,
            '--hostname', spec.hostname,
            '--cores', str(spec.cores),
            '--memory', str(spec.memory),
            '--swap', str(spec.swap),
            '--rootfs', f'{spec.storage}:{spec.disk_size}',
            '--net0', spec.network.to_pct(),
            '--unprivileged', '0' if spec.privileged else '1',
        ]

        if spec.features:
            cmd.extend(['--features', ','.join(spec.features)])

        if spec.password:
            cmd.extend(['--password', spec.password])

        if spec.ssh_public_keys:
            cmd.extend(['--ssh-public-keys', spec.ssh_public_keys])

        if spec.onboot:
            cmd.extend(['--onboot', '1'])

        if spec.description:
            cmd.extend(['--description', spec.description])

        cmd.extend(['--start', '0'])
        return cmd

    def create_container(self, spec: ContainerSpec, template: TemplateRef) -> ContainerHandle:
        """Create a new, stopped LXC container.

        Raises:
            ExternalCommandError: pct create returned non-zero
        """
        cmd = self.build_create_command(spec, template)
        handle = ContainerHandle(
            vmid=spec.vmid,
            hostname=spec.hostname,
            config_path=str(self.discovery.config_path(spec.vmid)),
        )

        if spec.privileged:
            logger.warning(f"⚠️  Creating PRIVILEGED container {spec.vmid} - has full root access!")

        if self.mock:
            logger.info(f"MOCK: Would run: {redact(cmd)}")
            return handle

        logger.info(f"Creating container {spec.vmid} ({spec.hostname}) from {template.filename}")
        logger.debug(f"Command: {redact(cmd)}")

        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to create container {spec.vmid}")
            if e.stderr:
                logger.error(f"Error output: {e.stderr}")
            # e.cmd carries the password, so report the redacted form
            raise ExternalCommandError(['pct', 'create', str(spec.vmid)], e.returncode,
                                       e.stderr, step="create") from e

        logger.info(f"✓ Container {spec.vmid} ({spec.hostname}) created")
        return handle

    def start_container(self, vmid: int) -> None:
        """Start a container.

        Raises:
            ExternalCommandError: pct start failed for a reason other than
                the container already running
        """
        if self.mock:
            logger.info(f"MOCK: Would start container {vmid}")
            return

        cmd = ['pct', 'start', str(vmid)]
        try:
            logger.info(f"Starting container {vmid}")
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            if e.stderr and 'already running' in e.stderr.lower():
                logger.info(f"Container {vmid} already running")
                return
            logger.error(f"Failed to start container {vmid}: {e}")
            raise ExternalCommandError(cmd, e.returncode, e.stderr, step="start") from e

        logger.info(f"✓ Container {vmid} started")

    def wait_until_ready(self, vmid: int, timeout: Optional[int] = None) -> None:
        """Block until ``pct exec`` succeeds inside a freshly started container.

        Raises:
            ExternalCommandError: The container did not accept exec before the timeout
        """
        if self.mock:
            logger.info(f"MOCK: Would wait for container {vmid} to initialize")
            return

        config = get_config()
        timeout = config.container_boot_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        cmd = ['pct', 'exec', str(vmid), '--', 'true']

        logger.info(f"Waiting for container {vmid} to initialize...")
        while True:
            remaining = max(deadline - time.monotonic(), 0.1)
            try:
                result = subprocess.run(cmd, capture_output=True, text=True, check=False,
                                        timeout=remaining)
                returncode = result.returncode
            except subprocess.TimeoutExpired:
                returncode = 124
            if returncode == 0:
                logger.debug(f"Container {vmid} accepts exec")
                return
            if time.monotonic() >= deadline:
                raise ExternalCommandError(
                    cmd, returncode,
                    f"container {vmid} not ready after {timeout}s", step="start",
                )
            time.sleep(config.container_ready_interval)

    def exec_container_command(
        self,
        vmid: int,
        command: List[str],
        timeout: Optional[int] = None,
        capture: bool = False,
    ) -> subprocess.CompletedProcess:
        """Run a command inside the container using pct exec.

        Output streams to the terminal unless ``capture`` is set. The
        caller decides what a non-zero exit means.
        """
        base_cmd: List[str] = ['pct', 'exec', str(vmid), '--', *command]

        if self.mock:
            logger.info(f"MOCK: Would execute in container {vmid}: {shlex.join(command)[:120]}")
            return subprocess.CompletedProcess(base_cmd, 0, stdout="", stderr="")

        logger.debug(f"Executing in container {vmid}: {shlex.join(base_cmd)}")
        try:
            return subprocess.run(
                base_cmd,
                capture_output=capture,
                text=True,
                check=False,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Command in container {vmid} timed out after {timeout}s")
            return subprocess.CompletedProcess(base_cmd, 124, stdout="", stderr="timed out")

    def run_script(self, vmid: int, script: str, step: str,
                   timeout: Optional[int] = None) -> None:
        """Run a bash script inside the container with ``set -e``.

        Raises:
            ExternalCommandError: The script exited non-zero
        """
        result = self.exec_container_command(
            vmid, ['bash', '-c', f"set -e\n{script}"], timeout=timeout
        )
        if result.returncode != 0:
            logger.error(f"✗ {step} exited with code {result.returncode} in container {vmid}")
            raise ExternalCommandError(
                ['pct', 'exec', str(vmid)], result.returncode,
                result.stderr or "", step=step,
            )
