"""End-to-end container provisioning.

A run is a fixed, fail-fast sequence:

    validate -> resolve template -> create (stopped) -> passthrough -> mounts
    -> start -> wait -> bootstrap -> apps

Start and everything after it only happen when the spec asks for it. The
first error aborts the run; nothing created so far is torn down.
"""
import os
import shlex
import stat
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pveforge.core.config import get_config
from pveforge.core.errors import (
    BootstrapFailed,
    DuplicateContainerID,
    ExternalCommandError,
    MissingDevice,
    PasswordMismatch,
)
from pveforge.core.logger import get_logger
from pveforge.discovery.hwdetect import GpuDetector
from pveforge.models.container import ContainerHandle, ContainerSpec, DeviceSpec, MountSpec
from pveforge.services.app_installer import AppInstaller, render_debian_sources, write_file_script
from pveforge.services.proxmox.containers import (
    ContainerDiscovery,
    ContainerLifecycle,
    MountManager,
    PassthroughManager,
    TemplateManager,
    TemplateRef,
)

logger = get_logger(__name__)


@dataclass
class ProvisionResult:
    """Summary of a completed provisioning run."""
    handle: ContainerHandle
    template: TemplateRef
    devices: List[DeviceSpec] = field(default_factory=list)
    mounts: List[MountSpec] = field(default_factory=list)
    started: bool = False
    packages: List[str] = field(default_factory=list)
    apps: List[str] = field(default_factory=list)
    access_urls: List[str] = field(default_factory=list)

    @property
    def vmid(self) -> int:
        return self.handle.vmid


class Provisioner:
    """Creates and configures one LXC container from a ContainerSpec."""

    def __init__(
        self,
        mock: bool = False,
        discovery: Optional[ContainerDiscovery] = None,
        templates: Optional[TemplateManager] = None,
        lifecycle: Optional[ContainerLifecycle] = None,
        mounts: Optional[MountManager] = None,
        passthrough: Optional[PassthroughManager] = None,
        gpu_detector: Optional[GpuDetector] = None,
        app_installer: Optional[AppInstaller] = None,
    ):
        self.mock = mock
        self.discovery = discovery or ContainerDiscovery(mock=mock)
        self.templates = templates or TemplateManager(mock=mock)
        self.lifecycle = lifecycle or ContainerLifecycle(mock=mock)
        self.mounts = mounts or MountManager(mock=mock)
        self.passthrough = passthrough or PassthroughManager(mock=mock)
        self.gpu_detector = gpu_detector or GpuDetector(mock=mock)
        self.app_installer = app_installer or AppInstaller(mock=mock, lifecycle=self.lifecycle)
        # Set once pct create succeeded, so callers can report what was left behind
        self.created: Optional[ContainerHandle] = None

    # -----------------------------
    #  Preconditions
    # -----------------------------
    def validate(self, spec: ContainerSpec) -> List[DeviceSpec]:
        """Check host-side preconditions before anything is created.

        Returns:
            The devices to pass through, GPU nodes resolved to concrete paths

        Raises:
            DuplicateContainerID: vmid already in use
            PasswordMismatch: confirmation was collected and differs
            MissingDevice: GPU requested but no card found, or a device path is missing
            AmbiguousDevice: several GPU cards and none selected
        """
        logger.info(f"Validating spec for container {spec.vmid} ({spec.hostname})")

        if self.discovery.container_exists(spec.vmid):
            raise DuplicateContainerID(spec.vmid)

        if spec.password_confirmation is not None and spec.password != spec.password_confirmation:
            raise PasswordMismatch()

        devices: List[DeviceSpec] = []
        if spec.gpu.enabled:
            devices.extend(self._gpu_devices(spec))

        for device in spec.devices:
            if not self.mock:
                self._check_device_node(device.host_path)
            devices.append(device)

        return devices

    def _gpu_devices(self, spec: ContainerSpec) -> List[DeviceSpec]:
        gpu = spec.gpu
        selected = self.gpu_detector.select(self.gpu_detector.enumerate(), gpu.card)
        logger.info(f"Using GPU {selected.card}"
                    + (f" ({selected.model})" if selected.model else ""))

        devices = []
        if selected.render:
            devices.append(DeviceSpec(selected.render, gid=gpu.render_gid, mode=gpu.mode))
        else:
            logger.warning(f"No render node paired with {selected.card}; "
                           "hardware transcoding may be unavailable")
        devices.append(DeviceSpec(selected.card, gid=gpu.video_gid, mode=gpu.mode))
        return devices

    @staticmethod
    def _check_device_node(path: str) -> None:
        try:
            mode = os.stat(path).st_mode
        except OSError as e:
            raise MissingDevice(f"Device {path} not found on host") from e
        if not stat.S_ISCHR(mode):
            raise MissingDevice(f"{path} is not a character device")

    # -----------------------------
    #  Steps
    # -----------------------------
    def resolve_template(self, os_version: str, storage: str = 'local',
                         allow_download: bool = False) -> TemplateRef:
        template = self.templates.resolve_template(os_version, storage, allow_download)
        logger.info(f"Using template {template.volid}")
        return template

    def create(self, spec: ContainerSpec, template: TemplateRef) -> ContainerHandle:
        return self.lifecycle.create_container(spec, template)

    def apply_passthrough(self, handle: ContainerHandle, devices: Sequence[DeviceSpec],
                          privileged: bool = False) -> bool:
        if not devices:
            return False
        logger.info(f"Configuring device passthrough for container {handle.vmid}")
        return self.passthrough.apply_passthrough(handle.vmid, devices, privileged)

    def apply_mounts(self, handle: ContainerHandle, mounts: Sequence[MountSpec]) -> List[MountSpec]:
        if not mounts:
            return []
        logger.info(f"Adding {len(mounts)} mount point(s) to container {handle.vmid}")
        return self.mounts.apply_mounts(handle.vmid, mounts)

    def start(self, handle: ContainerHandle) -> None:
        """Start the container and wait until it accepts exec."""
        self.lifecycle.start_container(handle.vmid)
        self.lifecycle.wait_until_ready(handle.vmid)

    def build_bootstrap_script(self, packages: Sequence[str],
                               apt_release: Optional[str] = None) -> str:
        """Render the bootstrap batch run inside the container."""
        script = "export DEBIAN_FRONTEND=noninteractive\n"
        if apt_release:
            script += write_file_script("/etc/apt/sources.list",
                                        render_debian_sources(apt_release)) + "\n"
        script += "apt-get update\napt-get upgrade -y"
        if packages:
            script += "\napt-get install -y " + " ".join(shlex.quote(p) for p in packages)
        return script

    def bootstrap(self, handle: ContainerHandle, packages: Sequence[str],
                  apt_release: Optional[str] = None) -> None:
        """Update the container and install bootstrap packages.

        Raises:
            BootstrapFailed: The batch exited non-zero
        """
        if not packages and not apt_release:
            return

        logger.info(f"Bootstrapping container {handle.vmid}"
                    + (f": {', '.join(packages)}" if packages else ""))
        script = self.build_bootstrap_script(packages, apt_release)
        try:
            self.lifecycle.run_script(handle.vmid, script, step="bootstrap",
                                      timeout=get_config().bootstrap_timeout)
        except ExternalCommandError as e:
            raise BootstrapFailed(e.command, e.returncode, e.stderr) from e
        logger.info(f"✓ Container {handle.vmid} bootstrapped")

    # -----------------------------
    #  Whole run
    # -----------------------------
    def provision(self, spec: ContainerSpec, allow_download: bool = False) -> ProvisionResult:
        """Run the full provisioning sequence for one spec.

        Raises:
            ProvisionError: Any step failed; earlier steps are not undone
        """
        self.created = None
        devices = self.validate(spec)
        template = self.resolve_template(spec.os_version, spec.template_storage, allow_download)

        handle = self.create(spec, template)
        self.created = handle
        result = ProvisionResult(handle=handle, template=template, devices=devices)

        # Config changes only apply cleanly while the container is stopped
        if spec.wants_passthrough:
            self.apply_passthrough(handle, devices, spec.privileged)
        result.mounts = self.apply_mounts(handle, spec.mounts)

        if not spec.needs_start:
            logger.info(f"✓ Container {handle.vmid} created (not started)")
            return result

        self.start(handle)
        result.started = True

        self.bootstrap(handle, spec.packages, spec.apt_release)
        result.packages = list(spec.packages)

        for app in spec.apps:
            url = self.app_installer.install(handle.vmid, app)
            result.apps.append(app)
            if url:
                result.access_urls.append(url)

        logger.info(f"✓ Container {handle.vmid} ({handle.hostname}) provisioned")
        return result
