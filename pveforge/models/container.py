"""Container configuration models."""
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple


@dataclass(frozen=True)
class NetworkConfig:
    """Network configuration for a container."""
    bridge: str = "vmbr0"
    ip: str = "dhcp"  # "dhcp" or CIDR like "192.168.1.100/24"
    gateway: Optional[str] = None
    firewall: bool = True

    def to_pct(self) -> str:
        """Render the --net0 value."""
        firewall = '1' if self.firewall else '0'
        net = f"name=eth0,bridge={self.bridge},firewall={firewall}"
        if self.ip == "dhcp":
            return net + ",ip=dhcp"
        net += f",ip={self.ip}"
        if self.gateway:
            net += f",gw={self.gateway}"
        return net


@dataclass(frozen=True)
class DeviceSpec:
    """A host device node exposed inside the container."""
    host_path: str
    guest_path: Optional[str] = None  # defaults to host_path
    uid: Optional[int] = None
    gid: Optional[int] = None
    mode: Optional[str] = None  # octal string, e.g. "0666"

    @property
    def target(self) -> str:
        return self.guest_path or self.host_path


@dataclass(frozen=True)
class MountSpec:
    """Bind mount from a host path into the container."""
    host_path: str
    guest_path: str
    read_only: bool = False
    slot: Optional[int] = None  # mpN index; next free one when None

    @classmethod
    def parse(cls, value: str) -> "MountSpec":
        """Parse "host:guest[:ro|rw]" shorthand used on the command line."""
        parts = value.split(":")
        if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
            raise ValueError(f"Mount must look like HOST:GUEST[:ro], got '{value}'")
        read_only = False
        if len(parts) == 3:
            if parts[2] not in ("ro", "rw"):
                raise ValueError(f"Mount flag must be 'ro' or 'rw', got '{parts[2]}'")
            read_only = parts[2] == "ro"
        return cls(host_path=parts[0], guest_path=parts[1], read_only=read_only)

    def to_pct(self) -> str:
        """Render the -mpN value."""
        value = f"{self.host_path},mp={self.guest_path}"
        if self.read_only:
            value += ",ro=1"
        return value


@dataclass(frozen=True)
class GpuPassthrough:
    """Intel/AMD iGPU passthrough request.

    ``card`` selects one of several DRM cards (``card1``, ``/dev/dri/card1``
    or ``1``). Left unset, passthrough only proceeds when the host has exactly
    one card.
    """
    enabled: bool = False
    card: Optional[str] = None
    render_gid: int = 993
    video_gid: int = 44
    mode: str = "0666"


@dataclass(frozen=True)
class ContainerSpec:
    """Everything needed to create and configure one LXC container.

    Built once per invocation and passed explicitly to every provisioning
    step; never mutated afterwards.
    """
    vmid: int
    hostname: str
    cores: int = 3
    memory: int = 1024  # MB
    swap: int = 512  # MB
    disk_size: int = 8  # GB
    storage: str = "local-lvm"
    template_storage: str = "local"
    os_version: str = "debian-12"
    network: NetworkConfig = field(default_factory=NetworkConfig)
    password: Optional[str] = field(default=None, repr=False)
    password_confirmation: Optional[str] = field(default=None, repr=False)
    ssh_public_keys: Optional[str] = None
    privileged: bool = False
    features: Tuple[str, ...] = ()
    onboot: bool = False
    gpu: GpuPassthrough = field(default_factory=GpuPassthrough)
    devices: Tuple[DeviceSpec, ...] = ()
    mounts: Tuple[MountSpec, ...] = ()
    start: bool = False
    apt_release: Optional[str] = None
    packages: Tuple[str, ...] = ()
    apps: Tuple[str, ...] = ()
    preset: str = "container"
    description: Optional[str] = None

    @property
    def wants_passthrough(self) -> bool:
        return self.gpu.enabled or bool(self.devices)

    @property
    def needs_start(self) -> bool:
        """Container must run when anything is executed inside it."""
        return self.start or bool(self.packages) or bool(self.apps) or bool(self.apt_release)

    def with_changes(self, **changes) -> "ContainerSpec":
        return replace(self, **changes)


@dataclass(frozen=True)
class ContainerHandle:
    """A created container, as returned by ContainerLifecycle.create_container."""
    vmid: int
    hostname: str
    config_path: str
