"""Tests for container models."""
from dataclasses import FrozenInstanceError

import pytest

from pveforge.models.container import (
    ContainerSpec,
    DeviceSpec,
    GpuPassthrough,
    MountSpec,
    NetworkConfig,
)


class TestNetworkConfig:
    """Test rendering net0."""

    def test_dhcp(self):
        """Test a DHCP interface."""
        assert NetworkConfig().to_pct() == "name=eth0,bridge=vmbr0,firewall=1,ip=dhcp"

    def test_static_with_gateway(self):
        """Test a static address with gateway."""
        net = NetworkConfig(bridge="vmbr1", ip="192.168.1.50/24", gateway="192.168.1.1", firewall=False)
        assert net.to_pct() == "name=eth0,bridge=vmbr1,firewall=0,ip=192.168.1.50/24,gw=192.168.1.1"


class TestMountSpec:
    """Test mount shorthand parsing and rendering."""

    def test_parse_read_only(self):
        """Test parsing a read-only mount."""
        mount = MountSpec.parse("/mnt/pve/synology:/synology:ro")
        assert mount == MountSpec("/mnt/pve/synology", "/synology", read_only=True)

    def test_parse_defaults_to_read_write(self):
        """Test mounts are read-write by default."""
        assert MountSpec.parse("/tank/media:/media").read_only is False

    @pytest.mark.parametrize("value", ["/only-host", ":/guest", "/a:/b:rx", "/a:/b:ro:x"])
    def test_parse_rejects_malformed(self, value):
        """Test malformed mount shorthand."""
        with pytest.raises(ValueError):
            MountSpec.parse(value)

    def test_read_only_flag_rendered_exactly(self):
        """Test the ro=1 suffix."""
        assert MountSpec("/a", "/b", read_only=True).to_pct() == "/a,mp=/b,ro=1"
        assert MountSpec("/a", "/b", read_only=False).to_pct() == "/a,mp=/b"


class TestContainerSpec:
    """Test the frozen container spec."""

    def test_is_frozen(self):
        """Test specs cannot be mutated."""
        spec = ContainerSpec(vmid=100, hostname="test")
        with pytest.raises(FrozenInstanceError):
            spec.cores = 8

    def test_with_changes_returns_copy(self):
        """Test with_changes leaves the original alone."""
        spec = ContainerSpec(vmid=100, hostname="test")
        changed = spec.with_changes(cores=8)
        assert changed.cores == 8
        assert spec.cores == 3

    def test_password_hidden_from_repr(self):
        """Test the password stays out of repr."""
        spec = ContainerSpec(vmid=100, hostname="test", password="hunter2",
                             password_confirmation="hunter2")
        assert "hunter2" not in repr(spec)

    def test_wants_passthrough(self):
        """Test when passthrough is wanted."""
        assert not ContainerSpec(vmid=100, hostname="t").wants_passthrough
        assert ContainerSpec(vmid=100, hostname="t", gpu=GpuPassthrough(enabled=True)).wants_passthrough
        assert ContainerSpec(vmid=100, hostname="t",
                             devices=(DeviceSpec("/dev/ttyUSB0"),)).wants_passthrough

    @pytest.mark.parametrize("changes,expected", [
        ({}, False),
        ({'start': True}, True),
        ({'packages': ('curl',)}, True),
        ({'apps': ('plex',)}, True),
        ({'apt_release': 'bookworm'}, True),
    ])
    def test_needs_start(self, changes, expected):
        """Test when the container has to be started."""
        spec = ContainerSpec(vmid=100, hostname="t").with_changes(**changes)
        assert spec.needs_start is expected

    def test_device_target_defaults_to_host_path(self):
        """Test a device appears at its host path by default."""
        assert DeviceSpec("/dev/dri/card0").target == "/dev/dri/card0"
        assert DeviceSpec("/dev/dri/card1", guest_path="/dev/dri/card0").target == "/dev/dri/card0"
