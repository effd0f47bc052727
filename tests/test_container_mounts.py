"""Tests for container mount points."""
import subprocess
from pathlib import Path

import pytest

from pveforge.core.errors import ExternalCommandError, InvalidSpec
from pveforge.models.container import MountSpec
from pveforge.services.proxmox.containers.mounts import MountManager


@pytest.fixture
def pct_set(monkeypatch, completed):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return completed()

    monkeypatch.setattr("pveforge.services.proxmox.containers.mounts.subprocess.run", fake_run)
    return calls


def _write_config(host_config, vmid, text):
    path = Path(host_config.lxc_config_dir) / f"{vmid}.conf"
    path.write_text(text)
    return path


class TestGetContainerMounts:
    """Test reading existing mount points."""

    def test_parses_existing_mounts(self, host_config):
        """Test parsing mpN lines from the config."""
        _write_config(host_config, 100, (
            "arch: amd64\n"
            "mp0: /mnt/pve/synology,mp=/synology,ro=1\n"
            "mp2: local-lvm:vm-100-disk-1,mp=/data,size=8G\n"
            "\n[snapshot]\nmp5: /old,mp=/old\n"
        ))

        mounts = MountManager().get_container_mounts(100)

        assert set(mounts) == {'mp0', 'mp2'}
        assert mounts['mp0'] == {'volume': '/mnt/pve/synology', 'mp': '/synology', 'ro': '1'}
        assert mounts['mp2']['ro'] == '0'


class TestAssignSlots:
    """Test mount slot assignment."""

    def test_fills_lowest_free_slots(self, host_config):
        """Test new mounts take the lowest free slots."""
        _write_config(host_config, 100, "mp0: /a,mp=/a\nmp2: /b,mp=/b\n")

        assigned = MountManager().assign_slots(100, [
            MountSpec("/x", "/x"),
            MountSpec("/y", "/y", slot=1),
            MountSpec("/z", "/z"),
        ])

        assert [m.slot for m in assigned] == [3, 1, 4]

    def test_duplicate_explicit_slot(self, host_config):
        """Test an explicit slot already in use."""
        with pytest.raises(InvalidSpec, match="mp1"):
            MountManager().assign_slots(100, [
                MountSpec("/x", "/x", slot=1),
                MountSpec("/y", "/y", slot=1),
            ])


class TestApplyMounts:
    """Test adding mount points with pct set."""

    def test_read_only_mount(self, pct_set, host_config):
        """Test a read-only mount carries ro=1."""
        MountManager().apply_mounts(100, [MountSpec("/mnt/pve/synology", "/synology", read_only=True)])

        assert pct_set == [['pct', 'set', '100', '-mp0', '/mnt/pve/synology,mp=/synology,ro=1']]

    def test_read_write_mount_has_no_ro_flag(self, pct_set, host_config):
        """Test a read-write mount has no ro flag."""
        MountManager().apply_mounts(100, [MountSpec("/tank/downloads", "/downloads")])

        assert pct_set == [['pct', 'set', '100', '-mp0', '/tank/downloads,mp=/downloads']]

    def test_stops_on_first_failure(self, monkeypatch, host_config):
        """Test the first failing pct set stops the run."""
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            raise subprocess.CalledProcessError(2, cmd, stderr="mount point busy")

        monkeypatch.setattr("pveforge.services.proxmox.containers.mounts.subprocess.run", fake_run)

        with pytest.raises(ExternalCommandError) as exc:
            MountManager().apply_mounts(100, [MountSpec("/a", "/a"), MountSpec("/b", "/b")])

        assert exc.value.step == "mounts"
        assert len(calls) == 1

    def test_mock_mode(self, pct_set):
        """Test mock mode runs no command."""
        assigned = MountManager(mock=True).apply_mounts(100, [MountSpec("/a", "/a")])
        assert assigned[0].slot == 0
        assert pct_set == []
