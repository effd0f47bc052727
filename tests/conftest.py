"""Shared test fixtures for pveforge tests."""
import logging
from pathlib import Path
from types import SimpleNamespace

import pytest

from pveforge.core.config import PveforgeConfig, set_config
from pveforge.models.container import ContainerSpec, GpuPassthrough


@pytest.fixture(autouse=True)
def host_config(tmp_path, monkeypatch):
    """Point every host path at a temporary directory and drop all waits."""
    monkeypatch.delenv("PVEFORGE_ROOT_PASSWORD", raising=False)
    monkeypatch.delenv("PVEFORGE_MOCK", raising=False)

    lxc_dir = tmp_path / "lxc"
    lxc_dir.mkdir()
    config = PveforgeConfig(
        container_boot_timeout=1,
        container_ready_interval=0,
        health_check_delay=0,
        lxc_config_dir=str(lxc_dir),
        dri_dir=str(tmp_path / "dri"),
        drm_sysfs_dir=str(tmp_path / "sys"),
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture(autouse=True)
def run_log(tmp_path, monkeypatch):
    """Keep run logs under tmp_path and detach file handlers afterwards."""
    default = tmp_path / "log" / "pveforge.log"
    monkeypatch.setattr("pveforge.core.logger.LOG_FILE", default)
    monkeypatch.setattr("pveforge.core.logger.FALLBACK_LOG_FILE", tmp_path / "fallback.log")
    monkeypatch.setattr("pveforge.core.logger._log_file", None)
    monkeypatch.setattr("pveforge.core.logger._secrets", set())
    yield default

    package_logger = logging.getLogger("pveforge")
    for handler in list(package_logger.handlers):
        if isinstance(handler, logging.FileHandler):
            package_logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def make_gpu(host_config):
    """Create fake DRM card/render nodes plus their sysfs description."""
    def _make(index=0, render=128, vendor="0x8086"):
        dri = Path(host_config.dri_dir)
        dri.mkdir(exist_ok=True)
        (dri / f"card{index}").touch()
        (dri / f"renderD{render}").touch()

        device = Path(host_config.drm_sysfs_dir) / f"card{index}" / "device"
        (device / "drm" / f"renderD{render}").mkdir(parents=True)
        (device / "vendor").write_text(f"{vendor}\n")
        return str(dri / f"card{index}"), str(dri / f"renderD{render}")

    return _make


@pytest.fixture
def plex_spec():
    """Spec matching the plex preset: GPU, no mounts."""
    return ContainerSpec(
        vmid=100,
        hostname="Plex",
        cores=3,
        memory=8192,
        swap=2048,
        password="secret",
        gpu=GpuPassthrough(enabled=True),
    )


@pytest.fixture
def completed():
    """Factory for subprocess.run results."""
    def _completed(returncode=0, stdout="", stderr=""):
        return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)
    return _completed
