"""pveforge runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class PveforgeConfig:
    """Runtime configuration for provisioning runs.

    Attributes:
        template_download_timeout: Timeout in seconds for pveam downloads (default: 600)
        container_boot_timeout: Seconds to wait for a started container to accept exec (default: 30)
        container_ready_interval: Seconds between readiness checks (default: 2)
        bootstrap_timeout: Timeout in seconds for the package bootstrap batch (default: 1800)
        app_install_timeout: Timeout in seconds for a single app recipe step (default: 900)
        health_check_delay: Seconds to wait before checking an installed service (default: 5)
        lxc_config_dir: Directory holding <vmid>.conf files
        dri_dir: Host directory containing DRM device nodes
        drm_sysfs_dir: sysfs directory describing DRM devices
    """

    template_download_timeout: int = 600
    container_boot_timeout: int = 30
    container_ready_interval: int = 2
    bootstrap_timeout: int = 1800
    app_install_timeout: int = 900
    health_check_delay: int = 5

    lxc_config_dir: str = "/etc/pve/lxc"
    dri_dir: str = "/dev/dri"
    drm_sysfs_dir: str = "/sys/class/drm"

    @classmethod
    def from_env(cls) -> "PveforgeConfig":
        """Create config from environment variables.

        Environment variables:
            PVEFORGE_TEMPLATE_DOWNLOAD_TIMEOUT: Template download timeout in seconds
            PVEFORGE_CONTAINER_BOOT_TIMEOUT: Container boot timeout in seconds
            PVEFORGE_BOOTSTRAP_TIMEOUT: Bootstrap batch timeout in seconds
            PVEFORGE_APP_INSTALL_TIMEOUT: App recipe step timeout in seconds
            PVEFORGE_LXC_CONFIG_DIR, PVEFORGE_DRI_DIR,
            PVEFORGE_DRM_SYSFS_DIR: Host path overrides

        Returns:
            PveforgeConfig instance with values from environment or defaults
        """
        return cls(
            template_download_timeout=int(
                os.getenv("PVEFORGE_TEMPLATE_DOWNLOAD_TIMEOUT", cls.template_download_timeout)
            ),
            container_boot_timeout=int(
                os.getenv("PVEFORGE_CONTAINER_BOOT_TIMEOUT", cls.container_boot_timeout)
            ),
            container_ready_interval=int(
                os.getenv("PVEFORGE_CONTAINER_READY_INTERVAL", cls.container_ready_interval)
            ),
            bootstrap_timeout=int(
                os.getenv("PVEFORGE_BOOTSTRAP_TIMEOUT", cls.bootstrap_timeout)
            ),
            app_install_timeout=int(
                os.getenv("PVEFORGE_APP_INSTALL_TIMEOUT", cls.app_install_timeout)
            ),
            health_check_delay=int(
                os.getenv("PVEFORGE_HEALTH_CHECK_DELAY", cls.health_check_delay)
            ),
            lxc_config_dir=os.getenv("PVEFORGE_LXC_CONFIG_DIR", cls.lxc_config_dir),
            dri_dir=os.getenv("PVEFORGE_DRI_DIR", cls.dri_dir),
            drm_sysfs_dir=os.getenv("PVEFORGE_DRM_SYSFS_DIR", cls.drm_sysfs_dir),
        )


# Global config instance (can be overridden)
_config: Optional[PveforgeConfig] = None


def get_config() -> PveforgeConfig:
    """Get the global pveforge configuration.

    Returns:
        PveforgeConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = PveforgeConfig.from_env()
    return _config


def set_config(config: Optional[PveforgeConfig]):
    """Set (or with None, reset) the global pveforge configuration."""
    global _config
    _config = config
