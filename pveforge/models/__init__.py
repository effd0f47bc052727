"""Data models for pveforge."""
from pveforge.models.app import AppRecipe, AppRepository, AppService, ConfigEdit
from pveforge.models.container import (
    ContainerHandle,
    ContainerSpec,
    DeviceSpec,
    GpuPassthrough,
    MountSpec,
    NetworkConfig,
)

__all__ = [
    'AppRecipe',
    'AppRepository',
    'AppService',
    'ConfigEdit',
    'ContainerHandle',
    'ContainerSpec',
    'DeviceSpec',
    'GpuPassthrough',
    'MountSpec',
    'NetworkConfig',
]
