"""Proxmox LXC container management.

This package separates container operations by concern:
- TemplateManager: Template lookup and download
- ContainerDiscovery: Query container information
- ContainerLifecycle: Create, start and exec into containers
- MountManager: Manage container mount points
- PassthroughManager: Write device passthrough into container configs
"""
from .templates import TemplateManager, TemplateRef
from .discovery import ContainerDiscovery
from .lifecycle import ContainerLifecycle
from .mounts import MountManager
from .passthrough import PassthroughManager

__all__ = [
    'TemplateManager',
    'TemplateRef',
    'ContainerDiscovery',
    'ContainerLifecycle',
    'MountManager',
    'PassthroughManager',
]
