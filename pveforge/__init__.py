"""pveforge - Proxmox LXC provisioning for media-server containers."""

__version__ = "0.3.0"
