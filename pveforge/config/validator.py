"""Container spec validation logic."""
import ipaddress
import re
from typing import Any, Dict, List, Optional

from pveforge.core.errors import InvalidSpec

HOSTNAME_RE = re.compile(r'^(?=.{1,63}$)[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?$')
STORAGE_RE = re.compile(r'^[A-Za-z][A-Za-z0-9\-_.]*$')
BRIDGE_RE = re.compile(r'^[A-Za-z][A-Za-z0-9\-_.]{0,14}$')
OS_VERSION_RE = re.compile(r'^[a-z]+-[0-9][0-9.]*$')
RELEASE_RE = re.compile(r'^[a-z]+$')
FEATURE_RE = re.compile(r'^[a-z_]+=[A-Za-z0-9;]+$')
MODE_RE = re.compile(r'^0?[0-7]{3}$')

MIN_VMID = 100
MAX_VMID = 999999999

ALLOWED_KEYS = {
    'vmid', 'hostname', 'cores', 'memory', 'swap', 'disk_size', 'storage',
    'template_storage', 'os_version', 'network', 'password',
    'password_confirmation', 'ssh_public_keys', 'privileged', 'features',
    'onboot', 'gpu', 'devices', 'mounts', 'start', 'apt_release', 'packages',
    'apps', 'preset', 'description',
}
NETWORK_KEYS = {'bridge', 'ip', 'gateway', 'firewall'}
GPU_KEYS = {'enabled', 'card', 'render_gid', 'video_gid', 'mode'}
DEVICE_KEYS = {'host_path', 'guest_path', 'uid', 'gid', 'mode'}
MOUNT_KEYS = {'host_path', 'guest_path', 'read_only', 'slot'}
LIST_KEYS = ('features', 'packages', 'apps', 'devices', 'mounts')
MAPPING_KEYS = ('network', 'gpu')
TEXT_KEYS = ('password', 'password_confirmation', 'ssh_public_keys', 'description')


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _mode_error(field: str, mode: Any) -> Optional[str]:
    if mode is None:
        return None
    # YAML reads an unquoted 0660 as the integer 432
    if not isinstance(mode, str):
        return f"{field} must be a quoted octal string like '0660', got {mode!r}"
    if not MODE_RE.match(mode):
        return f"{field} '{mode}' must be an octal mode like '0666'"
    return None


class SpecValidator:
    """Validates merged container spec data before it becomes a ContainerSpec."""

    def validate(self, data: Dict[str, Any]) -> None:
        """Validate spec data.

        Raises:
            InvalidSpec: If any field is invalid (all problems are reported at once)
        """
        errors: List[str] = []

        unknown = set(data) - ALLOWED_KEYS
        if unknown:
            errors.append(f"Unknown field(s): {', '.join(sorted(unknown))}")

        vmid = data.get('vmid')
        if not _is_int(vmid) or not MIN_VMID <= vmid <= MAX_VMID:
            errors.append(f"vmid must be an integer between {MIN_VMID} and {MAX_VMID}, got {vmid!r}")

        hostname = data.get('hostname')
        if not isinstance(hostname, str) or not HOSTNAME_RE.match(hostname):
            errors.append(f"hostname '{hostname}' is not a valid host name")

        for key, unit in (('cores', ''), ('memory', ' MB'), ('swap', ' MB'), ('disk_size', ' GB')):
            value = data.get(key)
            if not _is_int(value) or value <= 0:
                errors.append(f"{key} must be a positive integer{unit}, got {value!r}")

        for key in ('storage', 'template_storage'):
            value = data.get(key)
            if not isinstance(value, str) or not STORAGE_RE.match(value):
                errors.append(f"{key} '{value}' is not a valid storage name")

        os_version = data.get('os_version')
        if not isinstance(os_version, str) or not OS_VERSION_RE.match(os_version):
            errors.append(f"os_version '{os_version}' should look like 'debian-12'")

        release = data.get('apt_release')
        if release is not None and (not isinstance(release, str) or not RELEASE_RE.match(release)):
            errors.append(f"apt_release '{release}' should be a codename like 'bookworm'")

        for key in TEXT_KEYS:
            if data.get(key) is not None and not isinstance(data[key], str):
                errors.append(f"{key} must be a string; quote it in YAML")

        # Wrongly shaped fields are reported once and not checked further
        malformed = set()
        for key, empty in [(k, []) for k in LIST_KEYS] + [(k, {}) for k in MAPPING_KEYS]:
            if not isinstance(data.get(key) or empty, type(empty)):
                kind = "list" if isinstance(empty, list) else "mapping"
                errors.append(f"{key} must be a {kind}, got {data[key]!r}")
                malformed.add(key)

        for feature in [] if 'features' in malformed else data.get('features') or []:
            if not isinstance(feature, str) or not FEATURE_RE.match(feature):
                errors.append(f"feature '{feature}' should look like 'nesting=1'")

        for key in ('packages', 'apps'):
            if key not in malformed and not all(isinstance(v, str) and v for v in data.get(key) or []):
                errors.append(f"{key} must be a list of names")

        if 'network' not in malformed:
            errors.extend(self._validate_network(data.get('network') or {}))
        if 'gpu' not in malformed:
            errors.extend(self._validate_gpu(data.get('gpu') or {}))
        if 'devices' not in malformed:
            errors.extend(self._validate_devices(data.get('devices') or []))
        if 'mounts' not in malformed:
            errors.extend(self._validate_mounts(data.get('mounts') or []))

        if errors:
            raise InvalidSpec(errors)

    def _validate_network(self, network: Dict[str, Any]) -> List[str]:
        errors = []
        unknown = set(network) - NETWORK_KEYS
        if unknown:
            errors.append(f"network: unknown field(s) {', '.join(sorted(unknown))}")

        bridge = network.get('bridge')
        if not isinstance(bridge, str) or not BRIDGE_RE.match(bridge):
            errors.append(f"network.bridge '{bridge}' is not a valid bridge name")

        ip = network.get('ip', 'dhcp')
        if ip != 'dhcp':
            if not isinstance(ip, str) or '/' not in ip:
                errors.append(f"network.ip '{ip}' must be 'dhcp' or CIDR (e.g. '192.168.1.100/24')")
            else:
                try:
                    ipaddress.ip_interface(ip)
                except ValueError:
                    errors.append(f"network.ip '{ip}' is not a valid address")

        gateway = network.get('gateway')
        if gateway is not None:
            try:
                if not isinstance(gateway, str):
                    raise ValueError(gateway)
                ipaddress.ip_address(gateway)
            except ValueError:
                errors.append(f"network.gateway '{gateway}' is not a valid address")
            if ip == 'dhcp':
                errors.append("network.gateway is only used with a static ip")

        return errors

    def _validate_gpu(self, gpu: Dict[str, Any]) -> List[str]:
        errors = []
        unknown = set(gpu) - GPU_KEYS
        if unknown:
            errors.append(f"gpu: unknown field(s) {', '.join(sorted(unknown))}")
        for key in ('render_gid', 'video_gid'):
            value = gpu.get(key)
            if value is not None and (not _is_int(value) or value < 0):
                errors.append(f"gpu.{key} must be a non-negative integer")
        mode_error = _mode_error("gpu.mode", gpu.get('mode'))
        if mode_error:
            errors.append(mode_error)
        return errors

    def _validate_devices(self, devices: List[Any]) -> List[str]:
        errors = []
        for i, device in enumerate(devices):
            if not isinstance(device, dict):
                errors.append(f"devices[{i}] must be a mapping")
                continue
            unknown = set(device) - DEVICE_KEYS
            if unknown:
                errors.append(f"devices[{i}]: unknown field(s) {', '.join(sorted(unknown))}")
            for key in ('host_path', 'guest_path'):
                value = device.get(key)
                if (key == 'host_path' or value is not None) and not str(value or '').startswith('/'):
                    errors.append(f"devices[{i}].{key} must be an absolute path")
            for key in ('uid', 'gid'):
                value = device.get(key)
                if value is not None and (not _is_int(value) or value < 0):
                    errors.append(f"devices[{i}].{key} must be a non-negative integer")
            mode_error = _mode_error(f"devices[{i}].mode", device.get('mode'))
            if mode_error:
                errors.append(mode_error)
        return errors

    def _validate_mounts(self, mounts: List[Any]) -> List[str]:
        errors = []
        guest_paths = set()
        for i, mount in enumerate(mounts):
            if not isinstance(mount, dict):
                errors.append(f"mounts[{i}] must be a mapping")
                continue
            unknown = set(mount) - MOUNT_KEYS
            if unknown:
                errors.append(f"mounts[{i}]: unknown field(s) {', '.join(sorted(unknown))}")
            for key in ('host_path', 'guest_path'):
                if not str(mount.get(key) or '').startswith('/'):
                    errors.append(f"mounts[{i}].{key} must be an absolute path")
            if not isinstance(mount.get('read_only', False), bool):
                errors.append(f"mounts[{i}].read_only must be true or false")
            slot = mount.get('slot')
            if slot is not None and (not _is_int(slot) or not 0 <= slot < 256):
                errors.append(f"mounts[{i}].slot must be between 0 and 255")
            guest = mount.get('guest_path')
            if guest in guest_paths:
                errors.append(f"mounts[{i}]: {guest} is mounted twice")
            guest_paths.add(guest)
        return errors
