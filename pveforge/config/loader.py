"""Builds a ContainerSpec from presets, spec files and overrides.

Layers are merged in order, later ones winning:

    DEFAULTS <- PRESETS[preset] <- YAML spec file <- environment <- CLI flags

Nested mappings (``network``, ``gpu``) are merged key by key; every other
value, lists included, is replaced wholesale.
"""
import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from pveforge.config.presets import DEFAULT_PRESET, DEFAULTS, PRESETS
from pveforge.config.validator import SpecValidator
from pveforge.core.errors import InvalidSpec
from pveforge.core.logger import get_logger, hide_secret
from pveforge.models.container import (
    ContainerSpec,
    DeviceSpec,
    GpuPassthrough,
    MountSpec,
    NetworkConfig,
)

logger = get_logger(__name__)

PASSWORD_ENV = "PVEFORGE_ROOT_PASSWORD"
NESTED_KEYS = ('network', 'gpu')


def merge_layer(base: Dict[str, Any], layer: Dict[str, Any]) -> Dict[str, Any]:
    """Merge one layer onto base. None values in the layer are ignored."""
    merged = copy.deepcopy(base)
    for key, value in layer.items():
        if value is None:
            continue
        if key in NESTED_KEYS and isinstance(value, dict) and isinstance(merged.get(key), dict):
            nested = dict(merged[key])
            nested.update({k: v for k, v in value.items() if v is not None})
            merged[key] = nested
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def expand_shorthand(layer: Dict[str, Any]) -> Dict[str, Any]:
    """Accept ``gpu: true`` as short for ``gpu: {enabled: true}``."""
    if isinstance(layer.get('gpu'), bool):
        return {**layer, 'gpu': {'enabled': layer['gpu']}}
    return layer


def _normalize_mount(mount: Any) -> Any:
    if isinstance(mount, str):
        try:
            parsed = MountSpec.parse(mount)
        except ValueError as e:
            raise InvalidSpec([str(e)]) from e
        return {'host_path': parsed.host_path, 'guest_path': parsed.guest_path,
                'read_only': parsed.read_only}
    return mount


def _normalize_device(device: Any) -> Any:
    if isinstance(device, str):
        return {'host_path': device}
    return device


class SpecLoader:
    """Loads container specs from presets, YAML files and overrides."""

    def __init__(self, validator: Optional[SpecValidator] = None):
        self.validator = validator or SpecValidator()

    @staticmethod
    def preset_names():
        return sorted(PRESETS)

    def load_file(self, path: str) -> Dict[str, Any]:
        """Load a YAML spec file.

        Raises:
            InvalidSpec: File missing, unreadable or not a mapping
        """
        spec_path = Path(path)
        if not spec_path.exists():
            raise InvalidSpec([f"Spec file not found: {spec_path}"])

        try:
            with open(spec_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidSpec([f"Spec file {spec_path} is not valid YAML: {e}"]) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise InvalidSpec([f"Spec file {spec_path} must contain a mapping"])
        return data

    def resolve(
        self,
        preset: Optional[str] = None,
        spec_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Merge all layers into a plain dict (not yet validated)."""
        file_data = expand_shorthand(self.load_file(spec_file)) if spec_file else {}
        overrides = expand_shorthand(overrides or {})

        name = overrides.get('preset') or file_data.get('preset') or preset or DEFAULT_PRESET
        if name not in PRESETS:
            raise InvalidSpec([f"Unknown preset '{name}' (available: {', '.join(self.preset_names())})"])

        preset_data = {k: v for k, v in PRESETS[name].items() if k != 'summary'}
        data = merge_layer(DEFAULTS, preset_data)
        data = merge_layer(data, file_data)

        env_password = os.environ.get(PASSWORD_ENV)
        if env_password:
            data['password'] = env_password

        data = merge_layer(data, overrides)
        data['preset'] = name

        if isinstance(data.get('mounts'), list):
            data['mounts'] = [_normalize_mount(m) for m in data['mounts']]
        if isinstance(data.get('devices'), list):
            data['devices'] = [_normalize_device(d) for d in data['devices']]
        logger.debug(f"Resolved spec from preset '{name}'"
                     + (f" and {spec_file}" if spec_file else ""))
        return data

    def build(self, data: Dict[str, Any]) -> ContainerSpec:
        """Validate merged data and freeze it into a ContainerSpec.

        Raises:
            InvalidSpec: Any field failed validation
        """
        self.validator.validate(data)
        hide_secret(data.get('password'))
        hide_secret(data.get('password_confirmation'))

        gpu = dict(data.get('gpu') or {})
        if gpu.get('card') is not None:
            gpu['card'] = str(gpu['card'])

        return ContainerSpec(
            vmid=data['vmid'],
            hostname=data['hostname'],
            cores=data['cores'],
            memory=data['memory'],
            swap=data['swap'],
            disk_size=data['disk_size'],
            storage=data['storage'],
            template_storage=data['template_storage'],
            os_version=data['os_version'],
            network=NetworkConfig(**(data.get('network') or {})),
            password=data.get('password'),
            password_confirmation=data.get('password_confirmation'),
            ssh_public_keys=data.get('ssh_public_keys'),
            privileged=bool(data.get('privileged')),
            features=tuple(data.get('features') or ()),
            onboot=bool(data.get('onboot')),
            gpu=GpuPassthrough(**gpu),
            devices=tuple(DeviceSpec(**d) for d in data.get('devices') or []),
            mounts=tuple(MountSpec(**m) for m in data.get('mounts') or []),
            start=bool(data.get('start')),
            apt_release=data.get('apt_release'),
            packages=tuple(data.get('packages') or ()),
            apps=tuple(data.get('apps') or ()),
            preset=data['preset'],
            description=data.get('description'),
        )

    def load(
        self,
        preset: Optional[str] = None,
        spec_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> ContainerSpec:
        """Resolve and build a ContainerSpec in one go."""
        return self.build(self.resolve(preset, spec_file, overrides))
