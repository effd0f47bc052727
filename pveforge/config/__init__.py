"""Container spec loading: presets, YAML spec files and validation."""
from pveforge.config.loader import SpecLoader
from pveforge.config.presets import DEFAULT_PRESET, PRESETS
from pveforge.config.validator import SpecValidator

__all__ = ['SpecLoader', 'SpecValidator', 'PRESETS', 'DEFAULT_PRESET']
