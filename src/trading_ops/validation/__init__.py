"""Strategy config validation, diffing and presets."""

from .config_validator import ConfigValidator, validate_config
from .config_differ import ConfigDiffer, compare_configs
from .presets import ConfigPresetStore, config_presets

__all__ = [
    "ConfigValidator",
    "validate_config",
    "ConfigDiffer",
    "compare_configs",
    "ConfigPresetStore",
    "config_presets",
]
