"""
Configuration management for ensemble builds.
"""
from .config_manager import (
    EnsembleConfig,
    ConfigManager,
    load_config
)
from .presets import EnsemblePresets

__all__ = [
    'EnsembleConfig',
    'ConfigManager',
    'load_config',
    'EnsemblePresets',
]
