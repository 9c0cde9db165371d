"""
Detection backends.

Each backend registers itself with the detector factory; the pipeline asks
the factory for a variant and only sees the Detector interface.
"""

from .base import Detector, DetectorCreationError
from .config_table import ConfigTable, ConfigError
from .registry import (
    DetectorVariant,
    create_detector,
    min_object_size_for,
    register_detector,
    registered_variants,
)

__all__ = [
    "Detector",
    "DetectorCreationError",
    "ConfigTable",
    "ConfigError",
    "DetectorVariant",
    "create_detector",
    "min_object_size_for",
    "register_detector",
    "registered_variants",
]
