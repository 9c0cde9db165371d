"""
Pipeline module.

The pipeline orchestrates the full processing flow:
- Frame acquisition from observation sources
- Detection and tracking
- Track classification
- Overlay rendering, display and recording
"""

from .engine import (
    FrameResult,
    PipelineConfig,
    PipelineEngine,
    PipelineState,
    PipelineStats,
    create_engine_from_config,
)
from .presets import PRESETS, Preset, get_preset, resolve_preset

__all__ = [
    "PipelineEngine",
    "PipelineConfig",
    "PipelineState",
    "PipelineStats",
    "FrameResult",
    "create_engine_from_config",
    "Preset",
    "PRESETS",
    "get_preset",
    "resolve_preset",
]
