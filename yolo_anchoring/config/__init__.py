"""Configuration components for the detection and anchoring system."""

from .defaults import (
    DEFAULT_CONFIG,
    DEFAULT_PATHS,
    REMOTE_SETTINGS,
    INFERENCE_MODES,
    SCALE_TYPES,
    ANCHOR_RETENTION_POLICIES
)

__all__ = [
    'DEFAULT_CONFIG',
    'DEFAULT_PATHS',
    'REMOTE_SETTINGS',
    'INFERENCE_MODES',
    'SCALE_TYPES',
    'ANCHOR_RETENTION_POLICIES'
]
