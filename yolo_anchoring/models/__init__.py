"""Data models for the detection and anchoring system."""

from .detection import BoundingBox, Detection, FeedDimensions
from .anchor import Pose, Bounds, Anchor, AnchorPopulation
from .config import PipelineConfig

__all__ = [
    'BoundingBox', 'Detection', 'FeedDimensions',
    'Pose', 'Bounds', 'Anchor', 'AnchorPopulation',
    'PipelineConfig'
]
