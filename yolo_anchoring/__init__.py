"""
YOLO Anchoring

Real-time object detection over a live video feed, with every detection
projected into a deduplicated population of 3D world anchors.
"""

__version__ = "1.0.0"
__author__ = "YOLO Anchoring"

# Import core components
from .config_manager import ConfigManager
from .detection_pipeline import DetectionPipeline
from .exceptions import (
    YoloAnchoringError,
    ConfigurationError,
    ModelSetupError,
    InferenceError,
    DecodeError,
    RemoteRequestError
)
from .models import (
    BoundingBox,
    Detection,
    FeedDimensions,
    Anchor,
    PipelineConfig
)
from .services import (
    FrameSourceInterface,
    InferenceModelInterface,
    CameraInterface,
    EnvironmentRaycasterInterface,
    RoomRaycasterInterface,
    ModelRendererInterface
)
from . import utils

__all__ = [
    # Core management
    'ConfigManager',
    'DetectionPipeline',

    # Errors
    'YoloAnchoringError',
    'ConfigurationError',
    'ModelSetupError',
    'InferenceError',
    'DecodeError',
    'RemoteRequestError',

    # Data models
    'BoundingBox',
    'Detection',
    'FeedDimensions',
    'Anchor',
    'PipelineConfig',

    # Service interfaces
    'FrameSourceInterface',
    'InferenceModelInterface',
    'CameraInterface',
    'EnvironmentRaycasterInterface',
    'RoomRaycasterInterface',
    'ModelRendererInterface',

    # Utilities
    'utils'
]
