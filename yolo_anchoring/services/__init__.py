"""Services for the detection and anchoring system."""

from .interfaces import (
    FrameSourceInterface,
    InferenceModelInterface,
    CameraInterface,
    EnvironmentRaycasterInterface,
    RoomRaycasterInterface,
    ModelRendererInterface
)

__all__ = [
    'FrameSourceInterface',
    'InferenceModelInterface',
    'CameraInterface',
    'EnvironmentRaycasterInterface',
    'RoomRaycasterInterface',
    'ModelRendererInterface'
]
