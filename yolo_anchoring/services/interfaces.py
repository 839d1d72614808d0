"""Service interfaces and abstract base classes for external collaborators."""

from abc import ABC, abstractmethod
from typing import Iterator, Optional

import numpy as np

from ..geometry import Ray, RaycastHit
from ..models.anchor import Anchor, Bounds
from ..models.detection import FeedDimensions


class FrameSourceInterface(ABC):
    """Supplies the current video frame on demand."""

    @abstractmethod
    def get_frame(self) -> Optional[np.ndarray]:
        """Get the latest frame, or None if no frame is available yet."""
        pass

    @abstractmethod
    def get_feed_dimensions(self) -> Optional[FeedDimensions]:
        """Get the pixel dimensions of the feed."""
        pass


class InferenceModelInterface(ABC):
    """A model graph that can run whole or one layer at a time."""

    @property
    @abstractmethod
    def fixed_input_size(self) -> Optional[int]:
        """Square input size baked into the model, or None if it accepts any size."""
        pass

    @abstractmethod
    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        """Execute the whole graph and return its output."""
        pass

    @abstractmethod
    def schedule_iterable(self, input_tensor: np.ndarray) -> Iterator[str]:
        """Execute the graph lazily, yielding once per layer."""
        pass

    @abstractmethod
    def peek_output(self) -> Optional[np.ndarray]:
        """Output of the last completed execution, still owned by the model."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Drop any intermediate buffers held by the model."""
        pass


class CameraInterface(ABC):
    """Reference camera used to map between screen and world space."""

    pixel_width: int
    pixel_height: int
    position: np.ndarray

    @abstractmethod
    def screen_point_to_ray(self, screen_x: float, screen_y: float) -> Ray:
        pass

    @abstractmethod
    def screen_to_world_point(self, screen_x: float, screen_y: float, depth: float) -> np.ndarray:
        pass

    @abstractmethod
    def world_to_screen_point(self, point: np.ndarray) -> np.ndarray:
        pass

    @abstractmethod
    def copy(self) -> "CameraInterface":
        """Snapshot of the current camera pose and intrinsics."""
        pass


class EnvironmentRaycasterInterface(ABC):
    """Depth-sensor based raycasting against the physical environment."""

    @abstractmethod
    def is_available(self) -> bool:
        """True when the capability is supported and currently active."""
        pass

    @abstractmethod
    def raycast(self, ray: Ray) -> Optional[RaycastHit]:
        pass


class RoomRaycasterInterface(ABC):
    """Raycasting against scanned room geometry."""

    @abstractmethod
    def has_room(self) -> bool:
        """True once room geometry has been loaded."""
        pass

    @abstractmethod
    def raycast(self, ray: Ray, max_distance: float) -> Optional[RaycastHit]:
        pass


class ModelRendererInterface(ABC):
    """Receives spawn, update and destroy commands for anchored models."""

    @abstractmethod
    def has_model(self, model_key: str) -> bool:
        pass

    @abstractmethod
    def instantiate(self, anchor: Anchor) -> None:
        """Create the visual instance for a new anchor."""
        pass

    @abstractmethod
    def apply_transform(self, anchor: Anchor) -> None:
        """Push the anchor's pose, scale, name and visibility to its instance."""
        pass

    @abstractmethod
    def render_bounds(self, anchor: Anchor) -> Bounds:
        """World-space render bounds of the anchor's instance."""
        pass

    @abstractmethod
    def destroy(self, anchor: Anchor) -> None:
        pass
