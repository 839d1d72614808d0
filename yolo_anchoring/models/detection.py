"""Detection data models."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in source-frame pixel coordinates (top-left origin)."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_center(cls, center_x: float, center_y: float,
                    width: float, height: float) -> "BoundingBox":
        """Build a box from its center and size, truncating to whole pixels."""
        return cls(
            x=int(center_x) - width / 2,
            y=int(center_y) - height / 2,
            width=float(int(width)),
            height=float(int(height))
        )

    @property
    def center(self) -> Tuple[float, float]:
        """Get the center point of the bounding box."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def min(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @property
    def max(self) -> Tuple[float, float]:
        return (self.x + self.width, self.y + self.height)

    def area(self) -> float:
        """Calculate the area of the bounding box."""
        return self.width * self.height


@dataclass(frozen=True)
class Detection:
    """A single class, box and confidence produced by one decode cycle."""
    bounding_box: BoundingBox
    class_id: int
    class_name: Optional[str]
    confidence: float

    @classmethod
    def from_center(cls, center_x: float, center_y: float, width: float, height: float,
                    class_id: int, class_name: Optional[str], confidence: float) -> "Detection":
        return cls(
            bounding_box=BoundingBox.from_center(center_x, center_y, width, height),
            class_id=int(class_id),
            class_name=class_name,
            confidence=float(confidence)
        )


@dataclass(frozen=True)
class FeedDimensions:
    """Pixel dimensions of a video frame."""
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Feed dimensions must be positive, got {self.width}x{self.height}")

    @classmethod
    def from_frame(cls, frame) -> "FeedDimensions":
        """Read dimensions from an image array shaped (H, W[, C])."""
        height, width = frame.shape[:2]
        return cls(width=int(width), height=int(height))
