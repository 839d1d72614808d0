"""Anchor data models for placed world-space instances."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np


@dataclass
class Pose:
    """World position plus orientation quaternion (x, y, z, w)."""
    position: np.ndarray
    rotation: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=float)
        self.rotation = np.asarray(self.rotation, dtype=float)


@dataclass
class Bounds:
    """Axis-aligned world-space render bounds."""
    center: np.ndarray
    extents: np.ndarray  # half-size along each axis

    def __post_init__(self):
        self.center = np.asarray(self.center, dtype=float)
        self.extents = np.asarray(self.extents, dtype=float)

    @property
    def min(self) -> np.ndarray:
        return self.center - self.extents

    @property
    def max(self) -> np.ndarray:
        return self.center + self.extents

    @property
    def radius(self) -> float:
        """Distance from the center to a corner."""
        return float(np.linalg.norm(self.max - self.center))

    def corners(self) -> np.ndarray:
        """The eight corners of the box, shaped (8, 3)."""
        lo, hi = self.min, self.max
        return np.array([
            lo,
            hi,
            [lo[0], lo[1], hi[2]],
            [lo[0], hi[1], lo[2]],
            [hi[0], lo[1], lo[2]],
            [lo[0], hi[1], hi[2]],
            [hi[0], lo[1], hi[2]],
            [hi[0], hi[1], lo[2]],
        ])


@dataclass
class Anchor:
    """One spawned visual instance tracked by class and slot."""
    owner_class: int
    slot: int
    model_key: str
    pose: Pose
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    last_extents_2d: Tuple[float, float] = (0.0, 0.0)
    name: str = ""
    active: bool = False
    last_seen_cycle: int = 0
    handle: Optional[object] = None  # renderer-owned object

    @property
    def position(self) -> np.ndarray:
        return self.pose.position


class AnchorPopulation:
    """Mapping of class id to the ordered list of anchors for that class.

    The slot of an anchor is always its index within its class list.
    """

    def __init__(self):
        self._by_class: Dict[int, List[Anchor]] = {}
        self._count = 0

    def __len__(self) -> int:
        return self._count

    @property
    def count(self) -> int:
        return self._count

    def for_class(self, class_id: int) -> List[Anchor]:
        """Get the anchor list for a class, creating an empty one if needed."""
        return self._by_class.setdefault(class_id, [])

    def classes(self) -> List[int]:
        return [class_id for class_id, anchors in self._by_class.items() if anchors]

    def add(self, anchor: Anchor) -> None:
        anchors = self.for_class(anchor.owner_class)
        anchor.slot = len(anchors)
        anchors.append(anchor)
        self._count += 1

    def remove(self, anchor: Anchor) -> None:
        anchors = self._by_class.get(anchor.owner_class, [])
        anchors.remove(anchor)
        for index, remaining in enumerate(anchors):
            remaining.slot = index
        self._count -= 1

    def all(self) -> List[Anchor]:
        return [anchor for anchors in self._by_class.values() for anchor in anchors]

    def clear(self) -> List[Anchor]:
        """Drop every anchor and return what was removed."""
        removed = self.all()
        self._by_class.clear()
        self._count = 0
        return removed
