"""In-memory model renderer that represents every model as an axis-aligned box."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np

from .interfaces import ModelRendererInterface
from ..logging_config import get_logger
from ..models.anchor import Anchor, Bounds

logger = get_logger("box_renderer")


@dataclass
class BoxInstance:
    """State the renderer keeps for one anchor."""
    model_key: str
    base_extents: np.ndarray
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    name: str = ""
    active: bool = False


class BoxModelRenderer(ModelRendererInterface):
    """Keeps one box per anchor; bounds ignore rotation and follow position and scale."""

    def __init__(self, model_sizes: Optional[Dict[str, Sequence[float]]] = None):
        self.model_sizes: Dict[str, np.ndarray] = {
            key: np.asarray(size, dtype=float) for key, size in (model_sizes or {}).items()
        }
        self.instances: Dict[int, BoxInstance] = {}
        self.destroyed_count = 0

    def register_model(self, model_key: str, size: Sequence[float]) -> None:
        self.model_sizes[model_key] = np.asarray(size, dtype=float)

    def has_model(self, model_key: str) -> bool:
        return model_key in self.model_sizes

    def instantiate(self, anchor: Anchor) -> None:
        instance = BoxInstance(model_key=anchor.model_key,
                               base_extents=self.model_sizes[anchor.model_key] / 2.0)
        anchor.handle = instance
        self.instances[id(anchor)] = instance

    def apply_transform(self, anchor: Anchor) -> None:
        instance: BoxInstance = anchor.handle
        instance.position = anchor.position.copy()
        instance.rotation = anchor.pose.rotation.copy()
        instance.scale = np.asarray(anchor.scale, dtype=float).copy()
        instance.name = anchor.name
        instance.active = anchor.active

    def render_bounds(self, anchor: Anchor) -> Bounds:
        instance: BoxInstance = anchor.handle
        return Bounds(center=instance.position.copy(), extents=instance.base_extents * instance.scale)

    def destroy(self, anchor: Anchor) -> None:
        if self.instances.pop(id(anchor), None) is not None:
            self.destroyed_count += 1
        anchor.handle = None

    @property
    def live_count(self) -> int:
        return len(self.instances)
