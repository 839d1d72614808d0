"""Spatial anchoring engine: places detections as deduplicated world anchors."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .interfaces import (
    CameraInterface, EnvironmentRaycasterInterface, FrameSourceInterface,
    ModelRendererInterface, RoomRaycasterInterface
)
from ..config.defaults import ANCHOR_RETENTION_POLICIES
from ..geometry import identity_rotation, look_rotation
from ..logging_config import get_logger
from ..models.anchor import Anchor, AnchorPopulation, Pose
from ..models.config import PipelineConfig
from ..models.detection import Detection, FeedDimensions

logger = get_logger("spatial_anchoring")


class ScaleType(Enum):
    """How the on-screen size mismatch turns into a scale factor.

    WIDTH: x scale change. HEIGHT: y scale change. AVERAGE: mean of both.
    MIN / MAX: the smaller / larger of the two.
    """
    WIDTH = "WIDTH"
    HEIGHT = "HEIGHT"
    AVERAGE = "AVERAGE"
    MIN = "MIN"
    MAX = "MAX"


def _ratio(new: float, current: float) -> float:
    if current == 0:
        return math.inf
    return new / current


def compute_scale_factor(scale_type: ScaleType, new_width: float, new_height: float,
                         current_width: float, current_height: float,
                         dampener: float = 0.0) -> float:
    """Multiplicative scale that maps the current on-screen size onto the detected one.

    A non-finite result (zero current extent) becomes 1.0.
    """
    width_ratio = _ratio(new_width, current_width)
    height_ratio = _ratio(new_height, current_height)

    if scale_type == ScaleType.WIDTH:
        factor = width_ratio
    elif scale_type == ScaleType.HEIGHT:
        factor = height_ratio
    elif scale_type == ScaleType.AVERAGE:
        factor = (width_ratio + height_ratio) / 2
    elif scale_type == ScaleType.MIN:
        factor = min(width_ratio, height_ratio)
    elif scale_type == ScaleType.MAX:
        factor = max(width_ratio, height_ratio)
    else:
        factor = 1.0

    factor *= 1.0 - dampener
    if not math.isfinite(factor):
        factor = 1.0
    return factor


@dataclass
class WorldPlacement:
    """Where a detection lands in the world.

    ``normal_confidence`` is None when no surface was hit.
    """
    pose: Pose
    normal_confidence: Optional[float] = None


class SpatialAnchoringEngine:
    """Maintains the population of anchors spawned from detections.

    Anchors are only removed by ``clear_all`` unless the retention policy is
    ``expire_unseen``, in which case anchors that go unobserved for
    ``anchor_expiry_cycles`` placement cycles are destroyed.
    """

    def __init__(self, renderer: ModelRendererInterface,
                 frame_source: Optional[FrameSourceInterface] = None,
                 class_models: Optional[Dict[str, str]] = None,
                 environment_raycaster: Optional[EnvironmentRaycasterInterface] = None,
                 room_raycaster: Optional[RoomRaycasterInterface] = None,
                 max_anchor_count: int = 10,
                 distance_threshold: float = 1.0,
                 moving_objects: bool = False,
                 scale_type: ScaleType = ScaleType.AVERAGE,
                 scale_dampener: float = 0.0,
                 max_detections_per_class: int = 3,
                 spawn_depth: float = 1.5,
                 vertical_screen_offset: float = 200.0,
                 min_normal_confidence: float = 0.5,
                 room_raycast_max_distance: float = 500.0,
                 anchor_retention: str = "persistent",
                 anchor_expiry_cycles: int = 30):
        if anchor_retention not in ANCHOR_RETENTION_POLICIES:
            raise ValueError(f"Unknown anchor retention policy: {anchor_retention}")

        self.renderer = renderer
        self.frame_source = frame_source
        self.class_models = dict(class_models or {})
        self.environment_raycaster = environment_raycaster
        self.room_raycaster = room_raycaster

        self.max_anchor_count = max_anchor_count
        self.distance_threshold = distance_threshold
        self.moving_objects = moving_objects
        self.scale_type = ScaleType(scale_type)
        self.scale_dampener = scale_dampener
        self.max_detections_per_class = max_detections_per_class
        self.spawn_depth = spawn_depth
        self.vertical_screen_offset = vertical_screen_offset
        self.min_normal_confidence = min_normal_confidence
        self.room_raycast_max_distance = room_raycast_max_distance
        self.anchor_retention = anchor_retention
        self.anchor_expiry_cycles = anchor_expiry_cycles

        self.population = AnchorPopulation()
        self.cycle = 0

        # Per-call state
        self._camera: Optional[CameraInterface] = None
        self._feed: Optional[FeedDimensions] = None

    @classmethod
    def from_config(cls, config: PipelineConfig, renderer: ModelRendererInterface,
                    frame_source: Optional[FrameSourceInterface] = None,
                    environment_raycaster: Optional[EnvironmentRaycasterInterface] = None,
                    room_raycaster: Optional[RoomRaycasterInterface] = None) -> "SpatialAnchoringEngine":
        return cls(
            renderer=renderer,
            frame_source=frame_source,
            class_models=config.class_models,
            environment_raycaster=environment_raycaster,
            room_raycaster=room_raycaster,
            max_anchor_count=config.max_anchor_count,
            distance_threshold=config.distance_threshold,
            moving_objects=config.moving_objects,
            scale_type=ScaleType(config.scale_type),
            scale_dampener=config.scale_dampener,
            max_detections_per_class=config.max_detections_per_class,
            spawn_depth=config.spawn_depth,
            vertical_screen_offset=config.vertical_screen_offset,
            min_normal_confidence=config.min_normal_confidence,
            room_raycast_max_distance=config.room_raycast_max_distance,
            anchor_retention=config.anchor_retention,
            anchor_expiry_cycles=config.anchor_expiry_cycles
        )

    @property
    def anchor_count(self) -> int:
        return self.population.count

    def get_anchors(self, class_id: Optional[int] = None) -> List[Anchor]:
        if class_id is None:
            return self.population.all()
        return list(self.population.for_class(class_id))

    def get_population_stats(self) -> Dict[str, Any]:
        return {
            "anchor_count": self.population.count,
            "max_anchor_count": self.max_anchor_count,
            "anchors_per_class": {class_id: len(self.population.for_class(class_id))
                                  for class_id in self.population.classes()},
            "cycle": self.cycle,
            "moving_objects": self.moving_objects,
            "anchor_retention": self.anchor_retention
        }

    # Placement

    def place_detections(self, detections: Sequence[Detection], camera: CameraInterface,
                         feed_dimensions: Optional[FeedDimensions] = None) -> None:
        """Spawn, update and rescale anchors for one cycle of detections.

        Detections are handled in the given order, so earlier ones win when
        the per-class or global caps are reached.
        """
        feed = feed_dimensions or (self.frame_source.get_feed_dimensions() if self.frame_source else None)
        if feed is None:
            logger.debug("No feed dimensions available; skipping placement")
            return

        self._camera = camera
        self._feed = feed
        self.cycle += 1
        counts: Dict[int, int] = {}
        spawned = updated = 0

        for detection in detections:
            if counts.get(detection.class_id, 0) >= self.max_detections_per_class:
                continue

            model_key = self._model_key_for(detection)
            if model_key is None:
                continue

            anchors = self.population.for_class(detection.class_id)
            placement = self._world_placement(detection)

            duplicate = self._find_duplicate(placement.pose.position, anchors)
            if duplicate is not None:
                duplicate.last_seen_cycle = self.cycle
                continue

            counts[detection.class_id] = counts.get(detection.class_id, 0) + 1
            placed = counts[detection.class_id]

            if ((not self.moving_objects or placed > len(anchors))
                    and self.population.count < self.max_anchor_count):
                anchor = Anchor(
                    owner_class=detection.class_id,
                    slot=len(anchors),
                    model_key=model_key,
                    pose=placement.pose,
                    last_seen_cycle=self.cycle
                )
                self.renderer.instantiate(anchor)
                self.population.add(anchor)
                try:
                    self._update_anchor(anchor, detection, placed, placement)
                except Exception:
                    self.population.remove(anchor)
                    self.renderer.destroy(anchor)
                    raise
                spawned += 1
                logger.info(f"Spawned anchor '{anchor.name}' at {np.round(anchor.position, 3).tolist()}")
            elif self.moving_objects and placed <= len(anchors):
                anchor = anchors[placed - 1]
                self._update_anchor(anchor, detection, placed, placement)
                updated += 1

        expired = self._expire_unseen() if self.anchor_retention == "expire_unseen" else 0

        logger.debug(f"Cycle {self.cycle}: {len(detections)} detections, {spawned} spawned, "
                     f"{updated} updated, {expired} expired, {self.population.count} anchors")

    def _model_key_for(self, detection: Detection) -> Optional[str]:
        if detection.class_name is None:
            return None
        model_key = self.class_models.get(detection.class_name)
        if not model_key or not self.renderer.has_model(model_key):
            logger.debug(f"No model provided for detected class '{detection.class_name}'")
            return None
        return model_key

    def _update_anchor(self, anchor: Anchor, detection: Detection, placed: int,
                       placement: WorldPlacement) -> None:
        anchor.pose = Pose(placement.pose.position.copy(), placement.pose.rotation.copy())

        use_surface_normal = (placement.normal_confidence is not None
                              and placement.normal_confidence >= self.min_normal_confidence)
        if not use_surface_normal:
            anchor.pose.rotation = look_rotation(np.asarray(self._camera.position) - anchor.position)

        anchor.name = f"{detection.class_name} {placed}"
        anchor.last_seen_cycle = self.cycle
        self.renderer.apply_transform(anchor)

        self._rescale(anchor, detection)
        anchor.active = True
        self.renderer.apply_transform(anchor)

    def _rescale(self, anchor: Anchor, detection: Detection) -> None:
        box = detection.bounding_box
        screen_min = self.image_to_screen(box.min)
        screen_max = self.image_to_screen(box.max)
        new_width = abs(screen_max[0] - screen_min[0])
        new_height = abs(screen_max[1] - screen_min[1])

        bounds = self.renderer.render_bounds(anchor)
        screen_points = np.array([self._camera.world_to_screen_point(corner)[:2]
                                  for corner in bounds.corners()])
        current_width = float(screen_points[:, 0].max() - screen_points[:, 0].min())
        current_height = float(screen_points[:, 1].max() - screen_points[:, 1].min())

        factor = compute_scale_factor(self.scale_type, new_width, new_height,
                                      current_width, current_height, self.scale_dampener)
        logger.debug(f"Scale factor for {detection.class_name}: {factor}")

        anchor.scale = anchor.scale * factor
        anchor.last_extents_2d = (new_width, new_height)

    def _find_duplicate(self, position: np.ndarray, anchors: List[Anchor]) -> Optional[Anchor]:
        for anchor in anchors:
            distance = float(np.linalg.norm(position - anchor.position))
            radius = self.renderer.render_bounds(anchor).radius
            if distance < self.distance_threshold * radius:
                return anchor
        return None

    # Coordinate conversion

    def image_to_screen(self, point: Tuple[float, float],
                        camera: Optional[CameraInterface] = None,
                        feed: Optional[FeedDimensions] = None) -> Tuple[float, float]:
        """Map frame pixel coordinates (top-left origin) to screen coordinates (bottom-left origin).

        Defaults to the camera and feed of the placement cycle in progress.
        """
        camera = camera or self._camera
        feed = feed or self._feed
        x_offset = (camera.pixel_width - feed.width) / 2.0
        y_offset = (camera.pixel_height - feed.height) / 2.0

        screen_x = point[0] + x_offset
        screen_y = (feed.height - point[1]) + y_offset

        return (screen_x, screen_y - self.vertical_screen_offset)

    def _world_placement(self, detection: Detection) -> WorldPlacement:
        screen_x, screen_y = self.image_to_screen(detection.bounding_box.center)

        if self.environment_raycaster is not None and self.environment_raycaster.is_available():
            hit = self.environment_raycaster.raycast(self._camera.screen_point_to_ray(screen_x, screen_y))
            if hit is not None:
                return WorldPlacement(Pose(hit.point, look_rotation(hit.normal)), hit.normal_confidence)

        return self._image_to_world(screen_x, screen_y)

    def _image_to_world(self, screen_x: float, screen_y: float) -> WorldPlacement:
        if self.room_raycaster is not None and self.room_raycaster.has_room():
            ray = self._camera.screen_point_to_ray(screen_x, screen_y)
            hit = self.room_raycaster.raycast(ray, self.room_raycast_max_distance)
            if hit is not None:
                return WorldPlacement(Pose(hit.point, look_rotation(hit.normal)), hit.normal_confidence)

        position = self._camera.screen_to_world_point(screen_x, screen_y, self.spawn_depth)
        return WorldPlacement(Pose(position, identity_rotation()))

    # Removal

    def _expire_unseen(self) -> int:
        expired = [anchor for anchor in self.population.all()
                   if self.cycle - anchor.last_seen_cycle > self.anchor_expiry_cycles]
        for anchor in expired:
            self.renderer.destroy(anchor)
            self.population.remove(anchor)
            logger.info(f"Expired anchor '{anchor.name}' after {self.anchor_expiry_cycles} unseen cycles")
        return len(expired)

    def clear_all(self) -> None:
        """Destroy every anchor and reset all counts."""
        removed = self.population.clear()
        for anchor in removed:
            self.renderer.destroy(anchor)
        logger.info(f"Cleared {len(removed)} anchors")
