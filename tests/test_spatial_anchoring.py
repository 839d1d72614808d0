"""Unit tests for the spatial anchoring engine."""

import math
import unittest
from unittest.mock import Mock
import sys
import os

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from yolo_anchoring.geometry import PinholeCamera, RaycastHit, look_rotation, quat_rotate
from yolo_anchoring.models.detection import Detection, FeedDimensions
from yolo_anchoring.services.box_renderer import BoxModelRenderer
from yolo_anchoring.services.spatial_anchoring import (
    ScaleType, SpatialAnchoringEngine, compute_scale_factor
)

FEED = FeedDimensions(640, 480)


def person_at(x, y, width=64, height=96, confidence=0.9, class_id=0, class_name="person"):
    return Detection.from_center(x, y, width, height, class_id, class_name, confidence)


class TestComputeScaleFactor(unittest.TestCase):
    """Test cases for compute_scale_factor."""

    def test_policies(self):
        self.assertEqual(compute_scale_factor(ScaleType.WIDTH, 200, 50, 100, 100), 2.0)
        self.assertEqual(compute_scale_factor(ScaleType.HEIGHT, 200, 50, 100, 100), 0.5)
        self.assertEqual(compute_scale_factor(ScaleType.AVERAGE, 200, 50, 100, 100), 1.25)
        self.assertEqual(compute_scale_factor(ScaleType.MIN, 200, 50, 100, 100), 0.5)
        self.assertEqual(compute_scale_factor(ScaleType.MAX, 200, 50, 100, 100), 2.0)

    def test_dampener(self):
        self.assertAlmostEqual(compute_scale_factor(ScaleType.WIDTH, 200, 50, 100, 100, dampener=0.25), 1.5)

    def test_zero_current_extent_falls_back_to_one(self):
        """A zero current extent would give an infinite factor; it is clamped to 1.0."""
        self.assertEqual(compute_scale_factor(ScaleType.WIDTH, 200, 50, 0, 100), 1.0)
        self.assertEqual(compute_scale_factor(ScaleType.AVERAGE, 200, 50, 0, 0), 1.0)
        self.assertEqual(compute_scale_factor(ScaleType.HEIGHT, 0, 0, 0, 0), 1.0)


class TestSpatialAnchoringEngine(unittest.TestCase):
    """Test cases for SpatialAnchoringEngine placement."""

    def setUp(self):
        self.camera = PinholeCamera(640, 480)
        self.renderer = BoxModelRenderer({"cube": (0.2, 0.2, 0.2)})
        self.engine = SpatialAnchoringEngine(
            self.renderer,
            class_models={"person": "cube", "bicycle": "cube"},
            vertical_screen_offset=0.0
        )

    def place(self, detections):
        self.engine.place_detections(detections, self.camera, FEED)

    def test_spawns_anchor_at_fixed_depth(self):
        self.place([person_at(320, 240)])

        self.assertEqual(self.engine.anchor_count, 1)
        anchor = self.engine.get_anchors(0)[0]
        np.testing.assert_allclose(anchor.position, [0.0, 0.0, 1.5], atol=1e-6)
        self.assertEqual(anchor.slot, 0)
        self.assertEqual(anchor.name, "person 1")
        self.assertTrue(anchor.active)
        self.assertEqual(self.renderer.live_count, 1)

    def test_new_anchor_faces_camera(self):
        self.place([person_at(320, 240)])
        anchor = self.engine.get_anchors(0)[0]

        forward = quat_rotate(anchor.pose.rotation, [0.0, 0.0, 1.0])
        np.testing.assert_allclose(forward, [0.0, 0.0, -1.0], atol=1e-6)

    def test_rescale_is_applied(self):
        self.place([person_at(320, 240, width=200, height=200)])
        anchor = self.engine.get_anchors(0)[0]

        self.assertTrue(np.all(np.isfinite(anchor.scale)))
        self.assertGreater(anchor.scale[0], 1.0)
        self.assertEqual(anchor.last_extents_2d, (200.0, 200.0))

    def test_duplicate_detection_does_not_spawn(self):
        self.place([person_at(320, 240)])
        self.place([person_at(320, 240)])
        self.place([person_at(322, 241)])

        self.assertEqual(self.engine.anchor_count, 1)

    def test_distant_detections_spawn_separately(self):
        self.place([person_at(100, 240), person_at(540, 240)])

        anchors = self.engine.get_anchors(0)
        self.assertEqual(len(anchors), 2)
        self.assertEqual([a.slot for a in anchors], [0, 1])
        self.assertEqual([a.name for a in anchors], ["person 1", "person 2"])

    def test_per_class_cap_per_cycle(self):
        """Five distinct detections of one class only spawn three anchors."""
        self.place([person_at(x, 240) for x in (60, 180, 300, 420, 540)])

        self.assertEqual(self.engine.anchor_count, 3)
        xs = [a.position[0] for a in self.engine.get_anchors(0)]
        self.assertEqual(xs, sorted(xs))

    def test_per_class_cap_is_per_class(self):
        self.place([person_at(60, 240), person_at(300, 240), person_at(540, 240),
                    person_at(300, 100, class_id=1, class_name="bicycle")])

        self.assertEqual(len(self.engine.get_anchors(0)), 3)
        self.assertEqual(len(self.engine.get_anchors(1)), 1)

    def test_global_cap(self):
        self.engine.max_anchor_count = 2
        self.place([person_at(60, 240), person_at(300, 240), person_at(540, 240)])

        self.assertEqual(self.engine.anchor_count, 2)

    def test_zero_global_cap_spawns_nothing(self):
        self.engine.max_anchor_count = 0
        self.place([person_at(320, 240)])
        self.assertEqual(self.engine.anchor_count, 0)

    def test_moving_objects_updates_in_place_at_cap(self):
        self.engine.max_anchor_count = 2
        self.place([person_at(60, 240), person_at(540, 240)])
        first, second = self.engine.get_anchors(0)

        self.engine.moving_objects = True
        self.place([person_at(200, 400), person_at(440, 80)])

        self.assertEqual(self.engine.anchor_count, 2)
        self.assertIs(self.engine.get_anchors(0)[0], first)
        self.assertLess(first.position[1], 0.0)
        self.assertGreater(second.position[1], 0.0)
        self.assertEqual(self.renderer.live_count, 2)

    def test_moving_objects_spawns_when_more_detections_than_anchors(self):
        self.engine.moving_objects = True
        self.place([person_at(60, 240)])
        self.place([person_at(200, 240), person_at(540, 240)])

        self.assertEqual(self.engine.anchor_count, 2)

    def test_unmapped_classes_are_skipped(self):
        self.place([
            person_at(100, 240, class_id=16, class_name="dog"),
            person_at(300, 240, class_id=99, class_name=None),
        ])
        self.assertEqual(self.engine.anchor_count, 0)

    def test_missing_renderer_model_is_skipped(self):
        self.engine.class_models["car"] = "sedan"
        self.place([person_at(100, 240, class_id=2, class_name="car")])
        self.assertEqual(self.engine.anchor_count, 0)

    def test_failed_instantiate_leaves_no_anchor(self):
        instantiate = self.renderer.instantiate
        self.renderer.instantiate = Mock(side_effect=RuntimeError("asset not loaded"))

        with self.assertRaises(RuntimeError):
            self.place([person_at(320, 240)])
        self.assertEqual(self.engine.anchor_count, 0)

        self.renderer.instantiate = instantiate
        self.place([person_at(320, 240)])

        self.assertEqual(self.engine.anchor_count, 1)
        self.assertEqual(self.renderer.live_count, 1)

    def test_failed_transform_rolls_back_spawn(self):
        apply_transform = self.renderer.apply_transform
        self.renderer.apply_transform = Mock(side_effect=RuntimeError("scene locked"))

        with self.assertRaises(RuntimeError):
            self.place([person_at(320, 240)])
        self.assertEqual(self.engine.anchor_count, 0)
        self.assertEqual(self.renderer.live_count, 0)

        self.renderer.apply_transform = apply_transform
        self.place([person_at(320, 240)])
        self.assertEqual(self.engine.anchor_count, 1)

    def test_clear_all(self):
        self.place([person_at(60, 240), person_at(540, 240)])

        self.engine.clear_all()

        self.assertEqual(self.engine.anchor_count, 0)
        self.assertEqual(self.engine.get_anchors(), [])
        self.assertEqual(self.renderer.live_count, 0)
        self.assertEqual(self.renderer.destroyed_count, 2)

        self.place([person_at(60, 240)])
        self.assertEqual(self.engine.get_anchors(0)[0].slot, 0)

    def test_anchors_persist_by_default(self):
        self.place([person_at(320, 240)])
        for _ in range(50):
            self.place([])
        self.assertEqual(self.engine.anchor_count, 1)

    def test_expire_unseen_policy(self):
        engine = SpatialAnchoringEngine(self.renderer, class_models={"person": "cube"},
                                        vertical_screen_offset=0.0,
                                        anchor_retention="expire_unseen", anchor_expiry_cycles=2)
        engine.place_detections([person_at(60, 240), person_at(540, 240)], self.camera, FEED)

        # Keep re-observing the right-hand anchor only
        for _ in range(3):
            engine.place_detections([person_at(540, 240)], self.camera, FEED)

        anchors = engine.get_anchors(0)
        self.assertEqual(len(anchors), 1)
        self.assertGreater(anchors[0].position[0], 0.0)
        self.assertEqual(anchors[0].slot, 0)
        self.assertEqual(self.renderer.live_count, 1)

    def test_unknown_retention_policy_rejected(self):
        with self.assertRaises(ValueError):
            SpatialAnchoringEngine(self.renderer, anchor_retention="forever")

    def test_no_feed_dimensions_skips_cycle(self):
        self.engine.place_detections([person_at(320, 240)], self.camera)
        self.assertEqual(self.engine.anchor_count, 0)

    def test_feed_dimensions_from_frame_source(self):
        frame_source = Mock()
        frame_source.get_feed_dimensions.return_value = FEED
        self.engine.frame_source = frame_source

        self.engine.place_detections([person_at(320, 240)], self.camera)

        self.assertEqual(self.engine.anchor_count, 1)

    def test_population_stats(self):
        self.place([person_at(60, 240), person_at(540, 240)])
        stats = self.engine.get_population_stats()

        self.assertEqual(stats["anchor_count"], 2)
        self.assertEqual(stats["anchors_per_class"], {0: 2})
        self.assertEqual(stats["cycle"], 1)


class TestScreenConversion(unittest.TestCase):
    """Test cases for image to screen coordinate conversion."""

    def test_centering_flip_and_vertical_offset(self):
        engine = SpatialAnchoringEngine(BoxModelRenderer())
        camera = PinholeCamera(800, 600)

        screen = engine.image_to_screen((100, 50), camera, FEED)

        self.assertEqual(screen, (180.0, 290.0))

    def test_same_size_without_offset(self):
        engine = SpatialAnchoringEngine(BoxModelRenderer(), vertical_screen_offset=0.0)
        screen = engine.image_to_screen((0, 0), PinholeCamera(640, 480), FEED)
        self.assertEqual(screen, (0.0, 480.0))


class TestRaycastPlacement(unittest.TestCase):
    """Test cases for world placement through raycasters."""

    def setUp(self):
        self.camera = PinholeCamera(640, 480)
        self.renderer = BoxModelRenderer({"cube": (0.2, 0.2, 0.2)})
        self.environment = Mock()
        self.room = Mock()

    def make_engine(self, **kwargs):
        return SpatialAnchoringEngine(self.renderer, class_models={"person": "cube"},
                                      environment_raycaster=self.environment,
                                      room_raycaster=self.room,
                                      vertical_screen_offset=0.0, **kwargs)

    def test_environment_hit_with_confident_normal(self):
        self.environment.is_available.return_value = True
        self.environment.raycast.return_value = RaycastHit([0.0, -1.0, 2.0], [0.0, 1.0, 0.0], 0.9)
        engine = self.make_engine()

        engine.place_detections([person_at(320, 240)], self.camera, FEED)

        anchor = engine.get_anchors(0)[0]
        np.testing.assert_allclose(anchor.position, [0.0, -1.0, 2.0])
        np.testing.assert_allclose(anchor.pose.rotation, look_rotation([0.0, 1.0, 0.0]))
        self.room.raycast.assert_not_called()

    def test_low_confidence_normal_faces_camera(self):
        self.environment.is_available.return_value = True
        self.environment.raycast.return_value = RaycastHit([0.0, 0.0, 2.0], [0.0, 1.0, 0.0], 0.2)
        engine = self.make_engine()

        engine.place_detections([person_at(320, 240)], self.camera, FEED)

        anchor = engine.get_anchors(0)[0]
        forward = quat_rotate(anchor.pose.rotation, [0.0, 0.0, 1.0])
        np.testing.assert_allclose(forward, [0.0, 0.0, -1.0], atol=1e-6)

    def test_room_raycast_when_environment_unavailable(self):
        self.environment.is_available.return_value = False
        self.room.has_room.return_value = True
        self.room.raycast.return_value = RaycastHit([0.5, 0.0, 3.0], [0.0, 0.0, -1.0])
        engine = self.make_engine(room_raycast_max_distance=250.0)

        engine.place_detections([person_at(320, 240)], self.camera, FEED)

        np.testing.assert_allclose(engine.get_anchors(0)[0].position, [0.5, 0.0, 3.0])
        ray, max_distance = self.room.raycast.call_args[0]
        self.assertEqual(max_distance, 250.0)
        np.testing.assert_allclose(ray.direction, [0.0, 0.0, 1.0], atol=1e-6)

    def test_fixed_depth_when_nothing_hit(self):
        self.environment.is_available.return_value = True
        self.environment.raycast.return_value = None
        self.room.has_room.return_value = True
        self.room.raycast.return_value = None
        engine = self.make_engine(spawn_depth=2.5)

        engine.place_detections([person_at(320, 240)], self.camera, FEED)

        np.testing.assert_allclose(engine.get_anchors(0)[0].position, [0.0, 0.0, 2.5], atol=1e-6)


if __name__ == '__main__':
    unittest.main()
