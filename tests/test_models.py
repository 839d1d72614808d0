"""Unit tests for detection, anchor and remote data models."""

import unittest
import sys
import os

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from yolo_anchoring.models.anchor import Anchor, AnchorPopulation, Bounds, Pose
from yolo_anchoring.models.detection import BoundingBox, Detection, FeedDimensions
from yolo_anchoring.models.remote import AnalyseResponse, CustomModelResponse


def make_anchor(class_id, x=0.0):
    return Anchor(owner_class=class_id, slot=-1, model_key="cube", pose=Pose([x, 0.0, 0.0]))


class TestBoundingBox(unittest.TestCase):
    """Test cases for BoundingBox."""

    def test_from_center_truncates_center_and_size(self):
        box = BoundingBox.from_center(100.7, 50.2, 20.9, 10.4)

        self.assertEqual(box.x, 100 - 20.9 / 2)
        self.assertEqual(box.y, 50 - 10.4 / 2)
        self.assertEqual(box.width, 20.0)
        self.assertEqual(box.height, 10.0)

    def test_min_max_center(self):
        box = BoundingBox(10.0, 20.0, 30.0, 40.0)

        self.assertEqual(box.min, (10.0, 20.0))
        self.assertEqual(box.max, (40.0, 60.0))
        self.assertEqual(box.center, (25.0, 40.0))
        self.assertEqual(box.area(), 1200.0)

    def test_detection_is_immutable(self):
        detection = Detection.from_center(10, 10, 4, 4, 0, "person", 0.9)
        with self.assertRaises(Exception):
            detection.confidence = 0.1


class TestFeedDimensions(unittest.TestCase):
    """Test cases for FeedDimensions."""

    def test_from_frame(self):
        feed = FeedDimensions.from_frame(np.zeros((480, 640, 3)))
        self.assertEqual((feed.width, feed.height), (640, 480))

    def test_rejects_non_positive(self):
        with self.assertRaises(ValueError):
            FeedDimensions(0, 480)


class TestBounds(unittest.TestCase):
    """Test cases for Bounds."""

    def test_radius_is_center_to_corner(self):
        bounds = Bounds([1.0, 1.0, 1.0], [1.0, 2.0, 2.0])
        self.assertAlmostEqual(bounds.radius, 3.0)

    def test_corners(self):
        corners = Bounds([0.0, 0.0, 0.0], [1.0, 1.0, 1.0]).corners()

        self.assertEqual(corners.shape, (8, 3))
        self.assertEqual(len({tuple(c) for c in corners}), 8)


class TestAnchorPopulation(unittest.TestCase):
    """Test cases for AnchorPopulation."""

    def setUp(self):
        self.population = AnchorPopulation()

    def test_slots_follow_list_index(self):
        anchors = [make_anchor(0, x) for x in range(3)]
        for anchor in anchors:
            self.population.add(anchor)

        self.assertEqual([a.slot for a in anchors], [0, 1, 2])
        self.assertEqual(self.population.count, 3)

        self.population.remove(anchors[0])

        self.assertEqual([a.slot for a in self.population.for_class(0)], [0, 1])
        self.assertEqual(len(self.population), 2)

    def test_classes_and_clear(self):
        self.population.add(make_anchor(0))
        self.population.add(make_anchor(3))
        self.population.for_class(7)

        self.assertEqual(sorted(self.population.classes()), [0, 3])

        removed = self.population.clear()

        self.assertEqual(len(removed), 2)
        self.assertEqual(self.population.count, 0)
        self.assertEqual(self.population.all(), [])


class TestRemoteModels(unittest.TestCase):
    """Test cases for remote response parsing."""

    def test_analyse_response_defaults(self):
        response = AnalyseResponse.from_dict({"success": True})

        self.assertEqual(response.result, [])
        self.assertEqual(response.metadata.names, {})
        self.assertEqual(response.metadata.speed.inference, 0.0)

    def test_custom_model_response(self):
        response = CustomModelResponse.from_dict({"success": False, "error": "bad file"})

        self.assertFalse(response.success)
        self.assertEqual(response.error, "bad file")


if __name__ == '__main__':
    unittest.main()
